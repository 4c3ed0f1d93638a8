"""
Ruleset validation (advisory; apply() does not call it).

Returns human-readable error messages, never raises. An empty list means
the rules config is valid.
"""

from __future__ import annotations

from typing import Any, List, Mapping, Optional

from .expressions import ExpressionEvaluator, template_expression
from .values import is_number


def _check_actions(prefix: str, key: str, actions: Any, evaluator: ExpressionEvaluator) -> List[str]:
    errors: List[str] = []
    if not isinstance(actions, Mapping):
        errors.append(f"{prefix}: '{key}' must be an object mapping paths to values")
        return errors
    for path, value in actions.items():
        if not isinstance(path, str) or path == "" or "" in path.split("."):
            errors.append(f"{prefix}: Invalid path {path!r} in '{key}'")
        expression = template_expression(value)
        if expression is not None:
            message = evaluator.check_syntax(expression)
            if message is not None:
                errors.append(f"{prefix}: Invalid template for {path} - {message}")
    return errors


def validate_ruleset(rules_config: Any, evaluator: Optional[ExpressionEvaluator] = None) -> List[str]:
    """Validate rules configuration.

    Checks:
    - config is an object with a "rules" array
    - max_iterations (if present) is a positive integer
    - every rule is an object with a non-empty, unique name
    - priority (if present) is a non-negative number
    - if (if present) is a boolean or a parseable expression
    - at least one of then/else, each an object of path -> value
    - {{ }} templates parse
    """
    evaluator = evaluator or ExpressionEvaluator()
    errors: List[str] = []

    if not isinstance(rules_config, Mapping):
        return ["Rules configuration must be an object"]

    rules = rules_config.get("rules")
    if not isinstance(rules, list):
        errors.append('Rules configuration must have a "rules" array')
        return errors

    max_iterations = rules_config.get("max_iterations")
    if max_iterations is not None and not (
        is_number(max_iterations) and max_iterations >= 1 and float(max_iterations).is_integer()
    ):
        errors.append("max_iterations must be a positive integer")

    seen_names = set()
    for index, rule in enumerate(rules):
        if not isinstance(rule, Mapping):
            errors.append(f"Rule {index}: Invalid rule (not an object)")
            continue

        name = rule.get("name")
        if not isinstance(name, str) or not name.strip():
            errors.append(f"Rule {index}: Missing name")
        elif name in seen_names:
            errors.append(f'Rule {index}: Duplicate rule name "{name}"')
        else:
            seen_names.add(name)

        prefix = f"Rule {index} ({name})"

        if "priority" in rule and rule["priority"] is not None:
            priority = rule["priority"]
            if not is_number(priority) or priority < 0:
                errors.append(f"{prefix}: Priority must be a non-negative number")

        condition = rule.get("if")
        if isinstance(condition, str) and condition.strip():
            message = evaluator.check_syntax(condition)
            if message is not None:
                errors.append(f"{prefix}: Invalid condition syntax - {message}")
        elif condition is not None and not isinstance(condition, (str, bool)):
            errors.append(f"{prefix}: Condition must be an expression string or a boolean")

        has_then = rule.get("then") is not None
        has_else = rule.get("else") is not None
        if not has_then and not has_else:
            errors.append(f"{prefix}: Must have 'then' or 'else' clause")
        if has_then:
            errors.extend(_check_actions(prefix, "then", rule["then"], evaluator))
        if has_else:
            errors.extend(_check_actions(prefix, "else", rule["else"], evaluator))

    return errors
