"""
Rule Applicator

Applies one rule to the working state:

1. Evaluate `if` against a context built from the current state.
2. If true, resolve each `then` entry in mapping order and write it with
   set_path. Each entry is resolved against the state as already modified
   by the earlier entries of the same rule.
3. Record the writer of every path in the per-sweep write log; a path
   already written by a different rule in this sweep is a conflict (logged,
   not blocked: the later rule overwrites).

When the condition is false and the rule has an `else` mapping, that
mapping is applied the same way.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from .audit import AuditRecorder
from .context import build_context
from .error_taxonomy import RuleErrorTaxonomy
from .errors import ExpressionError, RulesConfigError
from .expressions import ExpressionEvaluator
from .paths import get_path, set_path
from .values import canonical_json


@dataclass
class RuleApplication:
    branch: Optional[str] = None  # "then" | "else" | None when nothing ran
    changed_paths: List[str] = field(default_factory=list)


def rule_name(rule: Mapping[str, Any], index: int) -> str:
    name = rule.get("name")
    return str(name) if name not in (None, "") else f"rule_{index}"


def _actions(rule: Mapping[str, Any], key: str, name: str) -> Mapping[str, Any]:
    actions = rule.get(key)
    if actions is None:
        return {}
    if not isinstance(actions, Mapping):
        raise RulesConfigError(f"Rule {name}: '{key}' must be an object mapping paths to values")
    return actions


class RuleApplicator:
    """Applies single rules; shared by every sweep of one apply() call."""

    def __init__(self, evaluator: ExpressionEvaluator, recorder: AuditRecorder):
        self.evaluator = evaluator
        self.recorder = recorder

    def _report(self, kind: str, name: str):
        def on_error(expression: str, error: ExpressionError) -> None:
            category = RuleErrorTaxonomy.category_for(error)
            self.recorder.error(
                f"{kind} evaluation failed in {name} [{category}]: {expression} - {error.message}"
            )

        return on_error

    def apply_rule(
        self,
        rule: Mapping[str, Any],
        state: Dict[str, Any],
        iteration_writes: Dict[str, str],
        *,
        name: str,
        iteration: int,
    ) -> RuleApplication:
        then_actions = _actions(rule, "then", name)
        else_actions = _actions(rule, "else", name)

        condition = rule.get("if")
        context = build_context(state)
        if self.evaluator.evaluate_condition(condition, context, self._report("Condition", name)):
            self.recorder.applied(name)
            changed = self._write_actions(then_actions, state, iteration_writes, name, iteration)
            return RuleApplication(branch="then", changed_paths=changed)

        self.recorder.info(f"Skipped: {name} (condition not met)")
        if else_actions:
            self.recorder.info(f"Applied (else): {name}")
            changed = self._write_actions(else_actions, state, iteration_writes, name, iteration)
            return RuleApplication(branch="else", changed_paths=changed)
        return RuleApplication()

    def _write_actions(
        self,
        actions: Mapping[str, Any],
        state: Dict[str, Any],
        iteration_writes: Dict[str, str],
        name: str,
        iteration: int,
    ) -> List[str]:
        changed: List[str] = []
        on_error = self._report("Template", name)
        for path, template in actions.items():
            value = self.evaluator.resolve_template(template, build_context(state), on_error)

            previous_rule = iteration_writes.get(path)
            if previous_rule is not None and previous_rule != name:
                self.recorder.record_conflict(path, previous_rule, name, iteration)
            iteration_writes[path] = name

            found, old_value = get_path(state, path)
            set_path(state, path, value)
            if not found or canonical_json(old_value) != canonical_json(value):
                changed.append(path)
        return changed
