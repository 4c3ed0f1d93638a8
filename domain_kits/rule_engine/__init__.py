"""Declarative rule engine.

Applies prioritized condition/action rules to a JSON state until it reaches
a fixed point or an iteration cap, with an audit trail and conflict log.
Conditions and templates are evaluated by a restricted expression
interpreter; no Python code is generated or executed.
"""

from .engine import ENGINE_VERSION, EngineResult, RuleEngine, apply_rules, rules_hash
from .validation import validate_ruleset
from .expressions import ExpressionEvaluator, evaluate_condition, evaluate_expression, resolve_template
from .context import build_context, flatten_state
from .paths import get_path, set_path
from .error_taxonomy import RuleErrorTaxonomy
from .errors import (
    EvaluationBudgetExceeded,
    ExpressionError,
    ExpressionEvaluationError,
    ExpressionSyntaxError,
    InvalidStateError,
    PathError,
    RuleEngineError,
    RulesConfigError,
)

__all__ = [
    'RuleEngine', 'EngineResult', 'apply_rules', 'rules_hash', 'validate_ruleset',
    'ExpressionEvaluator', 'evaluate_condition', 'evaluate_expression', 'resolve_template',
    'build_context', 'flatten_state', 'get_path', 'set_path', 'RuleErrorTaxonomy',
    'RuleEngineError', 'ExpressionError', 'ExpressionSyntaxError', 'ExpressionEvaluationError',
    'EvaluationBudgetExceeded', 'RulesConfigError', 'InvalidStateError', 'PathError',
]
__version__ = ENGINE_VERSION
