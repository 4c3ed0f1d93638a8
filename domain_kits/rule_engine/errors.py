"""
Rule Engine Errors

Exception hierarchy for the rule engine kit.

Expression errors are raised by the parser/interpreter and are always
caught inside the engine (a failing condition skips the rule, a failing
template is written verbatim). Config/state/path errors are raised to the
caller of apply().
"""


class RuleEngineError(Exception):
    """Base class for all rule engine errors."""
    pass


class ExpressionError(RuleEngineError):
    """Raised when an expression cannot be parsed or evaluated."""

    def __init__(self, message: str, expression: str = ""):
        super().__init__(message)
        self.message = message
        self.expression = expression


class ExpressionSyntaxError(ExpressionError):
    """Tokenizer or parser rejected the expression text."""
    pass


class ExpressionEvaluationError(ExpressionError):
    """Runtime failure: unbound name, bad operand, property of null, ..."""
    pass


class EvaluationBudgetExceeded(ExpressionError):
    """Expression exceeded the step, length or array-size budget."""
    pass


class RulesConfigError(RuleEngineError, ValueError):
    """Rules configuration is structurally unusable (e.g. 'rules' is not a list)."""
    pass


class InvalidStateError(RuleEngineError, TypeError):
    """Input state is not a JSON object."""
    pass


class PathError(RuleEngineError, ValueError):
    """Dot-path is empty or has an empty segment."""
    pass
