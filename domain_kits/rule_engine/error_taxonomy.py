"""
Rule Error Taxonomy

Classify rule evaluation problems in plain language (for the audit trail
and for people reading it).

Every category has:
- severity: 'high' | 'medium' | 'low'
- pattern: What went wrong technically
- business_impact: What it means for the computed state
"""

from .errors import (
    EvaluationBudgetExceeded,
    ExpressionError,
    ExpressionEvaluationError,
    ExpressionSyntaxError,
)


class RuleErrorTaxonomy:
    """Map rule evaluation failures to reader-facing categories."""

    CATEGORIES = {
        'syntax_error': {
            'severity': 'high',
            'pattern': 'Condition or template does not parse',
            'example': 'if: "score >> 10" or then: "{{ total + }}"',
            'business_impact': 'Rule never fires, or the field keeps the raw template text'
        },
        'reference_error': {
            'severity': 'high',
            'pattern': 'Expression names a field that is not in the state',
            'example': 'if: "applicant_income > 5000" when the state has applicant.salary',
            'business_impact': 'Rule is silently skipped; downstream fields are never computed'
        },
        'type_error': {
            'severity': 'medium',
            'pattern': 'Operation on the wrong kind of value (property of null, calling a non-function)',
            'example': 'loan.terms.rate when loan.terms is null',
            'business_impact': 'Rule is skipped or the field keeps the raw template text'
        },
        'budget_exceeded': {
            'severity': 'high',
            'pattern': 'Expression exceeded the step, length or nesting budget',
            'example': 'reduce over a very large array inside a template',
            'business_impact': 'Expression is abandoned; treat the result as incomplete'
        },
        'conflict': {
            'severity': 'low',
            'pattern': 'Two rules wrote the same field in one sweep',
            'example': 'approve_rule and reject_rule both set decision.status',
            'business_impact': 'Later rule in priority order wins; check that this was intended'
        },
        'non_convergence': {
            'severity': 'medium',
            'pattern': 'State still changing when the iteration cap was reached',
            'example': 'a rule that toggles a flag on every sweep',
            'business_impact': 'Output is a snapshot of an oscillating state, not a fixpoint'
        }
    }

    @classmethod
    def classify(cls, error_code: str) -> dict:
        """
        Retrieve category info for an error.

        Args:
            error_code: One of the category keys

        Returns:
            Dict with severity, pattern, example, business_impact
        """
        if error_code in cls.CATEGORIES:
            return cls.CATEGORIES[error_code]
        return {
            'severity': 'unknown',
            'pattern': 'Unknown error category',
            'example': '',
            'business_impact': 'See audit trail for details'
        }

    @classmethod
    def all_categories(cls) -> list:
        """Return list of all error category names."""
        return list(cls.CATEGORIES.keys())

    @classmethod
    def severity_level(cls, error_code: str) -> str:
        """Get severity of an error category."""
        return cls.classify(error_code).get('severity', 'unknown')

    @classmethod
    def category_for(cls, error: ExpressionError) -> str:
        """Category key for an expression failure."""
        if isinstance(error, EvaluationBudgetExceeded):
            return 'budget_exceeded'
        if isinstance(error, ExpressionSyntaxError):
            return 'syntax_error'
        if isinstance(error, ExpressionEvaluationError) and error.message.endswith('is not defined'):
            return 'reference_error'
        return 'type_error'
