# Mortgage underwriting demo: LTV / payment / DTI metrics, then a decision.

INPUT_STATE = {
    "applicant": {
        "name": "Dana Reyes",
        "credit_score": 712,
        "annual_income": 96000,
        "monthly_debts": 1200,
    },
    "loan": {
        "amount": 320000,
        "property_value": 400000,
        "term_years": 30,
        "rate": 0.065,
    },
}

RULES_CONFIG = {
    "max_iterations": 10,
    "rules": [
        {
            "name": "compute_ltv",
            "priority": 10,
            "if": "loan.property_value > 0",
            "then": {
                "metrics.ltv": "{{ Math.round(loan.amount / loan.property_value * 1000) / 1000 }}",
            },
        },
        {
            "name": "compute_payment",
            "priority": 11,
            "if": "loan_rate > 0 && loan_term_years > 0",
            "then": {
                "metrics.monthly_payment": (
                    "{{ Math.round(loan.amount * (loan.rate / 12) / "
                    "(1 - Math.pow(1 + loan.rate / 12, -loan.term_years * 12)) * 100) / 100 }}"
                ),
            },
        },
        {
            "name": "compute_dti",
            "priority": 12,
            "if": "applicant_annual_income > 0",
            "then": {
                "metrics.dti": (
                    "{{ Math.round((applicant.monthly_debts + metrics.monthly_payment) / "
                    "(applicant.annual_income / 12) * 1000) / 1000 }}"
                ),
            },
        },
        {
            "name": "decline_low_credit",
            "priority": 20,
            "if": "applicant_credit_score < 620",
            "then": {"decision.status": "declined", "decision.reason": "credit score below 620"},
        },
        {
            "name": "refer_high_dti",
            "priority": 30,
            "if": "applicant_credit_score >= 620 && metrics_dti > 0.43",
            "then": {"decision.status": "refer", "decision.reason": "debt-to-income above 43%"},
        },
        {
            "name": "pmi_required",
            "priority": 35,
            "if": "metrics_ltv > 0.8",
            "then": {"loan.pmi": True},
            "else": {"loan.pmi": False},
        },
        {
            "name": "approve",
            "priority": 40,
            "if": "applicant_credit_score >= 620 && metrics_ltv <= 0.8 && metrics_dti <= 0.43",
            "then": {"decision.status": "approved", "decision.reason": "meets credit, LTV and DTI guidelines"},
        },
        {
            "name": "stamp_reference",
            "priority": 50,
            "if": "decision.status === 'approved'",
            "then": {
                "decision.reference": "{{ 'MTG-' + applicant.name.toUpperCase().split(' ').join('-') }}",
            },
        },
    ],
}
