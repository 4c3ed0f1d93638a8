"""
Rule Engine Acceptance Test Runner

Runs the reference scenarios and demo rule sets in order and prints a
pass/fail banner. This is the CI gate for rule engine changes; the full
suite runs under pytest.

Usage:
    python -m domain_kits.rule_engine.tests.run

    or

    python domain_kits/rule_engine/tests/run.py
"""

import sys
from pathlib import Path

# Add repo root to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent.parent.parent))

from domain_kits.rule_engine.tests.test_demo_rulesets import (
    test_classroom_scoring,
    test_error_taxonomy,
    test_financial_analytics,
    test_mortgage_low_credit_declines,
    test_mortgage_underwriting,
)
from domain_kits.rule_engine.tests.test_engine import (
    test_conflict_later_rule_wins,
    test_doubling_reaches_fixpoint,
    test_iteration_cap,
    test_priority_order,
)


def main():
    """Run all acceptance tests."""
    print("=" * 70)
    print("RULE ENGINE ACCEPTANCE TEST RUNNER")
    print("=" * 70)

    try:
        test_doubling_reaches_fixpoint()
        test_conflict_later_rule_wins()
        test_iteration_cap()
        test_priority_order()
        test_mortgage_underwriting()
        test_mortgage_low_credit_declines()
        test_classroom_scoring()
        test_financial_analytics()
        test_error_taxonomy()

        print("\n" + "=" * 70)
        print("✅ ALL TESTS PASSED")
        print("=" * 70)
        return 0

    except AssertionError as e:
        print("\n" + "=" * 70)
        print("❌ TEST FAILED")
        print("=" * 70)
        print(f"\nError: {e}")
        return 1

    except Exception as e:
        print("\n" + "=" * 70)
        print("❌ UNEXPECTED ERROR")
        print("=" * 70)
        print(f"\nError: {e}")
        import traceback
        traceback.print_exc()
        return 1


if __name__ == '__main__':
    sys.exit(main())
