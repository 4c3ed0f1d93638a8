"""
Fixpoint driver tests: ordering, convergence, conflicts, audit trail,
iteration cap and input immutability.
"""

import copy

from domain_kits.rule_engine import engine as engine_module
from domain_kits.rule_engine.engine import RuleEngine, apply_rules, rules_hash
from domain_kits.rule_engine.errors import InvalidStateError, RulesConfigError
from domain_kits.rule_engine.fixtures import mortgage_underwriting

DOUBLING_RULES = {
    "rules": [{"name": "double", "if": "a < 10", "then": {"a": "{{ a * 2 }}"}}],
}

CONFLICT_RULES = {
    "rules": [
        {"name": "r1", "priority": 1, "then": {"status": "A"}},
        {"name": "r2", "priority": 2, "then": {"status": "B"}},
    ],
}

TOGGLE_RULES = {
    "max_iterations": 5,
    "rules": [{"name": "toggle", "if": True, "then": {"flag": "{{ !flag }}"}}],
}


def messages(result, level=None):
    return [e.message for e in result.audit if level is None or e.level == level]


def test_doubling_reaches_fixpoint():
    """Test 1: a=1 doubles until the condition stops holding."""
    print("\n[TEST 1] Doubling to fixpoint")
    result = apply_rules({"a": 1}, DOUBLING_RULES)

    assert result.output == {"a": 16}, f"Expected a=16, got {result.output}"
    assert result.rules_applied == ("double",) * 4
    assert result.iterations == 5, f"Four changing sweeps plus one quiet sweep, got {result.iterations}"
    assert result.converged
    assert result.stopped_reason == "converged"
    assert "Converged after 5 iterations" in messages(result)
    assert messages(result)[-1] == "Completed in 5 iterations"
    print(f"✅ PASS: output={result.output}, iterations={result.iterations}")


def test_conflict_later_rule_wins():
    """Test 2: Two rules writing one field; the later one wins and is logged once."""
    print("\n[TEST 2] Conflict resolution")
    result = apply_rules({}, CONFLICT_RULES)

    assert result.output == {"status": "B"}
    assert len(result.conflicts) == 1, f"Expected one conflict entry, got {result.conflicts}"
    conflict = result.conflicts[0].to_dict()
    assert conflict["field"] == "status"
    assert conflict["previousRule"] == "r1"
    assert conflict["currentRule"] == "r2"
    assert conflict["resolution"] == "priority_override"
    assert conflict["iteration"] == 1
    assert result.iterations == 2
    assert result.converged
    assert "Conflict: r1 vs r2 on status → r2 wins" in messages(result, "warning")
    assert "Conflicts resolved: 1" in messages(result, "warning")
    print(f"✅ PASS: conflicts={[c.to_dict() for c in result.conflicts]}")


def test_iteration_cap():
    """Test 3: A toggling rule stops at max_iterations with a warning."""
    print("\n[TEST 3] Iteration cap")
    result = apply_rules({"flag": False}, TOGGLE_RULES)

    assert result.iterations == 5
    assert result.stopped_reason == "max_iterations"
    assert not result.converged
    assert result.output == {"flag": True}
    assert "Stopped at max iterations: 5" in messages(result, "warning")
    print("✅ PASS: stopped after 5 sweeps")


def test_engine_default_and_invalid_max_iterations():
    """Test 4: Engine-level default cap; invalid config value falls back to it."""
    rules = {"rules": TOGGLE_RULES["rules"]}
    assert RuleEngine(max_iterations=3).apply({"flag": False}, rules).iterations == 3
    assert RuleEngine().apply({"flag": False}, rules).iterations == 10

    result = RuleEngine(max_iterations=4).apply({"flag": False}, dict(rules, max_iterations=0))
    assert result.iterations == 4
    assert any("Ignoring invalid max_iterations" in m for m in messages(result, "warning"))
    print("✅ PASS")


def test_priority_order():
    """Test 5: Lower priority runs first, so later rules see its writes."""
    print("\n[TEST 5] Priority ordering")
    rules = {
        "rules": [
            {"name": "reader", "priority": 2, "then": {"x": "{{ y === 1 ? 'after' : 'before' }}"}},
            {"name": "setter", "priority": 1, "then": {"y": 1}},
        ]
    }
    result = apply_rules({}, rules)
    assert result.output == {"y": 1, "x": "after"}
    assert result.rules_applied[:2] == ("setter", "reader")
    assert "Execution order: setter(1) → reader(2)" in messages(result)
    assert result.iterations == 2
    print("✅ PASS")


def test_priority_zero_default_and_ties():
    """Test 6: priority 0 is honoured, missing priority sorts last, ties keep list order."""
    zero_first = apply_rules(
        {},
        {"rules": [{"name": "d", "then": {"v": "d"}}, {"name": "z", "priority": 0, "then": {"v": "z"}}]},
    )
    assert zero_first.output == {"v": "d"}
    assert zero_first.conflicts[0].previous_rule == "z"
    assert zero_first.conflicts[0].current_rule == "d"

    default_last = apply_rules(
        {},
        {"rules": [{"name": "default", "then": {"v": 1}}, {"name": "late", "priority": 998, "then": {"v": 2}}]},
    )
    assert default_last.output == {"v": 1}
    assert "Execution order: late(998) → default(default)" in messages(default_last)

    ties = apply_rules(
        {},
        {"rules": [{"name": "first", "priority": 1, "then": {"w": 1}}, {"name": "second", "priority": 1, "then": {"w": 2}}]},
    )
    assert ties.output == {"w": 2}
    assert ties.rules_applied[:2] == ("first", "second")
    print("✅ PASS")


def test_sequential_writes_within_rule():
    """Test 7: Later entries of a rule see earlier entries of the same rule."""
    result = apply_rules({}, {"rules": [{"name": "calc", "then": {"x": 5, "y": "{{ x * 2 }}"}}]})
    assert result.output == {"x": 5, "y": 10}
    print("✅ PASS")


def test_literal_values_and_templates():
    """Test 8: Only whole-string templates are evaluated when writing."""
    rules = {
        "rules": [
            {
                "name": "write",
                "then": {
                    "label": "Score: {{ s }}",
                    "n": "{{ 1 + 1 }}",
                    "flag": True,
                    "obj": {"k": "{{ s }}"},
                    "deep.path.value": "{{ s * 10 }}",
                    "ratio": "{{ 1 / 0 }}",
                },
            }
        ]
    }
    result = apply_rules({"s": 4}, rules)
    assert result.output["label"] == "Score: {{ s }}"
    assert result.output["n"] == 2
    assert result.output["flag"] is True
    assert result.output["obj"] == {"k": "{{ s }}"}
    assert result.output["deep"] == {"path": {"value": 40}}
    assert result.output["ratio"] is None, "Non-finite numbers are stored as null"
    print("✅ PASS")


def test_failed_condition_skips_rule():
    """Test 9: A condition that errors is false and recorded as an error."""
    rules = {
        "rules": [
            {"name": "bad", "if": "missing_field > 1", "then": {"x": 1}},
            {"name": "good", "then": {"y": 1}},
        ]
    }
    result = apply_rules({}, rules)
    assert result.output == {"y": 1}
    assert "bad" not in result.rules_applied
    errors = messages(result, "error")
    assert errors, "Expected an error audit entry"
    assert errors[0].startswith("Condition evaluation failed in bad [reference_error]: missing_field > 1")
    assert "Skipped: bad (condition not met)" in messages(result)
    print("✅ PASS")


def test_failed_template_keeps_literal():
    """Test 10: A template that errors writes the raw template string."""
    result = apply_rules({}, {"rules": [{"name": "t", "then": {"y": "{{ nope.deep }}"}}]})
    assert result.output == {"y": "{{ nope.deep }}"}
    assert any(m.startswith("Template evaluation failed in t") for m in messages(result, "error"))
    assert result.iterations == 2
    print("✅ PASS")


def test_else_branch():
    """Test 11: else runs when the condition is false and is not counted as applied."""
    rules = {"rules": [{"name": "gate", "if": "a > 5", "then": {"big": True}, "else": {"big": False}}]}
    small = apply_rules({"a": 1}, rules)
    assert small.output == {"a": 1, "big": False}
    assert small.rules_applied == ()
    assert "Applied (else): gate" in messages(small)
    assert "Changed by gate (else): big" in messages(small)

    big = apply_rules({"a": 9}, rules)
    assert big.output == {"a": 9, "big": True}
    assert big.rules_applied == ("gate", "gate")
    assert "Changed by gate (then): big" in messages(big)
    print("✅ PASS")


def test_rule_without_actions_is_noop():
    """Test 12: A rule with no then/else fires but changes nothing."""
    result = apply_rules({"a": 1}, {"rules": [{"name": "noop", "if": True}]})
    assert result.output == {"a": 1}
    assert result.rules_applied == ("noop",)
    assert result.iterations == 1
    print("✅ PASS")


def test_empty_rules_and_state():
    """Test 13: Degenerate inputs."""
    empty_rules = apply_rules({"a": 1}, {"rules": []})
    assert empty_rules.output == {"a": 1}
    assert empty_rules.iterations == 1
    assert empty_rules.rules_applied == ()

    no_state = apply_rules(None, {"rules": []})
    assert no_state.output == {}
    assert no_state.input == {}
    print("✅ PASS")


def test_invalid_inputs_raise():
    """Test 14: Structural problems are rejected up front."""
    cases = [
        (lambda: apply_rules({}, {"rules": "nope"}), RulesConfigError),
        (lambda: apply_rules({}, {}), RulesConfigError),
        (lambda: apply_rules({}, ["rules"]), RulesConfigError),
        (lambda: apply_rules({}, {"rules": [42]}), RulesConfigError),
        (lambda: apply_rules({}, {"rules": [{"name": "x", "then": ["a"]}]}), RulesConfigError),
        (lambda: apply_rules([1, 2], {"rules": []}), InvalidStateError),
        (lambda: apply_rules("state", {"rules": []}), InvalidStateError),
    ]
    for call, expected in cases:
        try:
            call()
        except expected:
            continue
        raise AssertionError(f"Expected {expected.__name__}")
    print("✅ PASS")


def test_input_is_not_mutated():
    """Test 15: Caller's state is deep-copied; result.input is the original snapshot."""
    state = {"a": {"b": 1}, "xs": [1, 2]}
    snapshot = copy.deepcopy(state)
    result = apply_rules(state, {"rules": [{"name": "w", "then": {"a.b": 2, "a.c": "{{ xs.length }}"}}]})

    assert state == snapshot
    assert result.input == snapshot
    assert result.input is not state
    assert result.output == {"a": {"b": 2, "c": 2}, "xs": [1, 2]}
    print("✅ PASS")


def test_determinism():
    """Test 16: Same input and rules give the same result."""
    first = apply_rules(mortgage_underwriting.INPUT_STATE, mortgage_underwriting.RULES_CONFIG)
    second = apply_rules(mortgage_underwriting.INPUT_STATE, mortgage_underwriting.RULES_CONFIG)
    assert first.output == second.output
    assert first.iterations == second.iterations
    assert first.rules_applied == second.rules_applied
    assert messages(first) == messages(second)
    assert first.rules_hash == second.rules_hash
    print("✅ PASS")


def test_idempotence_on_converged_output():
    """Test 17: Re-applying rules to a converged output is a single quiet sweep."""
    first = apply_rules({"a": 1}, DOUBLING_RULES)
    again = apply_rules(first.output, DOUBLING_RULES)
    assert again.output == first.output
    assert again.iterations == 1
    assert again.rules_applied == ()
    print("✅ PASS")


def test_logs_reset_between_runs():
    """Test 18: One engine instance, independent audit and conflict logs per run."""
    engine = RuleEngine()
    first = engine.apply({}, CONFLICT_RULES)
    second = engine.apply({}, CONFLICT_RULES)
    assert len(first.audit) == len(second.audit)
    assert len(second.conflicts) == 1
    print("✅ PASS")


def test_result_shape_and_rules_hash():
    """Test 19: Wire shape and rules fingerprint."""
    result = apply_rules({"a": 1}, DOUBLING_RULES)
    data = result.to_dict()
    for key in ("input", "output", "iterations", "audit", "conflicts", "rulesApplied", "stoppedReason", "rulesHash"):
        assert key in data, f"Missing {key}"
    assert set(data["audit"][0]) == {"timestamp", "level", "message"}
    assert data["audit"][0]["timestamp"].endswith("Z")

    assert result.rules_hash.startswith("sha256:")
    assert result.rules_hash == rules_hash(copy.deepcopy(DOUBLING_RULES))
    changed = copy.deepcopy(DOUBLING_RULES)
    changed["rules"][0]["if"] = "a < 20"
    assert rules_hash(changed) != result.rules_hash
    print("✅ PASS")


class _ExpiredClock:
    def __init__(self):
        self.calls = 0

    def monotonic(self):
        self.calls += 1
        return 0.0 if self.calls == 1 else 100.0


def test_time_budget(monkeypatch):
    """Test 20: Wall-clock budget stops the run and is reported as an error."""
    monkeypatch.setattr(engine_module, "time", _ExpiredClock())
    result = RuleEngine(time_budget_seconds=1).apply({"a": 1}, DOUBLING_RULES)

    assert result.stopped_reason == "time_budget_exceeded"
    assert not result.converged
    assert result.iterations == 1
    assert result.output == {"a": 1}
    assert any("time budget" in m for m in messages(result, "error"))


def test_blank_condition_means_always():
    """Test 21: A whitespace-only condition behaves like an absent one."""
    rules = {"rules": [{"name": "r", "if": "   ", "then": {"x": 1}}]}
    result = apply_rules({}, rules)
    assert result.output == {"x": 1}
    assert result.rules_applied == ("r",)
    assert messages(result, "error") == []
    print("✅ PASS")


def test_runaway_array_growth_is_stopped():
    """Test 22: A template that doubles an array each step fails instead of exhausting memory."""
    seed = ", ".join(["0"] * 40)
    template = "{{ [" + seed + "].reduce((acc, x) => acc.concat(acc), [0]).length }}"
    rules = {"rules": [{"name": "grow", "then": {"n": template}}]}
    result = apply_rules({}, rules)
    assert result.output["n"] == template, "Failed template is written verbatim"
    errors = messages(result, "error")
    assert errors and "[budget_exceeded]" in errors[0]
    print("✅ PASS")
