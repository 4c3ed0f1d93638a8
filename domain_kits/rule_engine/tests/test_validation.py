"""Ruleset validation."""

from domain_kits.rule_engine.fixtures import classroom_scoring, financial_analytics, mortgage_underwriting
from domain_kits.rule_engine.validation import validate_ruleset


def errors_for(rule, **config):
    return validate_ruleset(dict(config, rules=[rule]))


def test_fixture_rulesets_are_valid():
    """Test 1: Shipped demo rule sets validate cleanly."""
    for fixture in (mortgage_underwriting, classroom_scoring, financial_analytics):
        errors = validate_ruleset(fixture.RULES_CONFIG)
        assert errors == [], f"{fixture.__name__}: {errors}"
    print("✅ PASS")


def test_top_level_shape():
    """Test 2: Config must be an object with a rules array."""
    assert validate_ruleset(None) == ["Rules configuration must be an object"]
    assert validate_ruleset([]) == ["Rules configuration must be an object"]
    assert validate_ruleset({}) == ['Rules configuration must have a "rules" array']
    assert validate_ruleset({"rules": {}}) == ['Rules configuration must have a "rules" array']
    assert validate_ruleset({"rules": []}) == []
    print("✅ PASS")


def test_max_iterations():
    """Test 3: max_iterations must be a positive integer."""
    ok = {"name": "r", "then": {"a": 1}}
    assert errors_for(ok, max_iterations=5) == []
    for bad in (0, -1, 2.5, "10", True):
        assert errors_for(ok, max_iterations=bad) == ["max_iterations must be a positive integer"], bad
    print("✅ PASS")


def test_names():
    """Test 4: Missing and duplicate names."""
    assert errors_for({"then": {"a": 1}}) == ["Rule 0: Missing name"]
    assert errors_for({"name": "  ", "then": {"a": 1}}) == ["Rule 0: Missing name"]

    duplicate = validate_ruleset(
        {"rules": [{"name": "same", "then": {"a": 1}}, {"name": "same", "then": {"b": 1}}]}
    )
    assert duplicate == ['Rule 1: Duplicate rule name "same"']

    not_object = validate_ruleset({"rules": ["rule"]})
    assert not_object == ["Rule 0: Invalid rule (not an object)"]
    print("✅ PASS")


def test_priority():
    """Test 5: Priority must be a non-negative number; 0 is allowed."""
    assert errors_for({"name": "p", "priority": 0, "then": {"a": 1}}) == []
    assert errors_for({"name": "p", "priority": -1, "then": {"a": 1}}) == [
        "Rule 0 (p): Priority must be a non-negative number"
    ]
    assert errors_for({"name": "p", "priority": "high", "then": {"a": 1}}) == [
        "Rule 0 (p): Priority must be a non-negative number"
    ]
    print("✅ PASS")


def test_condition_syntax():
    """Test 6: Conditions must parse; booleans are accepted."""
    assert errors_for({"name": "c", "if": True, "then": {"a": 1}}) == []
    # blank conditions count as absent, the same as apply() treats them
    assert errors_for({"name": "c", "if": "   ", "then": {"a": 1}}) == []
    assert errors_for({"name": "c", "if": "a > 1 && b.c === 'x'", "then": {"a": 1}}) == []

    errors = errors_for({"name": "c", "if": "a >", "then": {"a": 1}})
    assert len(errors) == 1
    assert errors[0].startswith("Rule 0 (c): Invalid condition syntax - ")

    errors = errors_for({"name": "c", "if": 5, "then": {"a": 1}})
    assert errors == ["Rule 0 (c): Condition must be an expression string or a boolean"]
    print("✅ PASS")


def test_actions():
    """Test 7: then/else presence, shape, paths and templates."""
    assert errors_for({"name": "a"}) == ["Rule 0 (a): Must have 'then' or 'else' clause"]
    assert errors_for({"name": "a", "else": {"x": 1}}) == []
    assert errors_for({"name": "a", "then": ["x"]}) == [
        "Rule 0 (a): 'then' must be an object mapping paths to values"
    ]
    assert errors_for({"name": "a", "then": {"x..y": 1}}) == ["Rule 0 (a): Invalid path 'x..y' in 'then'"]

    errors = errors_for({"name": "a", "then": {"total": "{{ price * }}"}})
    assert len(errors) == 1
    assert errors[0].startswith("Rule 0 (a): Invalid template for total - ")

    # literal text with embedded braces is not a template
    assert errors_for({"name": "a", "then": {"label": "Total: {{ price * }}"}}) == []
    print("✅ PASS")


def test_multiple_errors_are_collected():
    """Test 8: Validation reports every problem, not just the first."""
    errors = validate_ruleset(
        {
            "max_iterations": 0,
            "rules": [
                {"if": "x >", "then": {"a": "{{ + }}"}},
                {"name": "dup", "then": {"a": 1}},
                {"name": "dup", "priority": -5},
            ],
        }
    )
    assert len(errors) == 7, errors
    print(f"✅ PASS: {len(errors)} errors")
