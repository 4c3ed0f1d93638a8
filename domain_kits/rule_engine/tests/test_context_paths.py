"""Context building and dot-path read/write."""

import copy

from domain_kits.rule_engine.context import build_context, flatten_state
from domain_kits.rule_engine.errors import PathError
from domain_kits.rule_engine.paths import get_path, set_path, split_path
from domain_kits.rule_engine.utilities import UTILITY_NAMES


def test_flatten_state():
    """Test 1: Nested objects flatten to underscore keys; arrays are leaves."""
    state = {
        "user": {"name": "Ari", "address": {"city": "Lisbon"}},
        "tags": ["a", "b"],
        "score": 7,
    }
    assert flatten_state(state) == {
        "user_name": "Ari",
        "user_address_city": "Lisbon",
        "tags": ["a", "b"],
        "score": 7,
    }
    assert flatten_state({}) == {}
    assert flatten_state({"empty": {}}) == {}
    print("✅ PASS: flatten_state")


def test_build_context_contents():
    """Test 2: Context holds flattened keys, nested values and utilities."""
    state = {"user": {"age": 30, "tags": ["x"]}}
    ctx = build_context(state)
    assert ctx["user_age"] == 30
    assert ctx["user_tags"] == ["x"]
    assert ctx["user"] == {"age": 30, "tags": ["x"]}
    for name in ("Math", "JSON", "parseInt", "parseFloat"):
        assert name in ctx, f"Missing utility {name}"
    assert UTILITY_NAMES <= set(ctx)
    print("✅ PASS: build_context")


def test_build_context_does_not_mutate_state():
    """Test 3: Building a context leaves the state untouched."""
    state = {"a": {"b": {"c": 1}}, "list": [1, 2]}
    snapshot = copy.deepcopy(state)
    build_context(state)
    assert state == snapshot
    print("✅ PASS")


def test_context_precedence():
    """Test 4: utilities < flattened keys < nested top-level keys."""
    assert build_context({"Math": 5})["Math"] == 5
    ctx = build_context({"a_b": 1, "a": {"b": 2}})
    assert ctx["a_b"] == 1, "Top-level key must win over the flattened a.b"
    assert ctx["a"] == {"b": 2}
    print("✅ PASS")


def test_split_path():
    """Test 5: Path syntax."""
    assert split_path("a") == ["a"]
    assert split_path("a.b.c") == ["a", "b", "c"]
    for bad in ("", "a..b", ".a", "a."):
        try:
            split_path(bad)
        except PathError:
            continue
        raise AssertionError(f"{bad!r} should be rejected")
    print("✅ PASS")


def test_get_path():
    """Test 6: Reading dot-paths."""
    state = {"a": {"b": {"c": 0}}, "n": None, "xs": [1]}
    assert get_path(state, "a.b.c") == (True, 0)
    assert get_path(state, "n") == (True, None)
    assert get_path(state, "a.missing") == (False, None)
    assert get_path(state, "xs.0") == (False, None)
    print("✅ PASS")


def test_set_path_creates_intermediates():
    """Test 7: Missing intermediate objects are created."""
    state = {}
    set_path(state, "a.b.c", 1)
    assert state == {"a": {"b": {"c": 1}}}
    set_path(state, "a.b.d", 2)
    assert state == {"a": {"b": {"c": 1, "d": 2}}}
    set_path(state, "top", "x")
    assert state["top"] == "x"
    print("✅ PASS")


def test_set_path_overwrites_non_objects():
    """Test 8: A non-object on the path is replaced with an object."""
    state = {"a": 5, "b": ["list"], "c": None}
    set_path(state, "a.x", 1)
    set_path(state, "b.y", 2)
    set_path(state, "c.z", 3)
    assert state == {"a": {"x": 1}, "b": {"y": 2}, "c": {"z": 3}}

    try:
        set_path(state, "a..x", 1)
    except PathError:
        pass
    else:
        raise AssertionError("Empty segment must be rejected")
    print("✅ PASS")
