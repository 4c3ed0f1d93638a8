"""HTTP surface tests for the rules API (FastAPI TestClient)."""

import json
import logging

from fastapi.testclient import TestClient

from domain_kits.rule_engine.fixtures import mortgage_underwriting
from rules_api.public.main import app
from rules_api.public.settings import settings

client = TestClient(app)

DOUBLING_RULES = {"rules": [{"name": "double", "if": "a < 10", "then": {"a": "{{ a * 2 }}"}}]}
TOGGLE_RULES = {"max_iterations": 50, "rules": [{"name": "toggle", "then": {"flag": "{{ !flag }}"}}]}


def test_health():
    """Test 1: Health endpoint is a plain heartbeat."""
    resp = client.get("/health")
    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "ok"
    assert body["service"] == "rules-api"
    assert body["engine_version"]
    print("✅ PASS")


def test_apply_doubling():
    """Test 2: Apply returns the engine result plus hashes."""
    resp = client.post(
        "/api/rules/apply",
        json={"state": {"a": 1}, "rules_config": DOUBLING_RULES},
        headers={"X-Request-ID": "trace-123"},
    )
    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["status"] == "ok"
    assert body["trace_id"] == "trace-123"
    assert resp.headers["X-Request-ID"] == "trace-123"
    assert body["output"] == {"a": 16}
    assert body["iterations"] == 5
    assert body["converged"] is True
    assert body["stoppedReason"] == "converged"
    assert body["rulesApplied"] == ["double"] * 4
    assert body["input"] is None
    assert body["state_hash"].startswith("sha256:")
    assert body["rules_hash"].startswith("sha256:")
    assert all(set(e) == {"timestamp", "level", "message"} for e in body["audit"])
    print(f"✅ PASS: output={body['output']}")


def test_apply_conflict_and_include_input():
    """Test 3: Conflicts use camelCase keys; input echo is opt-in."""
    rules = {
        "rules": [
            {"name": "r1", "priority": 1, "then": {"status": "A"}},
            {"name": "r2", "priority": 2, "then": {"status": "B"}},
        ]
    }
    resp = client.post("/api/rules/apply", json={"state": {}, "rules_config": rules, "include_input": True})
    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["output"] == {"status": "B"}
    assert body["input"] == {}
    assert body["conflicts"] == [
        {"field": "status", "previousRule": "r1", "currentRule": "r2", "resolution": "priority_override", "iteration": 1}
    ]
    print("✅ PASS")


def test_apply_mortgage_fixture():
    """Test 4: Demo rule set end to end over HTTP."""
    resp = client.post(
        "/api/rules/apply",
        json={"state": mortgage_underwriting.INPUT_STATE, "rules_config": mortgage_underwriting.RULES_CONFIG, "strict": True},
    )
    assert resp.status_code == 200, resp.text
    assert resp.json()["output"]["decision"]["status"] == "approved"
    print("✅ PASS")


def test_state_hash_is_deterministic():
    """Test 5: Same input, same hashes."""
    payload = {"state": {"b": 1, "a": {"y": 2, "x": 1}}, "rules_config": DOUBLING_RULES}
    first = client.post("/api/rules/apply", json=payload).json()
    second = client.post("/api/rules/apply", json=payload).json()
    assert first["state_hash"] == second["state_hash"]
    assert first["rules_hash"] == second["rules_hash"]
    assert first["output_hash"] == second["output_hash"]
    print("✅ PASS")


def test_invalid_rules_config():
    """Test 6: Structural problems map to INVALID_RULES_CONFIG in the error envelope."""
    resp = client.post("/api/rules/apply", json={"state": {}, "rules_config": {"rules": "nope"}})
    assert resp.status_code == 400
    body = resp.json()
    assert body["status"] == "error"
    assert body["error"]["code"] == "INVALID_RULES_CONFIG"
    assert body["trace_id"]

    resp = client.post("/api/rules/apply", json={"state": {}, "rules_config": {"rules": [{"name": "p", "then": {"a..b": 1}}]}})
    assert resp.status_code == 400
    assert resp.json()["error"]["code"] == "INVALID_RULES_CONFIG"
    print("✅ PASS")


def test_strict_mode_rejects_invalid_ruleset():
    """Test 7: strict=True validates before running."""
    rules = {"rules": [{"name": "bad", "if": "a >", "then": {"x": 1}}]}
    lenient = client.post("/api/rules/apply", json={"state": {}, "rules_config": rules})
    assert lenient.status_code == 200
    assert any(e["level"] == "error" for e in lenient.json()["audit"])

    strict = client.post("/api/rules/apply", json={"state": {}, "rules_config": rules, "strict": True})
    assert strict.status_code == 400
    error = strict.json()["error"]
    assert error["code"] == "INVALID_RULESET"
    assert len(error["errors"]) == 1
    assert error["errors"][0].startswith("Rule 0 (bad): Invalid condition syntax")
    print("✅ PASS")


def test_max_iterations_capped(monkeypatch):
    """Test 8: Client max_iterations cannot exceed the service limit."""
    monkeypatch.setattr(settings, "max_iterations_limit", 3)
    resp = client.post("/api/rules/apply", json={"state": {"flag": False}, "rules_config": TOGGLE_RULES})
    assert resp.status_code == 200
    body = resp.json()
    assert body["iterations"] == 3
    assert body["stoppedReason"] == "max_iterations"
    assert body["converged"] is False


def test_too_many_rules(monkeypatch):
    """Test 9: Rule count limit."""
    monkeypatch.setattr(settings, "max_rules", 1)
    rules = {"rules": [{"name": "a", "then": {"x": 1}}, {"name": "b", "then": {"y": 1}}]}
    resp = client.post("/api/rules/apply", json={"state": {}, "rules_config": rules})
    assert resp.status_code == 400
    assert resp.json()["error"]["code"] == "TOO_MANY_RULES"


def test_request_validation_error():
    """Test 10: Malformed bodies use the same error envelope."""
    resp = client.post("/api/rules/apply", json={"state": {}})
    assert resp.status_code == 422
    body = resp.json()
    assert body["status"] == "error"
    assert body["error"]["code"] == "REQUEST_VALIDATION_ERROR"

    resp = client.post("/api/rules/apply", json={"state": [1, 2], "rules_config": DOUBLING_RULES})
    assert resp.status_code == 422
    print("✅ PASS")


def test_validate_endpoint():
    """Test 11: Validation endpoint lists problems without running rules."""
    ok = client.post("/api/rules/validate", json={"rules_config": mortgage_underwriting.RULES_CONFIG})
    assert ok.status_code == 200
    assert ok.json()["valid"] is True
    assert ok.json()["errors"] == []

    bad = client.post(
        "/api/rules/validate",
        json={"rules_config": {"rules": [{"then": {"a": 1}}, {"name": "x", "priority": -1, "then": {"a": 1}}]}},
    )
    assert bad.status_code == 200
    body = bad.json()
    assert body["valid"] is False
    assert body["errors"] == ["Rule 0: Missing name", "Rule 1 (x): Priority must be a non-negative number"]
    assert body["rules_hash"].startswith("sha256:")

    not_object = client.post("/api/rules/validate", json={"rules_config": "rules"})
    assert not_object.json()["errors"] == ["Rules configuration must be an object"]
    print("✅ PASS")


def test_audit_log_has_hashes_not_payloads(caplog):
    """Test 12: Audit lines carry hashes and counters, never raw state."""
    caplog.set_level(logging.INFO, logger="audit")
    resp = client.post(
        "/api/rules/apply",
        json={"state": mortgage_underwriting.INPUT_STATE, "rules_config": mortgage_underwriting.RULES_CONFIG},
    )
    assert resp.status_code == 200

    audit_lines = [json.loads(r.getMessage()) for r in caplog.records if r.name == "audit"]
    assert audit_lines, "Expected audit log lines"
    apply_lines = [line for line in audit_lines if line.get("iterations") is not None]
    assert apply_lines and apply_lines[-1]["rules_hash"] == resp.json()["rules_hash"]
    assert any(line.get("payload_hash", "").startswith("sha256:") for line in audit_lines)
    assert not any("Dana Reyes" in r.getMessage() for r in caplog.records if r.name == "audit")
    print("✅ PASS")
