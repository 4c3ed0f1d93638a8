"""The CI smoke client against the in-process app."""

from fastapi.testclient import TestClient

from rules_api.public.main import app
from tools.ci import rules_http
from tools.client import smoke_apply_rules

client = TestClient(app)


def _post_json(path, payload, **kwargs):
    return client.post(path, json=payload).json()


def test_smoke_client_passes(monkeypatch):
    """Test 1: Smoke script exits 0 against a healthy service."""
    monkeypatch.setattr(smoke_apply_rules, "post_json", _post_json)
    assert smoke_apply_rules.main() == 0


def test_smoke_client_fails_on_error_status(monkeypatch):
    """Test 2: Any non-ok response fails the gate."""
    responses = iter([{"valid": True, "errors": []}, {"status": "error", "error": {"code": "INTERNAL_ERROR"}}])
    monkeypatch.setattr(smoke_apply_rules, "post_json", lambda path, payload, **kw: next(responses))
    assert smoke_apply_rules.main() == 1


def test_base_url_guard_in_ci(monkeypatch):
    """Test 3: CI runs must name the target explicitly."""
    monkeypatch.setenv("GITHUB_ACTIONS", "true")
    monkeypatch.delenv("RULES_API_BASE_URL", raising=False)
    try:
        rules_http.base_url()
    except RuntimeError as e:
        assert "RULES_API_BASE_URL" in str(e)
    else:
        raise AssertionError("Expected RuntimeError")

    monkeypatch.setenv("RULES_API_BASE_URL", "https://rules.example.test/")
    assert rules_http.base_url() == "https://rules.example.test/"
