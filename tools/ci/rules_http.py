"""Minimal HTTP client helpers for rules API CI gates.

- Uses stdlib only (urllib) to avoid extra deps in CI.
- Optional auth header for deployments behind a gateway:
  - Authorization: Bearer <api-key>

Environment variables:
- RULES_API_BASE_URL (default: http://localhost:8000)
- RULES_API_KEY (optional)
"""

from __future__ import annotations

import json
import os
import urllib.error
import urllib.request
from typing import Any, Dict, Optional


def env(name: str, default: Optional[str] = None) -> Optional[str]:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    return value.strip()


def base_url() -> str:
    if os.getenv("GITHUB_ACTIONS", "").lower() == "true" and not env("RULES_API_BASE_URL"):
        raise RuntimeError(
            "RULES_API_BASE_URL must be set in GitHub Actions to avoid accidentally calling localhost."
        )
    return env("RULES_API_BASE_URL") or "http://localhost:8000"


def post_json(path: str, payload: Dict[str, Any], *, timeout_s: int = 30) -> Dict[str, Any]:
    url = base_url().rstrip("/") + path
    headers = {"Content-Type": "application/json"}
    api_key = env("RULES_API_KEY")
    if api_key:
        headers["Authorization"] = f"Bearer {api_key}"

    req = urllib.request.Request(
        url=url,
        data=json.dumps(payload).encode("utf-8"),
        method="POST",
        headers=headers,
    )

    try:
        with urllib.request.urlopen(req, timeout=timeout_s) as resp:
            raw = resp.read().decode("utf-8")
            return json.loads(raw) if raw else {}
    except urllib.error.HTTPError as e:
        raw = e.read().decode("utf-8") if getattr(e, "fp", None) else ""
        try:
            detail = json.loads(raw) if raw else {"raw": raw}
        except ValueError:
            detail = {"raw": raw}
        raise RuntimeError(f"HTTP {e.code} calling {url}: {detail}") from e
    except urllib.error.URLError as e:
        raise RuntimeError(f"Network error calling {url}: {e}") from e
