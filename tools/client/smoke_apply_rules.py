"""Client-style smoke test for a deployed rules API.

- Uses stdlib-only HTTP client in tools/ci/rules_http.py
- Exercises: /api/rules/validate, then /api/rules/apply with the classroom
  demo rule set, and checks the computed grade and the result hashes

Env vars:
- RULES_API_BASE_URL
- RULES_API_KEY (optional)

Exit codes:
- 0: both calls succeeded and the output matched
- 1: error
"""

from __future__ import annotations

import json
import sys
from pathlib import Path

repo_root = Path(__file__).resolve().parents[2]
if str(repo_root) not in sys.path:
    sys.path.insert(0, str(repo_root))

from domain_kits.rule_engine.fixtures import classroom_scoring
from tools.ci.rules_http import post_json


def main() -> int:
    check = post_json("/api/rules/validate", {"rules_config": classroom_scoring.RULES_CONFIG})
    if not check.get("valid"):
        print(f"ERROR: demo rule set rejected: {check.get('errors')}", file=sys.stderr)
        return 1

    resp = post_json(
        "/api/rules/apply",
        {"state": classroom_scoring.INPUT_STATE, "rules_config": classroom_scoring.RULES_CONFIG, "strict": True},
    )

    status = str(resp.get("status") or "")
    output = resp.get("output") or {}
    grade = (output.get("summary") or {}).get("grade")

    required = [
        ("trace_id", resp.get("trace_id")),
        ("state_hash", resp.get("state_hash")),
        ("rules_hash", resp.get("rules_hash")),
        ("output.summary.grade", grade),
    ]
    missing = [name for name, val in required if not val]

    print(json.dumps({
        "status": status,
        "trace_id": resp.get("trace_id"),
        "iterations": resp.get("iterations"),
        "stoppedReason": resp.get("stoppedReason"),
        "grade": grade,
    }, indent=2))

    if status != "ok":
        print("ERROR: status != ok", file=sys.stderr)
        return 1
    if missing:
        print(f"ERROR: missing required fields: {missing}", file=sys.stderr)
        return 1
    if grade != "B" or resp.get("stoppedReason") != "converged":
        print(f"ERROR: unexpected result grade={grade} stoppedReason={resp.get('stoppedReason')}", file=sys.stderr)
        return 1

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
