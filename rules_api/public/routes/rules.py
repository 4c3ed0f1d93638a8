"""
Rule engine endpoints.

POST /api/rules/apply     run a rule set against a state to its fixpoint
POST /api/rules/validate  check a rule set without running it

Responses carry hashes of the state and rules so audit logs never need the
raw payloads.
"""
from fastapi import APIRouter, HTTPException, status, Request
from datetime import datetime, timezone
import uuid
import hashlib
import json
import logging
from ..schemas import (
    ApplyRequest,
    ApplyResponse,
    ErrorResponse,
    ValidateRulesRequest,
    ValidateRulesResponse,
)
from ..settings import settings

from domain_kits.rule_engine import (
    InvalidStateError,
    PathError,
    RuleEngine,
    RulesConfigError,
    rules_hash,
    validate_ruleset,
)
from domain_kits.rule_engine.values import canonical_json, is_number

router = APIRouter(tags=["rules"])
logger = logging.getLogger(__name__)

# Audit logger (configured in main.py)
audit_logger = logging.getLogger("audit")


def compute_hash(data) -> str:
    """Compute SHA256 hash of a JSON value."""
    if data is None:
        data = {}
    return "sha256:" + hashlib.sha256(canonical_json(data).encode()).hexdigest()[:12]


def _trace_id(request: Request) -> str:
    return getattr(request.state, "trace_id", None) or str(uuid.uuid4())


def _capped_config(rules_config: dict) -> dict:
    """Copy of rules_config with max_iterations clamped to the service limit."""
    config = dict(rules_config)
    max_iterations = config.get("max_iterations")
    if is_number(max_iterations) and max_iterations > settings.max_iterations_limit:
        logger.info(
            f"max_iterations {max_iterations} capped at {settings.max_iterations_limit}"
        )
        config["max_iterations"] = settings.max_iterations_limit
    return config


def _engine() -> RuleEngine:
    return RuleEngine(
        max_iterations=min(settings.default_max_iterations, settings.max_iterations_limit),
        step_limit=settings.expression_step_limit,
        time_budget_seconds=settings.apply_time_budget_seconds or None,
    )


def log_rules_call(trace_id: str, endpoint: str, http_status: int, **fields):
    """Structured audit line for a rules call (hashes and counters only)."""
    log_entry = {
        "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
        "trace_id": trace_id,
        "endpoint": endpoint,
        "http_method": "POST",
        "http_status": http_status,
    }
    log_entry.update(fields)
    audit_logger.info(json.dumps(log_entry))


@router.post(
    "/api/rules/apply",
    response_model=ApplyResponse,
    responses={400: {"model": ErrorResponse}},
)
def apply_rules_endpoint(request: Request, req_body: ApplyRequest) -> ApplyResponse:
    """
    Apply rules to a state until nothing changes or the iteration cap is hit.

    Expression failures inside rules do not fail the request; they show up as
    error entries in the audit trail.
    """
    trace_id = _trace_id(request)
    rules_config = req_body.rules_config
    config_hash = rules_hash(rules_config)

    rules = rules_config.get("rules")
    if isinstance(rules, list) and len(rules) > settings.max_rules:
        log_rules_call(trace_id, "/api/rules/apply", 400, rules_hash=config_hash, error_code="TOO_MANY_RULES")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={
                "code": "TOO_MANY_RULES",
                "message": f"Rule set has {len(rules)} rules; the limit is {settings.max_rules}",
            },
        )

    if req_body.strict:
        errors = validate_ruleset(rules_config)
        if errors:
            log_rules_call(trace_id, "/api/rules/apply", 400, rules_hash=config_hash, error_code="INVALID_RULESET")
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail={"code": "INVALID_RULESET", "message": "Rule set failed validation", "errors": errors},
            )

    try:
        result = _engine().apply(req_body.state, _capped_config(rules_config))
    except (RulesConfigError, PathError) as e:
        log_rules_call(trace_id, "/api/rules/apply", 400, rules_hash=config_hash, error_code="INVALID_RULES_CONFIG")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"code": "INVALID_RULES_CONFIG", "message": str(e)},
        )
    except InvalidStateError as e:
        log_rules_call(trace_id, "/api/rules/apply", 400, rules_hash=config_hash, error_code="INVALID_STATE")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"code": "INVALID_STATE", "message": str(e)},
        )

    data = result.to_dict()
    state_hash = compute_hash(result.input)
    output_hash = compute_hash(result.output)

    log_rules_call(
        trace_id,
        "/api/rules/apply",
        200,
        rules_hash=config_hash,
        state_hash=state_hash,
        output_hash=output_hash,
        iterations=result.iterations,
        stopped_reason=result.stopped_reason,
        rules_applied=len(result.rules_applied),
        conflicts=len(result.conflicts),
        errors=sum(1 for e in result.audit if e.level == "error"),
    )

    return ApplyResponse(
        trace_id=trace_id,
        status="ok",
        input=data["input"] if req_body.include_input else None,
        output=data["output"],
        iterations=result.iterations,
        converged=result.converged,
        stoppedReason=result.stopped_reason,
        audit=data["audit"],
        conflicts=data["conflicts"],
        rulesApplied=data["rulesApplied"],
        state_hash=state_hash,
        output_hash=output_hash,
        rules_hash=config_hash,
        engine_version=result.engine_version,
    )


@router.post("/api/rules/validate", response_model=ValidateRulesResponse)
def validate_rules_endpoint(request: Request, req_body: ValidateRulesRequest) -> ValidateRulesResponse:
    """Check a rule set. Always 200; problems are listed in `errors`."""
    trace_id = _trace_id(request)
    errors = validate_ruleset(req_body.rules_config)
    config_hash = rules_hash(req_body.rules_config)

    log_rules_call(
        trace_id,
        "/api/rules/validate",
        200,
        rules_hash=config_hash,
        valid=not errors,
        error_count=len(errors),
    )
    return ValidateRulesResponse(
        trace_id=trace_id,
        valid=not errors,
        errors=errors,
        rules_hash=config_hash,
    )
