"""
Pydantic models for request/response validation.
These define the exact contract between client and API.
"""
from pydantic import BaseModel, Field
from typing import Optional, Dict, Any, List
from datetime import datetime


class AuditEntryModel(BaseModel):
    """One audit trail line from an engine run."""
    timestamp: str = Field(..., description="When the entry was written (ISO8601, UTC)")
    level: str = Field(..., description="One of: info, warning, error")
    message: str = Field(..., description="Human-readable audit message")


class ConflictModel(BaseModel):
    """Two rules wrote the same field in one sweep; the later rule won."""
    field: str = Field(..., description="Dot-path that was overwritten")
    previousRule: str = Field(..., description="Rule that wrote the field first")
    currentRule: str = Field(..., description="Rule whose value was kept")
    resolution: str = Field("priority_override", description="Always 'priority_override'")
    iteration: int = Field(..., ge=1, description="Sweep in which the conflict first happened")


class ApplyRequest(BaseModel):
    """
    Apply a rule set to a JSON state.

    rules_config is passed through to the engine as-is; structural problems
    are reported as INVALID_RULES_CONFIG. With strict=True the rule set is
    validated first and any problem rejects the request.
    """
    state: Optional[Dict[str, Any]] = Field(default_factory=dict, description="Input state (JSON object)")
    rules_config: Dict[str, Any] = Field(..., description='Rules configuration: {"max_iterations"?, "rules": [...]}')
    strict: bool = Field(False, description="If True, reject rule sets that fail validation")
    include_input: bool = Field(False, description="If True, echo the input state in the response")


class ApplyResponse(BaseModel):
    """Engine result plus hashes for the audit trail."""
    trace_id: str = Field(..., description="Unique request ID for audit trail")
    status: str = Field("ok", description="Always 'ok' on success")
    input: Optional[Dict[str, Any]] = Field(None, description="Input state (only when include_input=True)")
    output: Dict[str, Any] = Field(..., description="State after the last sweep")
    iterations: int = Field(..., ge=0, description="Number of sweeps run")
    converged: bool = Field(..., description="True if the last sweep changed nothing")
    stoppedReason: str = Field(..., description="converged | max_iterations | time_budget_exceeded")
    audit: List[AuditEntryModel] = Field(default_factory=list)
    conflicts: List[ConflictModel] = Field(default_factory=list)
    rulesApplied: List[str] = Field(default_factory=list, description="Rule names in application order")
    state_hash: str = Field(..., description="SHA256 hash of the input state")
    output_hash: str = Field(..., description="SHA256 hash of the output state")
    rules_hash: str = Field(..., description="SHA256 hash of the rules configuration")
    engine_version: str = Field(..., description="Rule engine version")


class ValidateRulesRequest(BaseModel):
    """Validate a rule set without applying it."""
    rules_config: Any = Field(..., description="Rules configuration to check")


class ValidateRulesResponse(BaseModel):
    trace_id: str = Field(..., description="Unique request ID for audit trail")
    valid: bool = Field(..., description="True when no problems were found")
    errors: List[str] = Field(default_factory=list, description="Human-readable problems, in rule order")
    rules_hash: str = Field(..., description="SHA256 hash of the rules configuration")


class ErrorResponse(BaseModel):
    """Standard error response."""
    trace_id: str = Field(..., description="Unique request ID")
    status: str = Field(default="error", description="Always 'error'")
    error: Dict[str, Any] = Field(..., description="Error details with 'code', 'message', optional 'errors'")


class HealthResponse(BaseModel):
    """Health check response."""
    status: str = Field(..., description="'ok' if healthy")
    service: str = Field(..., description="Service name")
    version: str = Field(..., description="API version")
    engine_version: str = Field(..., description="Rule engine version")
    commit: str = Field(..., description="Git commit hash")
    timestamp: datetime = Field(..., description="Current time (ISO8601)")
