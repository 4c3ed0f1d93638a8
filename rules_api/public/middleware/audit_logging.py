"""
Audit logging middleware for FastAPI.

This middleware:
1. Reuses or generates a request ID
2. Hashes the request payload (never stores it; states may carry PII)
3. Logs one structured audit entry per request
4. Applies redaction rules to everything it logs

Usage:
    app.add_middleware(AuditLoggingMiddleware)
"""

import json
import hashlib
import time
import logging
import re
from uuid import uuid4
from typing import Optional, Dict, Any
from datetime import datetime, timezone

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response


class AuditLogger:
    """Structured audit logger with redaction rules."""

    # Patterns to redact (sensitive data)
    REDACTION_PATTERNS = {
        "bearer": r"Bearer\s+[a-zA-Z0-9._\-]+",
        "email": r"[\w\.-]+@[\w\.-]+\.\w+",
        "ssn": r"\d{3}-\d{2}-\d{4}",
        "credit_card": r"\d{4}[\s-]?\d{4}[\s-]?\d{4}[\s-]?\d{4}",
        "password": r"(?i)password[:\s=\"]+[^\s,}]+",
        "token": r"(?i)(token|authorization)[:\s=\"]+[^\s,}]+",
    }

    def __init__(self, name: str = "audit", enable_redaction: bool = True):
        self.logger = logging.getLogger(name)
        self.enable_redaction = enable_redaction

    @staticmethod
    def hash_payload(payload: bytes) -> str:
        """Create SHA-256 hash of request payload."""
        if not payload:
            return "sha256:empty"
        h = hashlib.sha256(payload).hexdigest()
        return f"sha256:{h[:16]}..."

    def redact(self, text: str) -> str:
        """Apply redaction rules to remove sensitive data."""
        if not self.enable_redaction or not isinstance(text, str):
            return text

        result = text
        for pattern_name, pattern in self.REDACTION_PATTERNS.items():
            result = re.sub(pattern, f"[REDACTED_{pattern_name.upper()}]", result, flags=re.IGNORECASE)

        return result

    def create_audit_entry(
        self,
        request_id: str,
        endpoint: str,
        http_method: str,
        http_status: int,
        latency_ms: float,
        payload_hash: str,
        payload_bytes: int,
        error_code: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Create a structured audit log entry."""
        return {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "request_id": request_id,
            "endpoint": endpoint,
            "http_method": http_method,
            "http_status": http_status,
            "latency_ms": round(latency_ms, 3),
            "payload_hash": payload_hash,
            "payload_bytes": payload_bytes,
            "error_code": error_code,
        }

    def log_entry(self, entry: Dict[str, Any]):
        """Write audit entry to log (JSON format)."""
        # Redact string fields (paths and error codes can echo user input)
        redacted_entry = {k: self.redact(v) if isinstance(v, str) else v for k, v in entry.items()}

        self.logger.info(json.dumps(redacted_entry))


def error_code_for(status_code: int) -> Optional[str]:
    if status_code < 400:
        return None
    if status_code == 400:
        return "BAD_REQUEST"
    if status_code == 404:
        return "NOT_FOUND"
    if status_code == 413:
        return "PAYLOAD_TOO_LARGE"
    if status_code == 422:
        return "VALIDATION_ERROR"
    if status_code >= 500:
        return "SERVER_ERROR"
    return "CLIENT_ERROR"


class AuditLoggingMiddleware(BaseHTTPMiddleware):
    """
    FastAPI middleware to log all API calls with audit trail.

    Logs contain request_id, endpoint & method, HTTP status & latency,
    payload_hash and size (not the payload itself), and error_code.
    No raw states or rule sets are stored.
    """

    def __init__(self, app, enable_redaction: bool = True, enable_logging: bool = True):
        super().__init__(app)
        self.audit_logger = AuditLogger(enable_redaction=enable_redaction)
        self.enable_logging = enable_logging

    async def dispatch(self, request: Request, call_next) -> Response:
        """Process request, measure latency, log audit entry."""
        request_id = (
            getattr(request.state, "trace_id", None) or request.headers.get("X-Request-ID") or str(uuid4())
        )

        # Starlette caches the body, so the route can still read it
        body = await request.body()
        payload_hash = self.audit_logger.hash_payload(body)

        start_time = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            latency_ms = (time.perf_counter() - start_time) * 1000
            if self.enable_logging:
                self.audit_logger.log_entry(
                    self.audit_logger.create_audit_entry(
                        request_id=request_id,
                        endpoint=str(request.url.path),
                        http_method=request.method,
                        http_status=500,
                        latency_ms=latency_ms,
                        payload_hash=payload_hash,
                        payload_bytes=len(body),
                        error_code="INTERNAL_ERROR",
                    )
                )
            raise

        latency_ms = (time.perf_counter() - start_time) * 1000
        entry = self.audit_logger.create_audit_entry(
            request_id=request_id,
            endpoint=str(request.url.path),
            http_method=request.method,
            http_status=response.status_code,
            latency_ms=latency_ms,
            payload_hash=payload_hash,
            payload_bytes=len(body),
            error_code=error_code_for(response.status_code),
        )
        if self.enable_logging:
            self.audit_logger.log_entry(entry)

        response.headers["X-Request-ID"] = request_id
        return response
