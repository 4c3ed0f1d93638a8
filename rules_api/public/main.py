"""
FastAPI application for the rule engine API.

Wraps domain_kits.rule_engine behind two JSON endpoints (apply, validate)
plus a health check. Rule expressions are interpreted, never executed as
code, so rule sets can be accepted from API clients.

Security features enabled:
- Audit logging (request ID, payload hash, latency, status)
- Request redaction (removes PII, secrets from logged fields)
- Engine limits (iteration cap, expression step budget, wall-clock budget)
"""
from fastapi import FastAPI, status, Request, HTTPException
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
import os
import logging
import uuid
import time
from contextvars import ContextVar

from rules_api.public.routes import health, rules
from rules_api.public.middleware.audit_logging import AuditLoggingMiddleware
from rules_api.public.settings import settings

# Context var for trace_id (used in logging)
trace_id_ctx: ContextVar[str] = ContextVar('trace_id', default='-')


# Logging filter to inject trace_id into all log records
class TraceIdFilter(logging.Filter):
    def filter(self, record):
        record.trace_id = trace_id_ctx.get()
        return True


# Configure logging (audit logs to stdout, rotated by log handler)
root_logger = logging.getLogger()
if not root_logger.handlers:
    logging.basicConfig(
        level=logging.INFO,
        format='[%(trace_id)s] %(name)s %(levelname)s %(message)s',
    )

# Add trace_id filter to root logger
for handler in logging.root.handlers:
    if not any(isinstance(f, TraceIdFilter) for f in handler.filters):
        handler.addFilter(TraceIdFilter())

ENVIRONMENT = os.getenv("ENVIRONMENT", "development")

# Create FastAPI app
app = FastAPI(
    title="Rules API",
    description="Apply declarative rule sets to JSON state until a fixed point, with audit trail.",
    version=settings.api_version,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json"
)


@app.get("/")
def root():
    return {"name": "Rules API", "status": "running"}


# Security middleware (audit log sits inside the trace ID middleware below)
if settings.enable_audit_logging:
    app.add_middleware(AuditLoggingMiddleware, enable_redaction=settings.enable_redaction)

# CORS is disabled by default (server-to-server API). Enable only if explicitly configured.
cors_origins_raw = os.getenv("CORS_ALLOW_ORIGINS", "").strip()
if cors_origins_raw:
    cors_origins = [o.strip() for o in cors_origins_raw.split(",") if o.strip()]
    allow_credentials = os.getenv("CORS_ALLOW_CREDENTIALS", "false").lower() == "true"

    # Never allow credentials with wildcard origins.
    if "*" in cors_origins:
        allow_credentials = False

    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=allow_credentials,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )


# Trace ID middleware (outermost: sets request.state.trace_id and response headers)
@app.middleware("http")
async def add_trace_id_middleware(request: Request, call_next):
    trace_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    request.state.trace_id = trace_id

    # Set context var for logging
    token = trace_id_ctx.set(trace_id)
    try:
        start = time.perf_counter()
        response = await call_next(request)
        process_time = time.perf_counter() - start

        response.headers["X-Request-ID"] = trace_id
        response.headers["X-Process-Time"] = str(process_time)
        return response
    finally:
        trace_id_ctx.reset(token)


# Include routes
app.include_router(health.router)
app.include_router(rules.router)


def _trace_id(request: Request) -> str:
    return getattr(request.state, "trace_id", None) or request.headers.get("X-Request-ID") or str(uuid.uuid4())


# HTTPException handler (wraps all HTTPException into ErrorResponse format)
@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    # Normalize error payload into ErrorResponse.error shape
    if isinstance(exc.detail, dict):
        err = exc.detail
    else:
        err = {"code": str(exc.detail), "message": str(exc.detail)}

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "trace_id": _trace_id(request),
            "status": "error",
            "error": err,
        },
    )


# RequestValidationError handler (wraps 422 validation errors into ErrorResponse format)
@app.exception_handler(RequestValidationError)
async def request_validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=422,
        content={
            "trace_id": _trace_id(request),
            "status": "error",
            "error": {
                "code": "REQUEST_VALIDATION_ERROR",
                "message": "Request validation failed",
                "detail": jsonable_encoder(exc.errors()),
            },
        },
    )


# Global exception handler (no internals in the response body)
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logging.getLogger(__name__).exception("Unhandled error")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "trace_id": _trace_id(request),
            "status": "error",
            "error": {
                "code": "INTERNAL_ERROR",
                "message": "An unexpected error occurred."
            }
        }
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "rules_api.public.main:app",
        host="0.0.0.0",
        port=int(os.getenv("PORT", "8000")),
        reload=ENVIRONMENT == "development"
    )
