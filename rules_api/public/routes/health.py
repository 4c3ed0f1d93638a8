"""
Health check endpoint. Minimal, stable, no business logic.
"""
from fastapi import APIRouter
from datetime import datetime, timezone
import os
from domain_kits.rule_engine import ENGINE_VERSION
from rules_api.public.schemas import HealthResponse
from rules_api.public.settings import settings

router = APIRouter()

# Render sets RENDER_GIT_COMMIT. Prefer it over the configured value.
build_commit = os.getenv("RENDER_GIT_COMMIT") or settings.build_commit


@router.get("/health")
async def health_check() -> HealthResponse:
    """
    Simple health check. Returns service status, version, commit.
    No rule evaluation, no state, just a heartbeat.
    """
    return HealthResponse(
        status="ok",
        service="rules-api",
        version=settings.api_version,
        engine_version=ENGINE_VERSION,
        commit=build_commit,
        timestamp=datetime.now(timezone.utc),
    )
