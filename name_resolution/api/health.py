"""Health check endpoints for monitoring and orchestration."""

from datetime import UTC, datetime

from fastapi import APIRouter, Request
from pydantic import BaseModel

from name_resolution.config import settings

router = APIRouter(prefix="/health", tags=["health"])


class HealthResponse(BaseModel):
    """Response model for health check."""

    status: str
    timestamp: datetime
    version: str
    environment: str
    data_versions: dict[str, str]


class LivenessResponse(BaseModel):
    """Response model for liveness probe."""

    status: str


class ReadinessResponse(BaseModel):
    """Response model for readiness probe."""

    status: str
    checks: dict[str, str]


def _data_versions(request: Request) -> dict[str, str]:
    versions: dict[str, str] = {}
    table = getattr(request.app.state, "transliterations", None)
    if table is not None:
        versions["transliterations"] = table.version
    blacklist = getattr(request.app.state, "blacklist", None)
    if blacklist is not None:
        versions["blacklist"] = blacklist.version
    return versions


@router.get("/", response_model=HealthResponse)
async def health_check(request: Request) -> HealthResponse:
    """Basic health check with the loaded reference data versions."""
    return HealthResponse(
        status="healthy",
        timestamp=datetime.now(UTC),
        version=settings.app_version,
        environment=settings.app_env,
        data_versions=_data_versions(request),
    )


@router.get("/live", response_model=LivenessResponse)
async def liveness() -> LivenessResponse:
    """Liveness probe - app is running."""
    return LivenessResponse(status="alive")


@router.get("/ready", response_model=ReadinessResponse)
async def readiness(request: Request) -> ReadinessResponse:
    """Readiness probe.

    Checks:
    - Database is connected and healthy
    - CRM credentials are configured (batch runs need the roster)
    """
    checks: dict[str, str] = {"api": "ok"}

    db = getattr(request.app.state, "db", None)
    if db:
        try:
            is_healthy = await db.is_healthy()
            checks["database"] = "ok" if is_healthy else "failed"
        except Exception:
            checks["database"] = "failed"
    else:
        checks["database"] = "not_configured"

    checks["crm"] = (
        "ok"
        if settings.notion_api_key and settings.notion_crm_database_id
        else "not_configured"
    )

    status = "ready" if checks["database"] == "ok" else "not_ready"
    return ReadinessResponse(status=status, checks=checks)
