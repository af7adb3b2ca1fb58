"""
API Server — Health Check Route
=================================

What:  Liveness endpoint for uptime monitors and the hosting platform.
Why:   Monitors need an answer even when the database is down or the
       instance has not completed its cold start yet.
How:   Returns a static payload with the current time and environment name.
Who:   Called by uptime monitors, deployment smoke tests, and developers.

Health Check Philosophy:
    This is a LIVENESS check, not a readiness check. It is exempt from the
    initialization gate (see entrypoint.py) and touches no dependency.
    Readiness — "setup ran and the database was reachable" — is reported by
    GET /api/status, which is only mounted once the process is warm.
"""

from datetime import datetime, timezone

from fastapi import APIRouter

from apiserver.config import settings
from apiserver.schemas.system import HealthResponse

router = APIRouter(prefix="/api", tags=["Health"])


def utc_timestamp(moment: datetime | None = None) -> str:
    """ISO 8601 UTC with millisecond precision and a 'Z' suffix."""
    moment = moment or datetime.now(timezone.utc)
    return moment.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Service liveness check",
    description="Always 200 while the process is running. Does not wait for the cold start setup.",
)
async def health_check() -> HealthResponse:
    return HealthResponse(
        status="ok",
        timestamp=utc_timestamp(),
        environment=settings.environment,
    )
