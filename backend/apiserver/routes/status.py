"""
API Server — Readiness Route
==============================

What:  GET /api/status, mounted by register_routes() during the cold start.
Why:   Unlike /api/health, a 200 here proves the setup ran: the database was
       reachable and every router is mounted.
"""

from fastapi import APIRouter, Request

from apiserver.config import settings
from apiserver.routes.health import utc_timestamp
from apiserver.schemas.system import ErrorResponse, StatusResponse

router = APIRouter(
    prefix="/api",
    tags=["Status"],
    responses={500: {"description": "Server error", "model": ErrorResponse}},
)


@router.get("/status", response_model=StatusResponse, summary="Service readiness")
async def status(request: Request) -> StatusResponse:
    ready_at = getattr(request.app.state, "ready_at", None)
    return StatusResponse(
        status="ready",
        environment=settings.environment,
        ready_since=utc_timestamp(ready_at) if ready_at else None,
    )
