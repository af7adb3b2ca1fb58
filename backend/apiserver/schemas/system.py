"""
API Server — Pydantic Response Schemas
========================================

What:  Pydantic models for the endpoints this service owns.
Why:   FastAPI validates and serializes responses through them and documents
       them in the OpenAPI schema.
Who:   Used by the health, status, and auth routers as `response_model`.
"""

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    """
    What:  Liveness response for GET /api/health.

    Deliberately shallow: it proves the process is running and says nothing
    about the database, so it can answer before the cold start setup runs.
    """
    status: str = Field(default="ok", description="Always 'ok' while the process is alive")
    timestamp: str = Field(description="Server time, ISO 8601 UTC with milliseconds")
    environment: str = Field(description="Deployment environment name")


class StatusResponse(BaseModel):
    """Readiness response for GET /api/status (served only once the process is warm)."""
    status: str = Field(default="ready")
    environment: str
    ready_since: str | None = Field(
        default=None,
        description="When the cold start setup completed (ISO 8601 UTC)",
    )


class SessionResponse(BaseModel):
    """Whether the request carries a session cookie."""
    authenticated: bool


class ErrorResponse(BaseModel):
    """
    What:  Error body produced by the error middleware for every failure.
    Why:   Clients only ever need to parse one shape.

    Example:
        {"message": "Malformed request body"}
    """
    message: str = Field(description="Human-readable error description")
