"""
API Server — FastAPI Application Factory
==========================================

What:  Creates and configures the FastAPI application instance.
Why:   Centralizes logging setup, middleware registration and the routes that
       exist before the cold start setup runs.
How:   Factory pattern: create_app() returns a configured FastAPI instance.
       The entrypoint (entrypoint.py) wraps it with the initialization gate.
Who:   entrypoint.py for serverless hosts; uvicorn for local development
       (uvicorn apiserver.entrypoint:app).

Request pipeline (outermost first):
    ┌──────────────────────────────────────────────────────────┐
    │ Entrypoint ── InitializationGate.ensure_ready()          │
    │   NoCacheHeaders → CORS → RequestLogging → ErrorHandling │
    │     → BodyLimit                                          │
    │     → FastAPI exception handlers → router                │
    └──────────────────────────────────────────────────────────┘

Routes at creation time:
    GET /api/health   (everything else is mounted by the gate, see routes/)
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI

from apiserver import __version__
from apiserver.config import Settings, settings
from apiserver.database import dispose_engine
from apiserver.middleware.body_limit import RequestBodyLimitMiddleware
from apiserver.middleware.cache_control import NoCacheHeadersMiddleware
from apiserver.middleware.cors import OriginPolicy, OriginPolicyCORSMiddleware
from apiserver.middleware.errors import ErrorHandlingMiddleware, register_exception_handlers
from apiserver.middleware.logging import RequestLoggingMiddleware
from apiserver.routes import health

logger = logging.getLogger(__name__)

API_PREFIX = "/api"


# ══════════════════════════════════════════════════════════════════════════
# Logging Configuration
# ══════════════════════════════════════════════════════════════════════════

def setup_logging(level: Optional[str] = None) -> None:
    """
    Configure logging for the whole process.

    What:    One stdout handler with a consistent format.
    Why:     Serverless platforms collect stdout/stderr per invocation; anything
             else (files, syslog) is lost when the instance is frozen.
    When:    Once per process, when the entrypoint module is imported.
    """
    logging.basicConfig(
        level=getattr(logging, level or settings.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )

    # Reduce noise from third-party libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("mangum").setLevel(logging.WARNING)


# ══════════════════════════════════════════════════════════════════════════
# Application Lifespan
# ══════════════════════════════════════════════════════════════════════════

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Shutdown cleanup for long-running servers (uvicorn).

    Startup work does NOT live here: serverless adapters run with
    lifespan="off", so the database connection and route registration are
    done lazily by the InitializationGate instead.
    """
    logger.info("API server starting (environment=%s)", settings.environment)

    yield

    logger.info("API server shutting down...")
    await dispose_engine()
    logger.info("Shutdown complete.")


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def build_origin_policy(config: Settings = settings) -> OriginPolicy:
    return OriginPolicy(
        allowed_origins=config.allowed_origins,
        preview_suffixes=config.preview_suffixes_list,
        enforce=config.cors_enforce_origins,
    )


def create_app(config: Settings = settings) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns a fresh instance on every call, so tests can build isolated apps
    with their own settings and their own initialization gate.
    """
    app = FastAPI(
        title="API Server",
        description="Serverless HTTP API with lazy cold start initialization.",
        version=__version__,
        docs_url=None if config.is_production else "/api/docs",
        redoc_url=None,
        openapi_url=None if config.is_production else "/api/openapi.json",
        lifespan=lifespan,
    )

    # ── Register Middleware ───────────────────────────────────────────────
    # Middleware executes in REVERSE order of addition (last added = outermost).
    # Added innermost-first: BodyLimit → ErrorHandling → RequestLogging → CORS → NoCache

    # Oversized bodies are refused before the router; the error handler answers 413
    app.add_middleware(RequestBodyLimitMiddleware, max_body_bytes=config.max_request_body_bytes)

    # Terminal error handler: wraps the router (and the body limit)
    app.add_middleware(ErrorHandlingMiddleware)

    # Access log line for /api requests, including error responses
    app.add_middleware(RequestLoggingMiddleware, api_prefix=API_PREFIX)

    # CORS: preflight answers and credentialed origin echo
    app.add_middleware(OriginPolicyCORSMiddleware, policy=build_origin_policy(config))

    # Cache-disabling headers on every response, preflight included
    app.add_middleware(NoCacheHeadersMiddleware)

    # ── Register Exception Handlers ───────────────────────────────────────
    register_exception_handlers(app)

    # ── Register Routes ───────────────────────────────────────────────────
    # Only the gate-exempt liveness route; the rest arrive with the cold start
    app.include_router(health.router)

    return app
