"""
API Server — API Routes Package
=================================

What:  HTTP route handlers and the registrars that mount them.
How:   Only the health router is mounted when the app is created. Everything
       else is mounted by the initialization gate during the cold start.

Route Inventory:
    - health.py:  GET  /api/health         (liveness, mounted at creation)
    - auth.py:    GET  /api/auth/session   (mounted by register_auth_routes)
                  POST /api/auth/logout
    - status.py:  GET  /api/status         (mounted by register_routes)
"""

import logging

from fastapi import FastAPI

from apiserver.exceptions import RouteRegistrationError
from apiserver.routes import status

logger = logging.getLogger(__name__)


async def register_routes(app: FastAPI) -> None:
    """
    Mount the business routers on `app`.

    Async so that routers needing I/O before mounting (warming caches,
    reading feature flags) can be added without changing the gate.
    Idempotent: a retried cold start does not mount routers twice.

    Raises:
        RouteRegistrationError: A router could not be mounted.
    """
    if getattr(app.state, "business_routes_registered", False):
        return

    try:
        app.include_router(status.router)
    except Exception as e:
        raise RouteRegistrationError(
            context={"error_type": type(e).__name__, "error": str(e)},
        ) from e
    app.state.business_routes_registered = True
    logger.info("Business routes registered")
