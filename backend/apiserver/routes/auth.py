"""
API Server — Auth Routes
==========================

What:  Session probe and logout under /api/auth.
Why:   The browser frontend calls these with credentials; they are the reason
       the CORS policy allows cookies and exposes Set-Cookie.
How:   register_auth_routes() mounts the router during the cold start, before
       the business routes.

Session issuance (login, token verification) lives in the identity provider,
not in this service. These handlers only look at the session cookie.
"""

import logging

from fastapi import APIRouter, FastAPI, Request, Response

from apiserver.config import settings
from apiserver.exceptions import RouteRegistrationError
from apiserver.schemas.system import ErrorResponse, SessionResponse

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/auth",
    tags=["Auth"],
    responses={500: {"description": "Server error", "model": ErrorResponse}},
)


@router.get("/session", response_model=SessionResponse, summary="Does the request carry a session?")
async def get_session(request: Request) -> SessionResponse:
    return SessionResponse(authenticated=bool(request.cookies.get(settings.session_cookie_name)))


@router.post("/logout", status_code=204, summary="Clear the session cookie")
async def logout() -> Response:
    response = Response(status_code=204)
    # secure/samesite must match how the cookie was set, or browsers keep it
    response.delete_cookie(
        settings.session_cookie_name,
        path="/",
        secure=settings.is_production,
        httponly=True,
        samesite="none" if settings.is_production else "lax",
    )
    return response


def register_auth_routes(app: FastAPI) -> None:
    """
    Mount the auth router on `app`. Safe to call again after a failed cold start.

    Raises:
        RouteRegistrationError: The router could not be mounted.
    """
    if getattr(app.state, "auth_routes_registered", False):
        return
    try:
        app.include_router(router)
    except Exception as e:
        raise RouteRegistrationError(
            message="Failed to register auth routes",
            context={"error_type": type(e).__name__, "error": str(e)},
        ) from e
    app.state.auth_routes_registered = True
    logger.info("Auth routes registered")
