"""
API Server — Terminal Error Middleware
========================================

What:  Turns any exception escaping a route or middleware into a JSON response.
Why:   A serverless invocation that raises is reported by the host as a bare
       500 with no body, and the browser sees it without CORS headers. Catching
       it inside the pipeline keeps the response shape, CORS headers and the
       access log line intact.
How:   ErrorHandlingMiddleware wraps the router and the body limit.
       FastAPI's own HTTPException / RequestValidationError are answered by
       exception handlers that share the same envelope builder.

Translation rules (ErrorEnvelope.from_exception):
    status:  exc.status → exc.status_code → 500   (first valid one wins;
             only an int in 400..599 is valid)
    message: exc.message → exc.detail (string only) → "Internal Server Error"

Security: the response body is {"message": ...} and nothing else. Stack
traces and `context` dicts are logged server-side only.
"""

import logging
from dataclasses import dataclass
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

from apiserver.exceptions import MalformedRequestError

logger = logging.getLogger("apiserver.errors")

DEFAULT_STATUS = 500
DEFAULT_MESSAGE = "Internal Server Error"


def _valid_status(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and 400 <= value <= 599


@dataclass(frozen=True)
class ErrorEnvelope:
    """Status and user-facing message derived from a caught exception."""
    status: int
    message: str

    @classmethod
    def from_exception(cls, exc: BaseException) -> "ErrorEnvelope":
        # An unusable `status` counts as absent, so `status_code` gets its turn
        status = getattr(exc, "status", None)
        if not _valid_status(status):
            status = getattr(exc, "status_code", None)
        if not _valid_status(status):
            status = DEFAULT_STATUS

        message = getattr(exc, "message", None)
        if not (isinstance(message, str) and message):
            detail = getattr(exc, "detail", None)
            message = detail if isinstance(detail, str) and detail else DEFAULT_MESSAGE

        return cls(status=status, message=message)

    def to_response(self) -> JSONResponse:
        return JSONResponse(status_code=self.status, content={"message": self.message})


def error_response(exc: BaseException) -> JSONResponse:
    """
    Log `exc` and build its JSON error response.

    Every failure is logged at ERROR with the raw exception, including the
    4xx ones: on a serverless host this log is the only record of them.
    """
    envelope = ErrorEnvelope.from_exception(exc)
    logger.error(
        "Server error: %r",
        exc,
        exc_info=(type(exc), exc, exc.__traceback__),
        extra={"status": envelope.status, "context": getattr(exc, "context", None)},
    )
    return envelope.to_response()


class ErrorHandlingMiddleware(BaseHTTPMiddleware):
    """
    Terminal handler for exceptions raised by routes.

    Sits around the router (and the body limit), so its responses still pass through the
    logging, CORS and cache-control middleware on the way out.
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        try:
            return await call_next(request)
        except Exception as exc:
            return error_response(exc)


def register_exception_handlers(app: FastAPI) -> None:
    """
    Route FastAPI's built-in error types through the same envelope.

    FastAPI answers these itself before they reach ErrorHandlingMiddleware,
    with a {"detail": ...} body. Overriding the handlers keeps one shape.

    Handler table:
        HTTPException           → its own status_code, message from `detail`
                                  (covers 404 for unknown paths, 405, ...)
        RequestValidationError  → 400 "Malformed request body"
        Exception               → catch-all for failures outside
                                  ErrorHandlingMiddleware (same envelope)
    """

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(request: Request, exc: StarletteHTTPException):
        response = error_response(exc)
        # Keep headers such as Allow on 405 or WWW-Authenticate on 401
        if exc.headers:
            response.headers.update(exc.headers)
        return response

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError):
        malformed = MalformedRequestError(context={"errors": exc.errors()})
        return error_response(malformed)

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        # FastAPI wires this into ServerErrorMiddleware, which sits outside
        # every user middleware. It only sees failures of the outer layers
        # (no-cache, CORS, logging); route errors never get this far.
        return error_response(exc)
