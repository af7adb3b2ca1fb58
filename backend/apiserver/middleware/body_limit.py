"""
API Server — Request Body Size Limit
======================================

What:  Rejects requests whose declared body is larger than the configured cap.
Why:   Parsing an arbitrarily large JSON body would pin a serverless instance's
       memory for the whole invocation.
How:   Compares the Content-Length header against MAX_REQUEST_BODY_BYTES
       (default 50MB) and raises PayloadTooLargeError before the router runs.
When:  Innermost middleware, so ErrorHandlingMiddleware turns the rejection
       into a 413 {"message": ...} response.

Serverless hosts (API Gateway, Vercel) buffer the whole body and forward its
length, so the header check covers the requests this service actually sees.
"""

import logging

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from apiserver.exceptions import PayloadTooLargeError

logger = logging.getLogger(__name__)


class RequestBodyLimitMiddleware(BaseHTTPMiddleware):
    """Raises PayloadTooLargeError when Content-Length exceeds `max_body_bytes`."""

    def __init__(self, app, max_body_bytes: int):
        super().__init__(app)
        self.max_body_bytes = max_body_bytes

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        declared = request.headers.get("content-length")
        # A non-numeric header is the server's problem; it is not a size
        if declared and declared.isdigit() and int(declared) > self.max_body_bytes:
            max_mb = self.max_body_bytes / (1024 * 1024)
            logger.warning(
                "Rejected %s %s: body of %s bytes exceeds %d",
                request.method,
                request.url.path,
                declared,
                self.max_body_bytes,
            )
            raise PayloadTooLargeError(
                message=f"Request body exceeds maximum of {max_mb:g}MB",
                context={"max_bytes": self.max_body_bytes, "declared_bytes": int(declared)},
            )
        return await call_next(request)
