"""
API Server — Custom Exception Hierarchy
=========================================

What:  Application-specific exceptions for the failures the pipeline knows about.
Why:   Each exception carries the HTTP status it should be answered with, so the
       terminal error middleware can translate it without a type-to-status table.
How:   Every class stores a user-facing `message`, a numeric `status`, and an
       optional `context` dict that is logged but never returned to the client.
Who:   Raised by the storage connector, route registrars, and route handlers;
       caught by the error middleware (middleware/errors.py).

Exception Hierarchy:
    ApiServerError (base)            → 500
    ├── MalformedRequestError        → 400 Bad Request
    ├── PayloadTooLargeError         → 413 Content Too Large
    ├── RouteRegistrationError       → 500 Internal Server Error
    └── DatabaseConnectionError      → 503 Service Unavailable

The error middleware does not depend on this hierarchy: any exception with a
`status` or `status_code` attribute and a `message` attribute is translated
the same way. The classes here just make that contract explicit.
"""

from typing import Any, Dict, Optional


class ApiServerError(Exception):
    """
    Base exception for all application errors.

    Attributes:
        message:  User-facing error description (safe to return in API response)
        status:   HTTP status code the error middleware responds with
        context:  Additional debug info (logged but NOT returned to client)
    """

    status: int = 500

    def __init__(
        self,
        message: str = "Internal Server Error",
        status: Optional[int] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        if status is not None:
            self.status = status
        self.context = context or {}
        super().__init__(self.message)


class MalformedRequestError(ApiServerError):
    """
    Raised when the request body cannot be parsed or fails schema validation.

    HTTP: 400 Bad Request. Per-field details go to `context` only.
    """

    status = 400

    def __init__(
        self,
        message: str = "Malformed request body",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class PayloadTooLargeError(ApiServerError):
    """
    Raised when a request body is larger than MAX_REQUEST_BODY_BYTES.

    HTTP: 413 Content Too Large
    """

    status = 413

    def __init__(
        self,
        message: str = "Request body too large",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class RouteRegistrationError(ApiServerError):
    """
    Raised when mounting routers during the cold start fails.

    Fatal to the invocation that triggered the cold start, not to the
    process: the initialization gate returns to COLD and the next
    invocation retries.
    """

    status = 500

    def __init__(
        self,
        message: str = "Failed to register routes",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class DatabaseConnectionError(ApiServerError):
    """
    Raised when the database is unreachable or misconfigured at cold start.

    What:    The storage connector exhausted its retry attempts.
    HTTP:    503 Service Unavailable (the next invocation may succeed)

    Security Note:
        The message is generic. The driver error (which can contain the host
        name or user) is kept in `context` and logged server-side only.
    """

    status = 503

    def __init__(
        self,
        message: str = "Database is unavailable. Please try again later.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)
