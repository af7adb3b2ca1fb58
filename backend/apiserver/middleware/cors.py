"""
API Server — CORS Origin Policy
=================================

What:  Decides which browser origins may receive credentialed responses.
Why:   The frontend runs on a different origin (local dev servers, the
       production URL, per-branch preview deployments) and sends cookies.
How:   OriginPolicy is a pure decision object; OriginPolicyCORSMiddleware plugs
       it into Starlette's CORSMiddleware, which handles preflight and headers.

Matching rules (any one admits):
    1. Exact match against the allowed origin set
       (localhost:5173 / 5000 / 3000 + FRONTEND_URL)
    2. Origin host is, or ends with ".<suffix>" for, a trusted preview suffix
       (default: vercel.app, onrender.com)

Enforcement:
    Requests without an Origin header (same-origin, curl, server-to-server)
    are always admitted. For everything else, `matches()` is computed but by
    default NOT enforced: admits() returns True for any origin and the
    mismatch is only logged at DEBUG. Set CORS_ENFORCE_ORIGINS=true to refuse
    non-matching origins. See DESIGN.md, "Origin enforcement".
"""

import logging
from typing import Iterable, Optional
from urllib.parse import urlsplit

from starlette.middleware.cors import CORSMiddleware
from starlette.types import ASGIApp

logger = logging.getLogger("apiserver.cors")

ALLOWED_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]
ALLOWED_HEADERS = ["Content-Type", "Authorization", "Cookie", "X-Requested-With"]
EXPOSED_HEADERS = ["Set-Cookie"]


class OriginPolicy:
    """
    Admission decision for a request's declared Origin.

    Attributes:
        allowed_origins:  Exact origins, compared verbatim
        preview_suffixes: Host suffixes of trusted preview deployments
        enforce:          Whether admits() actually refuses non-matching origins
    """

    def __init__(
        self,
        allowed_origins: Iterable[str],
        preview_suffixes: Iterable[str] = ("vercel.app", "onrender.com"),
        enforce: bool = False,
    ):
        self.allowed_origins = frozenset(o for o in allowed_origins if o)
        self.preview_suffixes = tuple(s.lower().lstrip(".") for s in preview_suffixes if s)
        self.enforce = enforce

    def matches(self, origin: str) -> bool:
        """True if `origin` is in the allowed set or is a trusted preview host."""
        if origin in self.allowed_origins:
            return True

        try:
            host = urlsplit(origin).hostname
        except ValueError:
            return False
        if not host:
            return False

        return any(
            host == suffix or host.endswith("." + suffix)
            for suffix in self.preview_suffixes
        )

    def admits(self, origin: Optional[str]) -> bool:
        """
        Whether a request from `origin` may receive a credentialed response.

        Absent origin → always admitted. Otherwise admitted when the policy is
        permissive, or when enforcing and matches() holds.
        """
        if not origin:
            return True

        matched = self.matches(origin)
        if matched:
            return True

        if self.enforce:
            logger.info("Rejected cross-origin request from %s", origin)
            return False

        logger.debug("Origin %s does not match the allowed set (not enforced)", origin)
        return True


class OriginPolicyCORSMiddleware(CORSMiddleware):
    """
    Starlette's CORSMiddleware with the origin check delegated to OriginPolicy.

    Admitted origins are echoed back in Access-Control-Allow-Origin (never "*",
    which browsers refuse on credentialed responses) together with
    Access-Control-Allow-Credentials: true and the exposed Set-Cookie header.
    """

    def __init__(self, app: ASGIApp, policy: OriginPolicy):
        super().__init__(
            app,
            # Any non-wildcard entry makes Starlette echo the explicit origin
            allow_origins=sorted(policy.allowed_origins) or ["null"],
            allow_methods=ALLOWED_METHODS,
            allow_headers=ALLOWED_HEADERS,
            allow_credentials=True,
            expose_headers=EXPOSED_HEADERS,
        )
        self.policy = policy

    def is_allowed_origin(self, origin: str) -> bool:
        return self.policy.admits(origin)
