"""
API Server — Serverless Entrypoint
====================================

What:  The object the hosting runtime invokes for every request.
Why:   Serverless processes start cold. The first request must trigger the
       one-time setup and wait for it; later requests on the warm process must
       go straight to the application.
How:   ServerlessEntrypoint is an ASGI app: it awaits the InitializationGate,
       then delegates to the FastAPI pipeline.

Exports:
    app      ASGI callable for ASGI-native hosts (uvicorn, Vercel's Python runtime)
             uvicorn apiserver.entrypoint:app
    handler  Mangum adapter for Lambda-style hosts (API Gateway / function URLs)

Gate exemptions:
    GET /api/health answers without waiting for the setup: it only proves the
    process is alive and must keep answering while the database is down.

Failure policy:
    If the setup raises, the exception propagates out of the ASGI call. The
    host decides what the client sees (Mangum logs it and answers 500). The
    gate is COLD again, so the next invocation retries the setup.
"""

import logging
from typing import Iterable, Optional

from fastapi import FastAPI
from mangum import Mangum
from starlette.types import Receive, Scope, Send

from apiserver.bootstrap import InitializationGate
from apiserver.main import API_PREFIX, create_app, setup_logging

logger = logging.getLogger(__name__)

GATE_EXEMPT_PATHS = frozenset({f"{API_PREFIX}/health"})


class ServerlessEntrypoint:
    """
    ASGI wrapper sequencing gate check → application.

    Attributes:
        app:          The FastAPI application (the request pipeline)
        gate:         Initialization gate guarding the one-time setup
        exempt_paths: Paths served without waiting for the gate
    """

    def __init__(
        self,
        app: FastAPI,
        gate: InitializationGate,
        exempt_paths: Iterable[str] = GATE_EXEMPT_PATHS,
    ):
        self.app = app
        self.gate = gate
        self.exempt_paths = frozenset(exempt_paths)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] in ("http", "websocket") and scope["path"] not in self.exempt_paths:
            await self.gate.ensure_ready()
        await self.app(scope, receive, send)


def create_entrypoint(
    app: Optional[FastAPI] = None,
    gate: Optional[InitializationGate] = None,
) -> ServerlessEntrypoint:
    """Build the entrypoint; both parts default to the production wiring."""
    app = app or create_app()
    gate = gate or InitializationGate(app)
    return ServerlessEntrypoint(app, gate)


# ── Process-wide instances ────────────────────────────────────────────────
# Module import happens once per process (the cold start); warm invocations
# reuse these objects, including the gate's WARM state.
setup_logging()
app = create_entrypoint()
handler = Mangum(app, lifespan="off")
