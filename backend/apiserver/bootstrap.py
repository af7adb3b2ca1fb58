"""
API Server — Cold Start Initialization Gate
=============================================

What:  Runs the one-time process setup (database connection, route
       registration) before the first gated request is served.
Why:   Serverless hosts create processes on demand. Setup must happen lazily on
       the first invocation ("cold start") and must be skipped by every later
       invocation on the same warm process.
How:   A small state machine guarded by a shared pending-setup task.

State Machine:
    COLD ──first ensure_ready()──→ WARMING ──setup succeeds──→ WARM
      ↑                               │
      └────────setup raises───────────┘

    - WARM is terminal: ensure_ready() returns immediately, setup never re-runs.
    - Callers arriving while WARMING await the SAME task instead of starting
      another one. A plain boolean checked before and set after the awaits
      would let two concurrent cold requests both run setup.
    - On failure every waiter receives the exception and the gate goes back to
      COLD, so the next invocation retries from scratch.

Setup order:
    1. connect()                  — database reachable (database.py)
    2. register_auth(app)         — auth routes, synchronous
    3. await register_business(app) — business routes
"""

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional

from fastapi import FastAPI

from apiserver.database import connect_to_database
from apiserver.routes import register_routes
from apiserver.routes.auth import register_auth_routes

logger = logging.getLogger(__name__)


class InitializationGate:
    """
    Process-wide guard around the cold start setup.

    States:
        COLD:    No setup attempted yet (or the last attempt failed)
        WARMING: Setup task in flight; callers attach to it
        WARM:    Setup complete; requests pass straight through

    The setup steps are injectable so tests can count invocations with
    AsyncMock doubles instead of touching a real database.
    """

    COLD = "cold"
    WARMING = "warming"
    WARM = "warm"

    def __init__(
        self,
        app: FastAPI,
        connect: Callable[[], Awaitable[None]] = connect_to_database,
        register_auth: Callable[[FastAPI], None] = register_auth_routes,
        register_business: Callable[[FastAPI], Awaitable[None]] = register_routes,
    ):
        self.app = app
        self._connect = connect
        self._register_auth = register_auth
        self._register_business = register_business
        self.state = self.COLD
        self.ready_at: Optional[datetime] = None
        self._pending: Optional[asyncio.Task] = None

    @property
    def is_ready(self) -> bool:
        return self.state == self.WARM

    async def ensure_ready(self) -> None:
        """
        Wait until the process is WARM, running setup if nobody has yet.

        Idempotent and safe to call from any number of concurrent requests.
        The check and the task creation happen without an intervening await,
        so on a single event loop exactly one caller creates the task.

        Raises:
            Whatever the setup raised (DatabaseConnectionError,
            RouteRegistrationError, ...). The gate is COLD again afterwards.
        """
        if self.state == self.WARM:
            return

        if self._pending is None:
            self.state = self.WARMING
            self._pending = asyncio.ensure_future(self._run_setup())

        # shield: a waiter whose own request is cancelled must not cancel the
        # setup the other waiters depend on
        await asyncio.shield(self._pending)

    async def _run_setup(self) -> None:
        started = time.perf_counter()
        logger.info("Cold start: running one-time setup")
        try:
            await self._connect()
            self._register_auth(self.app)
            await self._register_business(self.app)
        except BaseException:
            self.state = self.COLD
            self._pending = None
            logger.error(
                "Cold start setup failed after %.1fms; next request will retry",
                (time.perf_counter() - started) * 1000,
                exc_info=True,
            )
            raise

        self.state = self.WARM
        self.ready_at = datetime.now(timezone.utc)
        self.app.state.ready_at = self.ready_at
        logger.info(
            "Cold start complete in %.1fms",
            (time.perf_counter() - started) * 1000,
        )
