"""
API Server — Database Connection Management
=============================================

What:  Lazily created async SQLAlchemy engine and the cold-start connect routine.
Why:   A serverless instance should not pay for a connection pool until the
       first request that needs it arrives; warm instances reuse the pool.
How:   `connect_to_database()` builds the engine on first use and proves the
       database is reachable with `SELECT 1`, retrying transient failures.
Who:   Called once per process by the InitializationGate (bootstrap.py).
When:  On the first gated request of a cold instance.

Connection Pooling Strategy:
    pool_size / max_overflow: small per instance (see config.py)
    pool_pre_ping:            validates connections before use; a warm instance
                              may sit idle long enough for the server to drop them
    pool_recycle=300:         serverless instances are frozen between invocations,
                              so connections are recycled aggressively
"""

import logging
from typing import Optional

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from apiserver.config import settings
from apiserver.exceptions import DatabaseConnectionError

logger = logging.getLogger(__name__)

_engine: Optional[AsyncEngine] = None


def get_engine() -> AsyncEngine:
    """
    Return the process-wide engine, creating it on first call.

    Raises:
        DatabaseConnectionError: DATABASE_URL is malformed or its driver is missing.
    """
    global _engine
    if _engine is None:
        try:
            _engine = create_async_engine(
                settings.database_url,
                pool_size=settings.db_pool_size,
                max_overflow=settings.db_max_overflow,
                pool_pre_ping=settings.db_pool_pre_ping,
                pool_recycle=300,
                echo=settings.log_level == "DEBUG",
            )
        except (SQLAlchemyError, ImportError) as e:
            # Misconfiguration will not fix itself; no retry
            raise DatabaseConnectionError(
                context={"error_type": type(e).__name__, "error": str(e)},
            ) from e
    return _engine


async def _ping(engine: AsyncEngine) -> None:
    async with engine.connect() as conn:
        await conn.execute(text("SELECT 1"))


async def connect_to_database() -> None:
    """
    Establish the database connection for this process.

    What:    Creates the engine (if needed) and runs a lightweight probe query.
    How:     Tenacity retries transient errors with exponential backoff + jitter,
             up to `db_connect_attempts` tries.

    Raises:
        DatabaseConnectionError: The database could not be reached. The
        original exception is chained and described in `context`.
    """
    engine = get_engine()

    try:
        async for attempt in AsyncRetrying(
            retry=retry_if_exception_type((SQLAlchemyError, OSError, TimeoutError)),
            stop=stop_after_attempt(settings.db_connect_attempts),
            wait=wait_exponential_jitter(
                initial=settings.db_connect_min_wait,
                max=settings.db_connect_max_wait,
                jitter=settings.db_connect_min_wait,
            ),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        ):
            with attempt:
                await _ping(engine)
    except (SQLAlchemyError, OSError, TimeoutError) as e:
        logger.error(
            "Database unreachable after %d attempt(s): %s",
            settings.db_connect_attempts,
            type(e).__name__,
        )
        raise DatabaseConnectionError(
            context={
                "error_type": type(e).__name__,
                "error": str(e),
                "attempts": settings.db_connect_attempts,
            },
        ) from e

    logger.info("Database connection established (%s)", engine.url.get_backend_name())


async def dispose_engine() -> None:
    """
    What:  Closes all pooled connections and forgets the engine.
    When:  ASGI shutdown under uvicorn; serverless hosts simply freeze the process.
    """
    global _engine
    if _engine is not None:
        await _engine.dispose()
        _engine = None
