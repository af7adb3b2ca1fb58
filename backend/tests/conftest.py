"""
API Server — Test Configuration (conftest.py)
===============================================

What:  Shared pytest fixtures for the entire test suite.
Why:   Every HTTP-level test needs a fresh app, a fresh initialization gate
       and test doubles for the cold start collaborators.
How:   pytest auto-discovers conftest.py and makes fixtures available to all tests.

Fixture Hierarchy:
    Function-scoped (created fresh for each test):
    ├── setup_doubles: AsyncMock/MagicMock stand-ins for connect + registrars
    ├── fresh_app:     A new FastAPI app from create_app()
    ├── gate:          InitializationGate over fresh_app using setup_doubles
    └── test_client:   HTTPX AsyncClient talking to the ServerlessEntrypoint
"""

import os
import tempfile
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

# Override settings for testing BEFORE any application imports
# Why: Settings are read once at import time
os.environ["DATABASE_URL"] = (
    f"sqlite+aiosqlite:///{tempfile.mkdtemp(prefix='apiserver_test_')}/test.db"
)
os.environ["ENVIRONMENT"] = "test"
os.environ["FRONTEND_URL"] = "https://app.example.com"
os.environ["LOG_LEVEL"] = "WARNING"  # Reduce noise during tests
os.environ["DB_CONNECT_ATTEMPTS"] = "1"

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from apiserver.bootstrap import InitializationGate
from apiserver.entrypoint import ServerlessEntrypoint
from apiserver.main import create_app
from apiserver.routes import register_routes
from apiserver.routes.auth import register_auth_routes


@pytest.fixture
def setup_doubles():
    """
    Test doubles for the cold start steps.

    connect is a pure AsyncMock (no database). The registrars wrap the real
    ones, so routes really get mounted while calls are still counted.
    """
    return SimpleNamespace(
        connect=AsyncMock(),
        register_auth=MagicMock(side_effect=register_auth_routes),
        register_business=AsyncMock(side_effect=register_routes),
    )


@pytest.fixture
def fresh_app():
    """A brand-new FastAPI app, i.e. a brand-new cold process."""
    return create_app()


@pytest.fixture
def gate(fresh_app, setup_doubles):
    return InitializationGate(
        fresh_app,
        connect=setup_doubles.connect,
        register_auth=setup_doubles.register_auth,
        register_business=setup_doubles.register_business,
    )


@pytest.fixture
def entrypoint(fresh_app, gate):
    return ServerlessEntrypoint(fresh_app, gate)


@pytest_asyncio.fixture
async def test_client(entrypoint):
    """
    HTTPX AsyncClient routed straight into the entrypoint (no server).

    Usage:
        async def test_health(test_client):
            response = await test_client.get("/api/health")
            assert response.status_code == 200
    """
    transport = ASGITransport(app=entrypoint)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
