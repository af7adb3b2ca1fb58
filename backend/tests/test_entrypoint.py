"""
API Server — Entrypoint End-to-End Tests
==========================================

What:  Requests through ServerlessEntrypoint on a brand-new "process".
Why:   Proves the ordering guarantees: gated routes wait for the setup, the
       health check does not, and a failed cold start is retried.
How:   Each test gets a fresh app + gate (conftest.py); the database connect
       step is an AsyncMock call counter.

What we test:
    ✅ GET /api/health answers before (and without) the setup
    ✅ Concurrent first requests both succeed; connect runs once
    ✅ Routes mounted by the setup (status, auth) are served once warm
    ✅ Setup failure propagates out of the invocation and is retried
    ✅ Module-level `app` / `handler` wiring
"""

import asyncio
import json
from unittest.mock import AsyncMock

import pytest
from httpx import ASGITransport, AsyncClient
from mangum import Mangum

from apiserver.bootstrap import InitializationGate
from apiserver.entrypoint import GATE_EXEMPT_PATHS, ServerlessEntrypoint
from apiserver.exceptions import DatabaseConnectionError
from apiserver.main import create_app
from apiserver.routes import register_routes
from apiserver.routes.auth import register_auth_routes


class TestHealthCheck:
    """GET /api/health is exempt from the gate."""

    @pytest.mark.asyncio
    async def test_health_before_setup(self, test_client, gate, setup_doubles):
        response = await test_client.get("/api/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "ok"
        assert body["environment"] == "test"
        assert body["timestamp"].endswith("Z")
        setup_doubles.connect.assert_not_awaited()
        assert gate.state == InitializationGate.COLD

    @pytest.mark.asyncio
    async def test_health_while_database_is_down(self, fresh_app):
        gate = InitializationGate(
            fresh_app, connect=AsyncMock(side_effect=DatabaseConnectionError())
        )
        transport = ASGITransport(app=ServerlessEntrypoint(fresh_app, gate))
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            response = await client.get("/api/health")
        assert response.status_code == 200

    def test_only_health_is_exempt(self):
        assert GATE_EXEMPT_PATHS == frozenset({"/api/health"})


class TestColdStart:
    """First requests on a new process."""

    @pytest.mark.asyncio
    async def test_first_gated_request_runs_setup(self, test_client, gate, setup_doubles):
        response = await test_client.get("/api/status")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "ready"
        assert body["environment"] == "test"
        assert body["ready_since"].endswith("Z")
        setup_doubles.connect.assert_awaited_once()
        assert gate.is_ready

    @pytest.mark.asyncio
    async def test_concurrent_cold_requests_connect_once(self, test_client, setup_doubles):
        async def slow_connect():
            await asyncio.sleep(0.05)

        setup_doubles.connect.side_effect = slow_connect

        first, second = await asyncio.gather(
            test_client.get("/api/status"),
            test_client.get("/api/auth/session"),
        )

        assert first.status_code == 200
        assert second.status_code == 200
        assert setup_doubles.connect.await_count == 1
        assert setup_doubles.register_auth.call_count == 1
        assert setup_doubles.register_business.await_count == 1

    @pytest.mark.asyncio
    async def test_warm_requests_skip_setup(self, test_client, setup_doubles):
        for _ in range(3):
            response = await test_client.get("/api/status")
            assert response.status_code == 200
        setup_doubles.connect.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_unmounted_routes_are_not_found_before_setup(self, fresh_app):
        """Without the gate, the status router simply does not exist yet."""
        transport = ASGITransport(app=fresh_app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            response = await client.get("/api/status")
        assert response.status_code == 404


class TestColdStartFailure:
    """Setup failures reject the invocation and are retried."""

    @pytest.mark.asyncio
    async def test_failure_propagates_and_next_request_retries(self, test_client, setup_doubles, gate):
        setup_doubles.connect.side_effect = [DatabaseConnectionError(), None]

        with pytest.raises(DatabaseConnectionError):
            await test_client.get("/api/status")
        assert gate.state == InitializationGate.COLD

        response = await test_client.get("/api/status")
        assert response.status_code == 200
        assert setup_doubles.connect.await_count == 2

    @pytest.mark.asyncio
    async def test_partial_setup_does_not_mount_routes_twice(self, test_client, setup_doubles, fresh_app):
        attempts = []

        async def flaky_then_real(app):
            attempts.append(app)
            if len(attempts) == 1:
                raise RuntimeError("flaky")
            await register_routes(app)

        setup_doubles.register_business.side_effect = flaky_then_real

        with pytest.raises(RuntimeError, match="flaky"):
            await test_client.get("/api/status")
        response = await test_client.get("/api/auth/session")

        assert response.status_code == 200
        assert setup_doubles.register_auth.call_count == 2
        assert fresh_app.state.auth_routes_registered is True
        # Same route table as an app whose setup succeeded first time
        reference = create_app()
        register_auth_routes(reference)
        await register_routes(reference)
        assert len(fresh_app.routes) == len(reference.routes)

    @pytest.mark.asyncio
    async def test_registrars_are_idempotent(self, fresh_app):
        register_auth_routes(fresh_app)
        await register_routes(fresh_app)
        mounted = len(fresh_app.routes)

        register_auth_routes(fresh_app)
        await register_routes(fresh_app)

        assert len(fresh_app.routes) == mounted
        assert fresh_app.state.business_routes_registered is True


class TestAuthRoutes:
    """Routes mounted by register_auth_routes()."""

    @pytest.mark.asyncio
    async def test_session_without_cookie(self, test_client):
        response = await test_client.get("/api/auth/session")
        assert response.status_code == 200
        assert response.json() == {"authenticated": False}

    @pytest.mark.asyncio
    async def test_session_with_cookie(self, test_client):
        response = await test_client.get(
            "/api/auth/session", headers={"Cookie": "session=abc123"}
        )
        assert response.json() == {"authenticated": True}

    @pytest.mark.asyncio
    async def test_logout_clears_cookie(self, test_client):
        response = await test_client.post("/api/auth/logout")
        assert response.status_code == 204
        set_cookie = response.headers["set-cookie"]
        assert set_cookie.startswith("session=")
        assert "Max-Age=0" in set_cookie


class TestModuleWiring:
    """The objects hosting runtimes import."""

    def test_module_exports(self):
        from apiserver import entrypoint

        assert isinstance(entrypoint.app, ServerlessEntrypoint)
        assert isinstance(entrypoint.app.gate, InitializationGate)
        assert entrypoint.app.gate.app is entrypoint.app.app
        assert isinstance(entrypoint.handler, Mangum)

    @pytest.mark.asyncio
    async def test_lifespan_scope_bypasses_gate(self, entrypoint, setup_doubles):
        messages = [{"type": "lifespan.startup"}, {"type": "lifespan.shutdown"}]
        sent = []

        async def receive():
            return messages.pop(0)

        async def send(message):
            sent.append(message["type"])

        await entrypoint({"type": "lifespan", "asgi": {"version": "3.0"}, "state": {}}, receive, send)

        assert sent == ["lifespan.startup.complete", "lifespan.shutdown.complete"]
        setup_doubles.connect.assert_not_awaited()


def _http_api_event(path: str, method: str = "GET") -> dict:
    """Minimal API Gateway HTTP API (payload v2.0) event."""
    return {
        "version": "2.0",
        "routeKey": "$default",
        "rawPath": path,
        "rawQueryString": "",
        "headers": {"host": "abc123.execute-api.us-east-1.amazonaws.com"},
        "requestContext": {
            "http": {
                "method": method,
                "path": path,
                "protocol": "HTTP/1.1",
                "sourceIp": "203.0.113.7",
                "userAgent": "pytest",
            },
            "requestId": "req-1",
            "stage": "$default",
        },
        "isBase64Encoded": False,
    }


class TestLambdaHandler:
    """Events delivered through Mangum, as on a Lambda host."""

    @pytest.fixture
    def event_loop_for_mangum(self):
        # Mangum drives the current thread's loop with run_until_complete
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        yield loop
        loop.close()
        asyncio.set_event_loop(None)

    def test_warm_invocation_returns_200(self, entrypoint, setup_doubles, event_loop_for_mangum):
        handler = Mangum(entrypoint, lifespan="off")

        first = handler(_http_api_event("/api/status"), {})
        second = handler(_http_api_event("/api/status"), {})

        assert first["statusCode"] == 200
        assert second["statusCode"] == 200
        assert json.loads(second["body"])["status"] == "ready"
        setup_doubles.connect.assert_awaited_once()

    def test_gate_failure_becomes_500(self, entrypoint, setup_doubles, gate, event_loop_for_mangum):
        setup_doubles.connect.side_effect = DatabaseConnectionError()
        handler = Mangum(entrypoint, lifespan="off")

        response = handler(_http_api_event("/api/status"), {})

        assert response["statusCode"] == 500
        assert gate.state == InitializationGate.COLD

    def test_health_answers_while_gate_fails(self, entrypoint, setup_doubles, event_loop_for_mangum):
        setup_doubles.connect.side_effect = DatabaseConnectionError()
        handler = Mangum(entrypoint, lifespan="off")

        response = handler(_http_api_event("/api/health"), {})

        assert response["statusCode"] == 200
        assert json.loads(response["body"])["status"] == "ok"


class TestOpenAPIDocs:
    """The error envelope is documented on the routers the gate mounts."""

    @pytest.mark.asyncio
    async def test_error_response_schema_is_published(self, fresh_app):
        register_auth_routes(fresh_app)
        await register_routes(fresh_app)

        schema = fresh_app.openapi()

        assert "ErrorResponse" in schema["components"]["schemas"]
        for path, method in (("/api/status", "get"), ("/api/auth/session", "get")):
            error = schema["paths"][path][method]["responses"]["500"]
            assert error["content"]["application/json"]["schema"]["$ref"].endswith("/ErrorResponse")
