"""
Unit tests for middleware components.
"""

from __future__ import annotations

import pytest
import structlog
from fastapi import FastAPI, Request
from fastapi.testclient import TestClient

from rental_reservations.middleware import RequestIDMiddleware


@pytest.fixture
def app_with_middleware() -> FastAPI:
    """Create FastAPI app with RequestIDMiddleware for testing."""
    app = FastAPI()
    app.add_middleware(RequestIDMiddleware)

    @app.get("/test")
    async def test_endpoint(request: Request) -> dict[str, str]:
        """Test endpoint that returns the request ID."""
        return {"request_id": request.state.request_id}

    @app.get("/context")
    async def context_endpoint() -> dict[str, str]:
        return {k: str(v) for k, v in structlog.contextvars.get_contextvars().items()}

    return app


@pytest.fixture
def client(app_with_middleware: FastAPI) -> TestClient:
    """FastAPI test client with middleware."""
    return TestClient(app_with_middleware)


@pytest.mark.unit
def test_request_id_middleware_adds_header(client: TestClient) -> None:
    """Test that RequestIDMiddleware adds X-Request-ID header to response."""
    response = client.get("/test")

    assert response.status_code == 200
    assert "X-Request-ID" in response.headers
    assert len(response.headers["X-Request-ID"]) == 36  # UUID length


@pytest.mark.unit
def test_request_id_middleware_matches_header_and_state(client: TestClient) -> None:
    """Test that request ID in header matches request ID in state."""
    response = client.get("/test")

    assert response.headers["X-Request-ID"] == response.json()["request_id"]


@pytest.mark.unit
def test_request_id_middleware_unique_per_request(client: TestClient) -> None:
    """Test that each request gets a unique request ID."""
    response1 = client.get("/test")
    response2 = client.get("/test")

    assert response1.headers["X-Request-ID"] != response2.headers["X-Request-ID"]


@pytest.mark.unit
def test_request_id_middleware_reuses_incoming_id(client: TestClient) -> None:
    """Test that an X-Request-ID sent by the caller is kept end to end."""
    response = client.get("/test", headers={"X-Request-ID": "evt-trace-42"})

    assert response.headers["X-Request-ID"] == "evt-trace-42"
    assert response.json()["request_id"] == "evt-trace-42"


@pytest.mark.unit
def test_request_id_middleware_binds_log_context(client: TestClient) -> None:
    response = client.get("/context", headers={"X-Request-ID": "abc"})

    assert response.json() == {"request_id": "abc", "method": "GET", "path": "/context"}
