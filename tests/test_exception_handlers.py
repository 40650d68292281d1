"""Tests for global exception handlers.

Validates that all exception types are handled consistently with
proper HTTP status codes, the flat ``{"error": ...}`` body, and no
information leakage.
"""

import asyncio
import json
from unittest.mock import AsyncMock

import pytest
from fastapi import FastAPI, Query
from fastapi.testclient import TestClient

from beach_proxy.core.errors import (
    AppError,
    AuthenticationAppError,
    MissingParameterError,
    NotFoundError,
    RateLimitExceededError,
    UpstreamAuthorizationError,
    UpstreamError,
    UpstreamNetworkError,
    UpstreamTimeoutError,
    ValidationAppError,
)
from beach_proxy.core.exception_handlers import general_exception_handler, setup_exception_handlers


@pytest.fixture
def app_with_handlers() -> FastAPI:
    """Create FastAPI app with exception handlers registered."""
    app = FastAPI()
    setup_exception_handlers(app)
    return app


@pytest.fixture
def client(app_with_handlers: FastAPI) -> TestClient:
    return TestClient(app_with_handlers, raise_server_exceptions=False)


def _body(response) -> dict:
    response_body = response.body if isinstance(response.body, bytes) else bytes(response.body)
    return json.loads(response_body.decode())


class TestAppErrorHandler:
    """Test handler for AppError and subclasses."""

    @pytest.mark.parametrize(
        "error, expected_status",
        [
            (ValidationAppError(code="invalid_endpoint", message="bad"), 400),
            (MissingParameterError(code="missing_parameter", message="Endpoint is required"), 400),
            (AuthenticationAppError(code="invalid_api_key", message="no"), 403),
            (NotFoundError(code="not_found", message="Resource not found"), 404),
            (RateLimitExceededError(code="rate_limit_exceeded", message="slow down"), 429),
            (UpstreamAuthorizationError(code="upstream_unauthorized", message="key"), 500),
            (UpstreamError(code="upstream_error", message="API error: 502"), 502),
            (UpstreamNetworkError(code="upstream_unreachable", message="down"), 502),
            (UpstreamTimeoutError(code="upstream_timeout", message="Request timeout"), 504),
        ],
    )
    def test_status_follows_error_class(
        self, client: TestClient, app_with_handlers: FastAPI, error: AppError, expected_status: int
    ):
        @app_with_handlers.get("/boom")
        async def boom():
            raise error

        response = client.get("/boom")

        assert response.status_code == expected_status
        data = response.json()
        assert data["error"] == error.message
        assert data["code"] == error.code
        assert "request_id" in data

    def test_missing_endpoint_body(self, client: TestClient, app_with_handlers: FastAPI):
        @app_with_handlers.get("/missing")
        async def missing():
            raise MissingParameterError(
                code="missing_parameter",
                message="Endpoint is required",
                details={"parameter": "endpoint"},
            )

        response = client.get("/missing")

        assert response.status_code == 400
        data = response.json()
        assert data["error"] == "Endpoint is required"
        assert data["details"] == {"parameter": "endpoint"}

    def test_http_status_detail_overrides_class_and_is_hidden(
        self, client: TestClient, app_with_handlers: FastAPI
    ):
        @app_with_handlers.get("/unconfigured")
        async def unconfigured():
            raise UpstreamAuthorizationError(
                code="api_key_missing",
                message="API key is required",
                details={"http_status": 401, "context": {"internal": True}},
            )

        response = client.get("/unconfigured")

        assert response.status_code == 401
        data = response.json()
        assert data["error"] == "API key is required"
        assert "details" not in data

    def test_rate_limit_sets_retry_after_header(self, client: TestClient, app_with_handlers: FastAPI):
        @app_with_handlers.get("/limited")
        async def limited():
            raise RateLimitExceededError(
                code="rate_limit_exceeded",
                message="Rate limit exceeded. Try again later.",
                details={"retry_after": 12.4, "limit": 30, "window_seconds": 60},
            )

        response = client.get("/limited")

        assert response.status_code == 429
        assert response.headers["Retry-After"] == "12"
        assert response.json()["details"]["limit"] == 30


class TestFrameworkErrors:
    """Request validation and routing errors keep the same body shape."""

    def test_request_validation_returns_400(self, client: TestClient, app_with_handlers: FastAPI):
        @app_with_handlers.get("/typed")
        async def typed(limit: int = Query(...)):
            return {"limit": limit}

        response = client.get("/typed", params={"limit": "abc"})

        assert response.status_code == 400
        data = response.json()
        assert data["code"] == "invalid_parameter"
        assert data["details"]["errors"][0]["parameter"] == "limit"

    def test_unknown_route_returns_404_in_error_shape(self, client: TestClient):
        response = client.get("/does-not-exist")

        assert response.status_code == 404
        data = response.json()
        assert data["code"] == "http_404"
        assert "error" in data


class TestGeneralExceptionHandler:
    """Test fallback handler for unexpected exceptions."""

    def test_unexpected_exception_returns_generic_500(self, client: TestClient, app_with_handlers: FastAPI):
        @app_with_handlers.get("/crash")
        async def crash():
            raise RuntimeError("database connection failed")

        response = client.get("/crash")

        assert response.status_code == 500
        data = response.json()
        assert data["error"] == "Internal server error"
        assert "database connection" not in response.text

    def test_general_exception_handler_never_leaks_stack_trace(self):
        request = AsyncMock()
        request.url.path = "/test"
        request.method = "GET"

        exc = ValueError("Test error with details")
        response = asyncio.run(general_exception_handler(request, exc))

        response_text = json.dumps(_body(response))
        assert response.status_code == 500
        assert "Traceback" not in response_text
        assert "ValueError" not in response_text
        assert "Test error with details" not in response_text


def test_setup_exception_handlers_registers_handlers(app_with_handlers: FastAPI):
    assert AppError in app_with_handlers.exception_handlers
    assert Exception in app_with_handlers.exception_handlers
