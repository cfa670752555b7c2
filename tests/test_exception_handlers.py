"""Tests for global exception handlers.

Validates that all exception types are handled consistently with
proper HTTP status codes, error format, and no information leakage.
"""

import asyncio
import json
from unittest.mock import AsyncMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from app.core.errors import (
    AppError,
    AuthenticationAppError,
    ConfigurationError,
    RateLimitedAppError,
    ValidationAppError,
)
from app.core.exception_handlers import general_exception_handler, setup_exception_handlers


@pytest.fixture
def app_with_handlers() -> FastAPI:
    """Create FastAPI app with exception handlers registered."""
    app = FastAPI()
    setup_exception_handlers(app)
    return app


@pytest.fixture
def client(app_with_handlers: FastAPI) -> TestClient:
    return TestClient(app_with_handlers, raise_server_exceptions=False)


class TestAppErrorHandler:
    """Test handler for AppError and subclasses."""

    def test_validation_error_returns_400(self, client: TestClient, app_with_handlers: FastAPI):
        @app_with_handlers.get("/test-validation")
        async def endpoint():
            raise ValidationAppError(code="invalid_request", message="Invalid request")

        response = client.get("/test-validation")

        assert response.status_code == 400
        data = response.json()
        assert data["error"]["code"] == "invalid_request"
        assert data["error"]["message"] == "Invalid request"
        assert "request_id" in data["error"]
        assert "details" not in data["error"]

    def test_validation_error_includes_details(self, client: TestClient, app_with_handlers: FastAPI):
        @app_with_handlers.get("/test-validation-details")
        async def endpoint():
            raise ValidationAppError(
                code="invalid_request",
                message="Invalid request",
                details={"field": "forecast_id", "value": -1},
            )

        response = client.get("/test-validation-details")

        assert response.status_code == 400
        assert response.json()["error"]["details"] == {"field": "forecast_id", "value": -1}

    def test_authentication_error_returns_401(self, client: TestClient, app_with_handlers: FastAPI):
        @app_with_handlers.get("/test-auth")
        async def endpoint():
            raise AuthenticationAppError(code="unauthorized", message="Unauthorized")

        response = client.get("/test-auth")

        assert response.status_code == 401
        assert response.json()["error"]["code"] == "unauthorized"

    def test_configuration_error_returns_500_without_details(
        self, client: TestClient, app_with_handlers: FastAPI
    ):
        @app_with_handlers.get("/test-config")
        async def endpoint():
            raise ConfigurationError(
                code="unknown_policy",
                message="Rate limit policy 'x' is not registered",
                details={"policy_id": "x"},
            )

        response = client.get("/test-config")

        assert response.status_code == 500
        error = response.json()["error"]
        assert error["code"] == "unknown_policy"
        assert "details" not in error

    def test_rate_limited_error_returns_429_with_retry_after(
        self, client: TestClient, app_with_handlers: FastAPI
    ):
        @app_with_handlers.get("/test-limited")
        async def endpoint():
            raise RateLimitedAppError(
                code="rate_limit_exceeded",
                message="Too many requests",
                details={"retry_after": 42, "policy": "auth_endpoints"},
            )

        response = client.get("/test-limited")

        assert response.status_code == 429
        assert response.headers["Retry-After"] == "42"
        assert response.headers["X-RateLimit-Policy"] == "auth_endpoints"
        error = response.json()["error"]
        assert error["code"] == "rate_limit_exceeded"
        assert error["details"] == {"retry_after": 42, "policy": "auth_endpoints"}

    def test_rate_limited_error_with_unregistered_policy_still_sets_retry_after(
        self, client: TestClient, app_with_handlers: FastAPI
    ):
        @app_with_handlers.get("/test-limited-unknown")
        async def endpoint():
            raise RateLimitedAppError(
                code="rate_limit_exceeded",
                message="Too many requests",
                details={"retry_after": 3, "policy": "custom"},
            )

        response = client.get("/test-limited-unknown")

        assert response.status_code == 429
        assert response.headers["Retry-After"] == "3"
        assert "X-RateLimit-Limit" not in response.headers

    def test_error_response_format_is_consistent(self, client: TestClient, app_with_handlers: FastAPI):
        @app_with_handlers.get("/test-format")
        async def endpoint():
            raise ValidationAppError(code="test", message="test")

        data = client.get("/test-format").json()

        assert "error" in data
        assert "code" in data["error"]
        assert "message" in data["error"]
        assert "request_id" in data["error"]


class TestGeneralExceptionHandler:
    """Test fallback handler for unexpected exceptions."""

    def test_unexpected_exception_handler_registered(self, app_with_handlers: FastAPI):
        assert Exception in app_with_handlers.exception_handlers

    def test_unexpected_exception_returns_generic_500(self, client: TestClient, app_with_handlers: FastAPI):
        @app_with_handlers.get("/boom")
        async def endpoint():
            raise RuntimeError("partition table corrupted")

        response = client.get("/boom")

        assert response.status_code == 500
        assert response.json()["error"]["code"] == "internal_server_error"
        assert "partition table" not in response.text

    def test_general_exception_handler_never_leaks_stack_trace(self):
        request = AsyncMock()
        request.url.path = "/test"
        request.method = "GET"

        exc = ValueError("Test error with details")
        response = asyncio.run(general_exception_handler(request, exc))

        response_body = response.body if isinstance(response.body, bytes) else bytes(response.body)
        response_text = response_body.decode()
        data = json.loads(response_text)
        assert response.status_code == 500
        assert "request_id" in data["error"]
        assert "Traceback" not in response_text
        assert "ValueError" not in response_text
        assert "Test error" not in response_text


class TestErrorTypes:
    def test_app_error_str_is_message(self):
        assert str(AppError(code="c", message="readable")) == "readable"

    def test_rate_limited_retry_after_defaults_to_zero(self):
        assert RateLimitedAppError(code="c", message="m").retry_after == 0

    def test_multiple_handler_setups_does_not_fail(self):
        app = FastAPI()

        setup_exception_handlers(app)
        setup_exception_handlers(app)

        assert AppError in app.exception_handlers
