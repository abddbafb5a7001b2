"""
Tests for error handling middleware.

Every failure must come back as the common error envelope, without leaking
credentials or stack traces.
"""

import pytest
from fastapi import FastAPI, HTTPException
from fastapi.testclient import TestClient
from pydantic import BaseModel
from sqlalchemy.exc import IntegrityError, OperationalError

from core.exceptions import ConflictError, ForbiddenError, NotFoundError, ValidationError
from core.middleware.error_handling import (
    ErrorHandlingMiddleware,
    build_error_body,
    get_safe_error_details,
    sanitize_error_message,
    setup_error_handlers,
)


class TestSensitiveDataSanitization:
    """Test sensitive data sanitization."""

    @pytest.mark.parametrize("sensitive_input", [
        'password="secret123"',
        'access_token:jwt.token.here',
        'api_key="sk_live_12345"',
        'client_secret:abc123',
        'authorization: Bearer',
        'card 4532123456789010',
    ])
    def test_sensitive_values_redacted(self, sensitive_input):
        assert "[REDACTED]" in sanitize_error_message(sensitive_input)

    @pytest.mark.parametrize("safe_input", [
        'Job not found',
        'email="user@example.com"',
        'count=12345',
    ])
    def test_safe_values_untouched(self, safe_input):
        assert sanitize_error_message(safe_input) == safe_input

    def test_none_message(self):
        assert sanitize_error_message(None) == ""

    def test_safe_error_details(self):
        details = get_safe_error_details(ValueError('password="hunter2"'))

        assert details["type"] == "ValueError"
        assert "hunter2" not in details["message"]
        assert "traceback" not in details

    def test_error_body_shape(self):
        body = build_error_body("NOT_FOUND", "Job not found", "/api/v1/jobs/1", "GET")

        assert body == {
            "error": {
                "code": "NOT_FOUND",
                "message": "Job not found",
                "path": "/api/v1/jobs/1",
                "method": "GET",
            }
        }


class Payload(BaseModel):
    title: str
    openings: int


@pytest.fixture
def app():
    app = FastAPI()
    setup_error_handlers(app)

    @app.get("/validation")
    async def validation():
        raise ValidationError({"title": ["Title is required"]})

    @app.get("/not-found")
    async def not_found():
        raise NotFoundError("Job")

    @app.get("/conflict")
    async def conflict():
        raise ConflictError("Candidate with this email already exists", data={"existing_id": 3})

    @app.get("/forbidden")
    async def forbidden():
        raise ForbiddenError("You do not have access to this job")

    @app.get("/http")
    async def http_error():
        raise HTTPException(status_code=418, detail="I'm a teapot")

    @app.post("/body")
    async def body(payload: Payload):
        return payload

    @app.get("/integrity")
    async def integrity():
        raise IntegrityError("INSERT", {}, Exception("duplicate key"))

    @app.get("/boom")
    async def boom():
        raise RuntimeError('token="abc123secret" exploded')

    return app


@pytest.fixture
def client(app):
    return TestClient(app, raise_server_exceptions=False)


class TestErrorHandlers:
    """Test the exception handlers registered on the app."""

    def test_validation_error(self, client):
        response = client.get("/validation")

        assert response.status_code == 400
        error = response.json()["error"]
        assert error["code"] == "VALIDATION_ERROR"
        assert error["details"] == {"title": ["Title is required"]}
        assert error["path"] == "/validation"
        assert error["method"] == "GET"

    def test_not_found(self, client):
        response = client.get("/not-found")

        assert response.status_code == 404
        assert response.json()["error"]["message"] == "Job not found"

    def test_conflict_carries_existing_id(self, client):
        response = client.get("/conflict")

        assert response.status_code == 409
        assert response.json()["error"]["details"] == {"existing_id": 3}

    def test_forbidden(self, client):
        response = client.get("/forbidden")

        assert response.status_code == 403
        assert response.json()["error"]["code"] == "FORBIDDEN"

    def test_http_exception(self, client):
        response = client.get("/http")

        assert response.status_code == 418
        assert response.json()["error"]["code"] == "HTTP_EXCEPTION"

    def test_request_validation(self, client):
        response = client.post("/body", json={"title": "Engineer", "openings": "many"})

        assert response.status_code == 422
        error = response.json()["error"]
        assert error["code"] == "VALIDATION_ERROR"
        assert error["details"][0]["field"] == "body.openings"

    def test_unhandled_exception_hides_details(self, client):
        response = client.get("/boom")

        assert response.status_code == 500
        error = response.json()["error"]
        assert error["code"] == "INTERNAL_SERVER_ERROR"
        assert "abc123secret" not in response.text


class TestErrorHandlingMiddleware:
    """Errors escaping inner middleware are still enveloped."""

    @pytest.fixture
    def bare_app(self):
        app = FastAPI()
        app.add_middleware(ErrorHandlingMiddleware)

        @app.get("/integrity")
        async def integrity():
            raise IntegrityError("INSERT", {}, Exception("duplicate key"))

        @app.get("/operational")
        async def operational():
            raise OperationalError("SELECT 1", {}, Exception("connection refused"))

        @app.get("/app-error")
        async def app_error():
            raise NotFoundError("Candidate")

        return app

    def test_integrity_error_maps_to_conflict(self, bare_app):
        client = TestClient(bare_app, raise_server_exceptions=False)

        response = client.get("/integrity")

        assert response.status_code == 409
        assert response.json()["error"]["code"] == "INTEGRITY_ERROR"

    def test_operational_error_maps_to_503(self, bare_app):
        client = TestClient(bare_app, raise_server_exceptions=False)

        response = client.get("/operational")

        assert response.status_code == 503
        assert response.json()["error"]["code"] == "DATABASE_ERROR"

    def test_app_error_status_kept(self, bare_app):
        client = TestClient(bare_app, raise_server_exceptions=False)

        response = client.get("/app-error", headers={"x-request-id": "req-1"})

        assert response.status_code == 404
        assert response.json()["error"]["request_id"] == "req-1"
