"""
Tests for the authentication middleware, exercised through the API.

Tests:
- Public endpoints skip authentication
- Missing, malformed, expired and revoked tokens
- Deleted and inactive users
- The authenticated user reaching the route
"""

from datetime import timedelta

import pytest

from core.middleware.authentication import PUBLIC_ENDPOINTS, AuthenticationMiddleware
from core.security import create_access_token, revoke_token
from tests.helpers import auth_headers, make_user
from database.models.users import UserRole

ME = "/api/v1/auth/me"


class TestPublicEndpoints:

    @pytest.mark.parametrize("path", ["/", "/health", "/api/v1/auth/login"])
    def test_listed_as_public(self, path):
        assert path in PUBLIC_ENDPOINTS

    def test_calendar_callback_is_public(self):
        middleware = AuthenticationMiddleware(app=None, jwt_secret="x")

        assert middleware._is_public_endpoint("/api/v1/calendar/callback/google")
        assert not middleware._is_public_endpoint("/api/v1/jobs")

    async def test_health_without_token(self, client):
        response = await client.get("/health")

        assert response.status_code == 200


class TestRejectedRequests:
    """Every failure is a 401 with a Bearer challenge."""

    async def test_missing_token(self, client):
        response = await client.get(ME)

        assert response.status_code == 401
        assert response.headers["www-authenticate"] == "Bearer"
        error = response.json()["error"]
        assert error["code"] == "TOKEN_INVALID"
        assert error["path"] == ME
        assert "timestamp" in error

    async def test_non_bearer_scheme(self, client, admin):
        token = auth_headers(admin)["Authorization"].split(" ", 1)[1]

        response = await client.get(ME, headers={"Authorization": f"Token {token}"})

        assert response.json()["error"]["code"] == "TOKEN_INVALID"

    async def test_garbage_token(self, client):
        response = await client.get(ME, headers={"Authorization": "Bearer not-a-jwt"})

        assert response.status_code == 401
        assert response.json()["error"]["code"] == "TOKEN_INVALID"

    async def test_expired_token(self, client, admin):
        token = create_access_token(
            admin.id, admin.company_id, "admin", expires_delta=timedelta(minutes=-1)
        )

        response = await client.get(ME, headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == 401
        assert response.json()["error"]["code"] == "TOKEN_EXPIRED"

    async def test_revoked_token(self, client, admin):
        headers = auth_headers(admin)
        revoke_token(headers["Authorization"].split(" ", 1)[1])

        response = await client.get(ME, headers=headers)

        assert response.status_code == 401
        assert response.json()["error"]["code"] == "TOKEN_REVOKED"

    async def test_unknown_user(self, client, company):
        token = create_access_token(9999, company.id, "admin")

        response = await client.get(ME, headers={"Authorization": f"Bearer {token}"})

        assert response.json()["error"]["code"] == "USER_NOT_FOUND"

    async def test_inactive_user(self, client, company):
        user = await make_user(company.id, UserRole.RECRUITER, is_active=False)

        response = await client.get(ME, headers=auth_headers(user))

        assert response.status_code == 401
        assert response.json()["error"]["code"] == "USER_INACTIVE"


class TestAuthenticatedRequests:

    async def test_user_reaches_route(self, client, recruiter):
        response = await client.get(ME, headers=auth_headers(recruiter))

        assert response.status_code == 200
        body = response.json()
        assert body["id"] == recruiter.id
        assert body["role"] == "recruiter"
        assert "password_hash" not in body

    async def test_logout_revokes_token(self, client, admin):
        headers = auth_headers(admin)

        response = await client.post("/api/v1/auth/logout", headers=headers)
        assert response.status_code == 200
        assert response.json()["message"] == "Logged out"

        response = await client.get(ME, headers=headers)
        assert response.json()["error"]["code"] == "TOKEN_REVOKED"
