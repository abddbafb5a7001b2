"""
Authentication middleware for verifying user identity.

This middleware:
1. Validates JWT tokens from Authorization headers
2. Rejects tokens revoked by logout
3. Loads the user and rejects inactive accounts
4. Injects the user into the request scope (``request.state.user``)
"""

import logging
from typing import Callable, Optional
from datetime import datetime, timezone
import jwt
from fastapi import Request, status
from fastapi.responses import JSONResponse
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import settings
from core.security import JWTPayload, is_token_revoked, verify_jwt_token
from database.engine import AsyncSessionLocal
from database.models.users import User

logger = logging.getLogger(__name__)

API_PREFIX = settings.api_v1_prefix

# Public endpoints that don't require authentication
PUBLIC_ENDPOINTS = [
    "/",
    "/health",
    "/ready",
    f"{API_PREFIX}/health",
    f"{API_PREFIX}/auth/login",
    f"{API_PREFIX}/auth/register",
    "/docs",
    "/redoc",
    "/openapi.json",
]

# Provider redirects land here without a bearer token; the user id travels in ``state``
PUBLIC_PREFIXES = [
    "/health",
    "/ready",
    "/docs",
    "/redoc",
    f"{API_PREFIX}/calendar/callback",
]


class AuthenticationError(Exception):
    """Base exception for authentication errors."""
    pass


class TokenExpiredError(AuthenticationError):
    """Raised when JWT token has expired."""
    pass


class TokenInvalidError(AuthenticationError):
    """Raised when JWT token is invalid."""
    pass


class TokenRevokedError(AuthenticationError):
    """Raised when JWT token was revoked by logout."""
    pass


class UserNotFoundError(AuthenticationError):
    """Raised when user is not found."""
    pass


class UserInactiveError(AuthenticationError):
    """Raised when user account is inactive."""
    pass


class AuthenticationMiddleware:
    """
    Authentication middleware that validates user identity.

    Features:
    - JWT token validation
    - Logout revocation check
    - Active-user enforcement
    - Request context injection
    """

    def __init__(
        self,
        app: Callable,
        jwt_secret: str,
        jwt_algorithm: str = "HS256",
    ):
        """
        Initialize authentication middleware.

        Args:
            app: ASGI application
            jwt_secret: Secret key for JWT verification
            jwt_algorithm: JWT signing algorithm
        """
        self.app = app
        self.jwt_secret = jwt_secret
        self.jwt_algorithm = jwt_algorithm

    async def __call__(self, scope: dict, receive: Callable, send: Callable) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        request = Request(scope)

        # Skip authentication for public endpoints and CORS preflight
        if request.method == "OPTIONS" or self._is_public_endpoint(request.url.path):
            await self.app(scope, receive, send)
            return

        try:
            token = self._extract_token(request)
            if not token:
                raise TokenInvalidError("No authentication token provided")

            try:
                payload = verify_jwt_token(token, self.jwt_secret, self.jwt_algorithm)
            except jwt.ExpiredSignatureError:
                raise TokenExpiredError("Token has expired")
            except jwt.InvalidTokenError as e:
                raise TokenInvalidError(f"Invalid token: {str(e)}")

            if is_token_revoked(payload.jti):
                raise TokenRevokedError("Token has been revoked")

            async with AsyncSessionLocal() as db:
                user = await self._load_user(db, payload)

            # request.state reads from scope["state"]
            scope["user"] = user
            scope["jwt_payload"] = payload
            scope.setdefault("state", {})
            scope["state"]["user"] = user
            scope["state"]["token"] = token

        except TokenExpiredError:
            await self._send_error_response(
                scope, receive, send,
                status_code=status.HTTP_401_UNAUTHORIZED,
                code="TOKEN_EXPIRED",
                message="Authentication token has expired. Please login again.",
            )
            return
        except TokenRevokedError:
            await self._send_error_response(
                scope, receive, send,
                status_code=status.HTTP_401_UNAUTHORIZED,
                code="TOKEN_REVOKED",
                message="Authentication token has been revoked. Please login again.",
            )
            return
        except TokenInvalidError as e:
            logger.warning(f"Invalid token: {str(e)}")
            await self._send_error_response(
                scope, receive, send,
                status_code=status.HTTP_401_UNAUTHORIZED,
                code="TOKEN_INVALID",
                message="Invalid authentication token.",
            )
            return
        except UserNotFoundError:
            logger.error("User not found for valid token")
            await self._send_error_response(
                scope, receive, send,
                status_code=status.HTTP_401_UNAUTHORIZED,
                code="USER_NOT_FOUND",
                message="User account not found.",
            )
            return
        except UserInactiveError:
            logger.warning("Inactive user attempted access")
            await self._send_error_response(
                scope, receive, send,
                status_code=status.HTTP_401_UNAUTHORIZED,
                code="USER_INACTIVE",
                message="User account is inactive. Please contact your administrator.",
            )
            return

        # Continue to next middleware/route
        await self.app(scope, receive, send)

    def _is_public_endpoint(self, path: str) -> bool:
        if path in PUBLIC_ENDPOINTS:
            return True
        return any(path.startswith(prefix) for prefix in PUBLIC_PREFIXES)

    def _extract_token(self, request: Request) -> Optional[str]:
        """
        Extract JWT token from Authorization header.

        Returns:
            JWT token or None
        """
        auth_header = request.headers.get("Authorization")

        if auth_header and auth_header.startswith("Bearer "):
            return auth_header[7:].strip() or None

        return None

    async def _load_user(self, db: AsyncSession, payload: JWTPayload) -> User:
        """
        Load the token subject.

        Raises:
            UserNotFoundError: If user doesn't exist
            UserInactiveError: If user is inactive
        """
        result = await db.execute(select(User).where(User.id == payload.user_id))
        user = result.scalar_one_or_none()

        if not user:
            raise UserNotFoundError(f"User {payload.user_id} not found")

        if not user.is_active:
            raise UserInactiveError(f"User {payload.user_id} is inactive")

        return user

    async def _send_error_response(
        self,
        scope: dict,
        receive: Callable,
        send: Callable,
        status_code: int,
        code: str,
        message: str,
    ) -> None:
        error_response = {
            "error": {
                "code": code,
                "message": message,
                "path": scope.get("path"),
                "method": scope.get("method"),
                "timestamp": datetime.now(timezone.utc).isoformat(),
            }
        }

        response = JSONResponse(
            status_code=status_code,
            content=error_response,
            headers={"WWW-Authenticate": "Bearer"},
        )

        await response(scope, receive, send)
