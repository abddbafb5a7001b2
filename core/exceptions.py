"""
Application error hierarchy.

Services raise these; ``setup_error_handlers`` turns them into the common
JSON error envelope with the matching HTTP status.
"""

from typing import Any, Optional


class AppError(Exception):
    """Base class for expected, client-facing errors."""

    status_code: int = 500
    code: str = "INTERNAL_SERVER_ERROR"
    default_message: str = "An unexpected error occurred"

    def __init__(
        self,
        message: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ):
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)


class ValidationError(AppError):
    """
    Invalid input.

    ``details`` maps field names to lists of messages, e.g.
    ``{"title": ["Title is required"]}``.
    """

    status_code = 400
    code = "VALIDATION_ERROR"
    default_message = "Validation failed"

    def __init__(self, errors: dict[str, list[str]], message: Optional[str] = None):
        super().__init__(message, details=errors)
        self.errors = errors


class AuthenticationError(AppError):
    status_code = 401
    code = "AUTHENTICATION_ERROR"
    default_message = "Invalid email or password"


class ForbiddenError(AppError):
    status_code = 403
    code = "FORBIDDEN"
    default_message = "Forbidden"


class AuthorizationError(ForbiddenError):
    code = "AUTHORIZATION_ERROR"
    default_message = "Access denied"


class NotFoundError(AppError):
    status_code = 404
    code = "NOT_FOUND"

    def __init__(self, resource: str = "Resource"):
        super().__init__(f"{resource} not found")
        self.resource = resource


class ConflictError(AppError):
    status_code = 409
    code = "CONFLICT"
    default_message = "Resource already exists"

    def __init__(self, message: Optional[str] = None, data: Optional[dict[str, Any]] = None):
        super().__init__(message, details=data)
        self.data = data
