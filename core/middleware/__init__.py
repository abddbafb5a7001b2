"""
Core middleware package.

This package provides the middleware components of the API:
- Error handling with sensitive data sanitization
- Structured logging with PII masking
- JWT authentication
- Role-based authorization
"""

from core.middleware.error_handling import (
    ErrorHandlingMiddleware,
    setup_error_handlers,
    sanitize_error_message,
)

from core.middleware.logging import (
    StructuredLoggingMiddleware,
    setup_logging,
    get_logger,
)

from core.middleware.authentication import (
    AuthenticationMiddleware,
    PUBLIC_ENDPOINTS,
)

from core.middleware.authorization import (
    AuthorizationMiddleware,
    Permission,
    ROLE_PERMISSIONS,
    ROLE_HIERARCHY,
    has_permission,
    get_role_permissions,
    is_role_higher_or_equal,
    require_permission,
    require_minimum_role,
    require_roles,
)

__all__ = [
    # Error handling
    "ErrorHandlingMiddleware",
    "setup_error_handlers",
    "sanitize_error_message",
    # Logging
    "StructuredLoggingMiddleware",
    "setup_logging",
    "get_logger",
    # Authentication
    "AuthenticationMiddleware",
    "PUBLIC_ENDPOINTS",
    # Authorization
    "AuthorizationMiddleware",
    "Permission",
    "ROLE_PERMISSIONS",
    "ROLE_HIERARCHY",
    "has_permission",
    "get_role_permissions",
    "is_role_higher_or_equal",
    "require_permission",
    "require_minimum_role",
    "require_roles",
]
