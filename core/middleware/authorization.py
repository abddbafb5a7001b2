"""
Authorization for checking user permissions and access control.

This module implements:
1. Role to permission tables (admin, hiring_manager, recruiter, vendor)
2. Role hierarchy for minimum-role checks
3. FastAPI dependency factories guarding routes
4. Access-denied logging

Tenant isolation (company scoping) and per-job access are enforced by the
services; see ``api.services.job_access``.
"""

import logging
from typing import Callable, Set
from enum import Enum
from fastapi import Request

from core.exceptions import AuthenticationError, AuthorizationError
from database.models.users import User, UserRole

logger = logging.getLogger(__name__)


class Permission(str, Enum):
    """System-wide permissions."""

    # Company Management
    COMPANY_READ = "company:read"
    COMPANY_CREATE = "company:create"
    COMPANY_UPDATE = "company:update"
    COMPANY_DELETE = "company:delete"

    # User Management
    USER_READ = "user:read"
    USER_CREATE = "user:create"
    USER_UPDATE = "user:update"
    USER_DELETE = "user:delete"

    # Job Management
    JOB_READ = "job:read"
    JOB_CREATE = "job:create"
    JOB_UPDATE = "job:update"
    JOB_DELETE = "job:delete"

    # Candidate Management
    CANDIDATE_READ = "candidate:read"
    CANDIDATE_CREATE = "candidate:create"
    CANDIDATE_UPDATE = "candidate:update"
    CANDIDATE_DELETE = "candidate:delete"

    # Pipeline
    PIPELINE_READ = "pipeline:read"
    PIPELINE_CREATE = "pipeline:create"
    PIPELINE_UPDATE = "pipeline:update"
    PIPELINE_DELETE = "pipeline:delete"

    # Interviews
    INTERVIEW_READ = "interview:read"
    INTERVIEW_CREATE = "interview:create"
    INTERVIEW_UPDATE = "interview:update"
    INTERVIEW_DELETE = "interview:delete"

    # Settings
    SETTINGS_READ = "settings:read"
    SETTINGS_UPDATE = "settings:update"

    # Reporting & Analytics
    REPORTS_READ = "reports:read"
    REPORTS_EXPORT = "reports:export"


# Role to permission mapping
ROLE_PERMISSIONS: dict[UserRole, Set[Permission]] = {
    UserRole.ADMIN: set(Permission),
    UserRole.HIRING_MANAGER: {
        Permission.JOB_READ, Permission.JOB_CREATE, Permission.JOB_UPDATE,
        Permission.CANDIDATE_READ, Permission.CANDIDATE_UPDATE,
        Permission.PIPELINE_READ, Permission.PIPELINE_UPDATE,
        Permission.INTERVIEW_READ, Permission.INTERVIEW_CREATE, Permission.INTERVIEW_UPDATE,
        Permission.REPORTS_READ,
    },
    UserRole.RECRUITER: {
        Permission.JOB_READ,
        Permission.CANDIDATE_READ, Permission.CANDIDATE_CREATE, Permission.CANDIDATE_UPDATE,
        Permission.PIPELINE_READ, Permission.PIPELINE_UPDATE,
        Permission.INTERVIEW_READ, Permission.INTERVIEW_CREATE, Permission.INTERVIEW_UPDATE,
    },
    UserRole.VENDOR: {
        Permission.JOB_READ,
        Permission.CANDIDATE_READ, Permission.CANDIDATE_CREATE,
        Permission.PIPELINE_READ,
    },
}

# Higher number = more privileges
ROLE_HIERARCHY: dict[UserRole, int] = {
    UserRole.ADMIN: 3,
    UserRole.HIRING_MANAGER: 2,
    UserRole.RECRUITER: 1,
    UserRole.VENDOR: 0,
}


def _as_role(role: UserRole | str) -> UserRole | None:
    try:
        return UserRole(role)
    except ValueError:
        return None


def get_role_permissions(role: UserRole | str) -> Set[Permission]:
    """All permissions granted to a role (empty for unknown roles)."""
    resolved = _as_role(role)
    if resolved is None:
        return set()
    return set(ROLE_PERMISSIONS.get(resolved, set()))


def has_permission(role: UserRole | str, permission: Permission) -> bool:
    return permission in get_role_permissions(role)


def is_role_higher_or_equal(role: UserRole | str, min_role: UserRole | str) -> bool:
    """
    Check a role against the hierarchy.

    Args:
        role: Role being checked
        min_role: Minimum required role

    Returns:
        True if ``role`` ranks at or above ``min_role``
    """
    resolved, minimum = _as_role(role), _as_role(min_role)
    if resolved is None or minimum is None:
        return False
    return ROLE_HIERARCHY[resolved] >= ROLE_HIERARCHY[minimum]


class AuthorizationMiddleware:
    """
    Authorization middleware placeholder in the ASGI stack.

    Authorization is done at the route level using dependencies, not in
    middleware. This middleware only ensures the scope carries a ``user``
    key for downstream code.
    """

    def __init__(self, app: Callable):
        self.app = app

    async def __call__(self, scope: dict, receive: Callable, send: Callable) -> None:
        if scope["type"] == "http":
            scope.setdefault("user", None)
        await self.app(scope, receive, send)


def _request_user(request: Request) -> User:
    user = getattr(request.state, "user", None)
    if not user:
        raise AuthenticationError("Authentication required")
    return user


def require_permission(*required_permissions: Permission) -> Callable:
    """
    Dependency to require specific permissions.

    Args:
        required_permissions: Every one of these must be granted to the user's role

    Returns:
        FastAPI dependency returning the user
    """
    async def dependency(request: Request) -> User:
        user = _request_user(request)
        granted = get_role_permissions(user.role)
        missing = [p for p in required_permissions if p not in granted]
        if missing:
            logger.warning(
                f"User {user.id} with role {user.role} lacks permission "
                f"{', '.join(p.value for p in missing)}"
            )
            raise AuthorizationError("Access denied")
        return user

    return dependency


def require_minimum_role(min_role: UserRole) -> Callable:
    """
    Dependency to require a role at or above ``min_role`` in the hierarchy.
    """
    async def dependency(request: Request) -> User:
        user = _request_user(request)
        if not is_role_higher_or_equal(user.role, min_role):
            logger.warning(
                f"User {user.id} with role {user.role} below required role {min_role.value}"
            )
            raise AuthorizationError("Access denied")
        return user

    return dependency


def require_roles(*allowed_roles: UserRole) -> Callable:
    """
    Dependency to require one of the listed roles.
    """
    async def dependency(request: Request) -> User:
        user = _request_user(request)
        if _as_role(user.role) not in allowed_roles:
            logger.warning(
                f"User {user.id} with role {user.role} attempted action "
                f"requiring roles: {', '.join(r.value for r in allowed_roles)}"
            )
            raise AuthorizationError("Access denied")
        return user

    return dependency
