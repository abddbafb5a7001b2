"""FastAPI dependencies for dependency injection."""

from typing import Optional
from fastapi import HTTPException, Query, status, Request, Depends

from database.models.users import User


async def get_current_user(request: Request) -> Optional[User]:
    """
    Get the user set by the authentication middleware.
    This is optional - returns None if not authenticated.
    """
    return getattr(request.state, "user", None)


async def require_authenticated_user(
    user: Optional[User] = Depends(get_current_user),
) -> User:
    """Require user to be authenticated."""
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user


async def require_active_user(
    current_user: User = Depends(require_authenticated_user),
) -> User:
    """Require user to be active."""
    if not current_user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Inactive user account",
        )
    return current_user


def get_bearer_token(request: Request) -> Optional[str]:
    """Raw token of the current request, as seen by the authentication middleware."""
    return getattr(request.state, "token", None)


def get_pagination_params(
    page: int = Query(1, ge=1, description="Page number (1-indexed)"),
    page_size: int = Query(20, ge=1, description="Items per page"),
    max_page_size: int = 100,
) -> dict:
    """
    Get pagination parameters.

    Returns:
        Dictionary with offset, limit, page and page_size
    """
    page_size = min(page_size, max_page_size)
    return {
        "offset": (page - 1) * page_size,
        "limit": page_size,
        "page": page,
        "page_size": page_size,
    }
