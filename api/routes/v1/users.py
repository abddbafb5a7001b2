"""
User management endpoints.

All operations are limited to the current user's company.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Path, Query, status

from api.dependencies import require_active_user
from api.schemas.common import MessageResponse, to_service_data
from api.schemas.users import UserCreate, UserUpdate
from api.services import users as user_service
from core.middleware.authorization import Permission, require_permission
from database.models.users import User

router = APIRouter(prefix="/users", tags=["users"])


@router.get(
    "",
    summary="List Users",
    description="Users of the company. Requires user:read permission.",
    dependencies=[Depends(require_permission(Permission.USER_READ))],
)
async def list_users(
    role: Optional[str] = Query(None, description="Filter by role"),
    include_inactive: bool = Query(True),
    current_user: User = Depends(require_active_user),
):
    return await user_service.list_company_users(current_user.company_id, role, include_inactive)


@router.post(
    "",
    status_code=status.HTTP_201_CREATED,
    summary="Create User",
    dependencies=[Depends(require_permission(Permission.USER_CREATE))],
)
async def create_user(
    request: UserCreate,
    current_user: User = Depends(require_active_user),
):
    return await user_service.create_user(
        company_id=current_user.company_id,
        name=request.name,
        email=request.email,
        password=request.password,
        role=request.role.value,
        created_by=current_user.id,
    )


@router.get(
    "/{user_id}",
    summary="Get User",
    dependencies=[Depends(require_permission(Permission.USER_READ))],
)
async def get_user(
    user_id: int = Path(..., description="User ID"),
    current_user: User = Depends(require_active_user),
):
    return await user_service.get_user(user_id, current_user.company_id)


@router.put(
    "/{user_id}",
    summary="Update User",
    dependencies=[Depends(require_permission(Permission.USER_UPDATE))],
)
async def update_user(
    request: UserUpdate,
    user_id: int = Path(..., description="User ID"),
    current_user: User = Depends(require_active_user),
):
    return await user_service.update_user(user_id, to_service_data(request), current_user.company_id)


@router.post(
    "/{user_id}/deactivate",
    summary="Deactivate User",
    dependencies=[Depends(require_permission(Permission.USER_UPDATE))],
)
async def deactivate_user(
    user_id: int = Path(..., description="User ID"),
    current_user: User = Depends(require_active_user),
):
    return await user_service.deactivate_user(user_id, current_user.company_id)


@router.delete(
    "/{user_id}",
    response_model=MessageResponse,
    summary="Delete User",
    dependencies=[Depends(require_permission(Permission.USER_DELETE))],
)
async def delete_user(
    user_id: int = Path(..., description="User ID"),
    current_user: User = Depends(require_active_user),
):
    await user_service.delete_user(user_id, current_user.company_id, deleted_by=current_user.id)
    return MessageResponse(message="User deleted")
