"""In-app notification endpoints for the current user."""

from fastapi import APIRouter, Depends, Path, Query

from api.dependencies import require_active_user
from api.schemas.common import MessageResponse
from api.schemas.notifications import MarkAllReadResponse, UnreadCountResponse
from api.services import notifications as notification_service
from database.models.users import User

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("", summary="List Notifications")
async def list_notifications(
    unread_only: bool = Query(False),
    limit: int = Query(50, ge=1, le=100),
    current_user: User = Depends(require_active_user),
):
    return await notification_service.get_notifications(current_user.id, unread_only, limit)


@router.get("/unread-count", response_model=UnreadCountResponse, summary="Unread Count")
async def unread_count(current_user: User = Depends(require_active_user)):
    return UnreadCountResponse(count=await notification_service.get_unread_count(current_user.id))


@router.put("/read-all", response_model=MarkAllReadResponse, summary="Mark All Read")
async def mark_all_read(current_user: User = Depends(require_active_user)):
    return MarkAllReadResponse(updated=await notification_service.mark_all_as_read(current_user.id))


@router.put("/{notification_id}/read", summary="Mark Read")
async def mark_read(
    notification_id: int = Path(..., description="Notification ID"),
    current_user: User = Depends(require_active_user),
):
    return await notification_service.mark_as_read(notification_id, current_user.id)


@router.delete("/{notification_id}", response_model=MessageResponse, summary="Delete Notification")
async def delete_notification(
    notification_id: int = Path(..., description="Notification ID"),
    current_user: User = Depends(require_active_user),
):
    await notification_service.delete_notification(notification_id, current_user.id)
    return MessageResponse(message="Notification deleted")
