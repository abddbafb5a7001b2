"""
Calendar connection endpoints.

Users connect Google or Microsoft calendars over OAuth. The provider
redirects back to the public callback, which stores the tokens and sends
the browser back to the settings page of the web app.
"""

from typing import Optional
import logging

from fastapi import APIRouter, Depends, Path, Query
from fastapi.responses import RedirectResponse

from api.dependencies import require_active_user
from api.schemas.common import MessageResponse
from api.services import calendar as calendar_service
from core.config import settings
from core.exceptions import ValidationError
from database.models.users import User

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/calendar", tags=["calendar"])


def _settings_redirect(**params: str) -> RedirectResponse:
    query = "&".join(f"{k}={v}" for k, v in params.items())
    return RedirectResponse(url=f"{settings.app_base_url.rstrip('/')}/settings?{query}")


@router.get("/status", summary="Calendar Connection Status")
async def connection_status(current_user: User = Depends(require_active_user)):
    return await calendar_service.get_connection_status(current_user.id)


@router.get("/{provider}/auth-url", summary="Get OAuth URL")
async def auth_url(
    provider: str = Path(..., description="google or microsoft"),
    current_user: User = Depends(require_active_user),
):
    return {"url": calendar_service.get_auth_url(provider, current_user.id)}


@router.get(
    "/callback/{provider}",
    summary="OAuth Callback",
    description="Redirect target for the calendar provider. Does not require a session.",
)
async def oauth_callback(
    provider: str = Path(..., description="google or microsoft"),
    code: Optional[str] = Query(None),
    state: Optional[str] = Query(None, description="ID of the user who started the flow"),
    error: Optional[str] = Query(None),
):
    if error:
        logger.warning(f"{provider} OAuth returned error: {error}")
        return _settings_redirect(calendar_error=error)

    if not code or not state:
        raise ValidationError({"callback": ["Missing authorization code or state parameter"]})
    try:
        user_id = int(state)
    except ValueError:
        raise ValidationError({"state": ["Invalid state parameter"]})

    await calendar_service.handle_oauth_callback(provider, code, user_id)
    return _settings_redirect(calendar_connected=provider)


@router.delete("/{provider}", response_model=MessageResponse, summary="Disconnect Calendar")
async def disconnect(
    provider: str = Path(..., description="google or microsoft"),
    current_user: User = Depends(require_active_user),
):
    await calendar_service.disconnect_calendar(current_user.id, provider)
    return MessageResponse(message=f"{provider} calendar disconnected")
