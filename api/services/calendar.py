"""
Calendar service functions for API endpoints.

Connects users' Google / Microsoft calendars over OAuth and mirrors
interviews as events on them. Events are tracked in CalendarEvent rows so
they can be updated or removed later.
"""

from dataclasses import replace
from typing import Any, Dict, Iterable, List, Optional
import logging

from sqlalchemy import delete, select

from core.exceptions import NotFoundError, ValidationError
from core.integrations.calendar import (
    CalendarEventInput,
    CalendarProviderError,
    EventResult,
    get_calendar_provider,
)
from database.engine import AsyncSessionLocal
from database.models.calendar import CalendarEvent, CalendarProvider
from database.models.interviews import InterviewMode
from api.services import oauth_tokens

logger = logging.getLogger(__name__)

PROVIDER_LABELS = {
    CalendarProvider.GOOGLE: "Google",
    CalendarProvider.MICROSOFT: "Microsoft",
}

MEETING_PROVIDERS = {
    InterviewMode.GOOGLE_MEET: CalendarProvider.GOOGLE,
    InterviewMode.MICROSOFT_TEAMS: CalendarProvider.MICROSOFT,
}


def _provider(provider: Any) -> CalendarProvider:
    try:
        return CalendarProvider(getattr(provider, "value", provider))
    except ValueError:
        raise ValidationError(
            {"provider": [f"Provider must be one of: {', '.join(p.value for p in CalendarProvider)}"]}
        )


def _configured_client(provider: CalendarProvider):
    client = get_calendar_provider(provider.value)
    if not client.is_configured:
        raise ValidationError(
            {provider.value: [f"{PROVIDER_LABELS[provider]} OAuth is not configured"]}
        )
    return client


# ==================== OAuth ===================== #
def get_auth_url(provider: str, user_id: int) -> str:
    provider = _provider(provider)
    return _configured_client(provider).get_auth_url(user_id)


async def handle_oauth_callback(provider: str, code: str, user_id: int) -> Dict[str, Any]:
    """Exchange the authorization code and store the tokens."""
    provider = _provider(provider)
    if not code:
        raise ValidationError({"code": ["Authorization code is required"]})
    client = _configured_client(provider)

    try:
        tokens = await client.exchange_code(code)
    except CalendarProviderError as e:
        logger.error(f"OAuth code exchange failed for user {user_id}: {e}")
        raise ValidationError({provider.value: ["Failed to exchange authorization code"]})

    await oauth_tokens.store_token(
        user_id,
        provider.value,
        tokens.access_token,
        tokens.refresh_token,
        tokens.expires_at,
        tokens.scope,
    )
    return {"provider": provider.value, "connected": True}


async def disconnect_calendar(user_id: int, provider: str) -> bool:
    provider = _provider(provider)
    await oauth_tokens.delete_token(user_id, provider.value)
    async with AsyncSessionLocal() as session:
        await session.execute(
            delete(CalendarEvent).where(
                CalendarEvent.user_id == user_id,
                CalendarEvent.provider == provider,
            )
        )
        await session.commit()
    logger.info(f"User {user_id} disconnected {provider.value} calendar")
    return True


async def get_connection_status(user_id: int) -> Dict[str, Dict[str, bool]]:
    connected = set(await oauth_tokens.get_connected_providers(user_id))
    return {p.value: {"connected": p.value in connected} for p in CalendarProvider}


async def _access_token(user_id: int, provider: CalendarProvider) -> str:
    client = get_calendar_provider(provider.value)
    token = await oauth_tokens.get_valid_access_token(
        user_id, provider.value, client.refresh_access_token
    )
    if not token:
        raise NotFoundError(f"{PROVIDER_LABELS[provider]} calendar connection")
    return token


# ==================== Events ===================== #
async def _stored_event(interview_id: int, user_id: int, provider: CalendarProvider) -> Optional[CalendarEvent]:
    async with AsyncSessionLocal() as session:
        result = await session.execute(
            select(CalendarEvent).where(
                CalendarEvent.interview_id == interview_id,
                CalendarEvent.user_id == user_id,
                CalendarEvent.provider == provider,
            ).limit(1)
        )
        return result.scalar_one_or_none()


async def create_calendar_event(
    user_id: int,
    provider: str,
    interview_id: int,
    event: CalendarEventInput,
) -> EventResult:
    """Create the event on the user's calendar and remember its external id."""
    provider = _provider(provider)
    access_token = await _access_token(user_id, provider)
    result = await get_calendar_provider(provider.value).create_event(access_token, event)

    async with AsyncSessionLocal() as session:
        session.add(CalendarEvent(
            interview_id=interview_id,
            user_id=user_id,
            provider=provider,
            external_event_id=result.event_id,
            meeting_link=result.meeting_link,
        ))
        await session.commit()
    return result


async def update_calendar_event(
    user_id: int,
    provider: str,
    interview_id: int,
    event: CalendarEventInput,
) -> Optional[EventResult]:
    """Returns None when no event was created for this user and interview."""
    provider = _provider(provider)
    stored = await _stored_event(interview_id, user_id, provider)
    if stored is None:
        return None

    access_token = await _access_token(user_id, provider)
    result = await get_calendar_provider(provider.value).update_event(
        access_token, stored.external_event_id, event
    )

    async with AsyncSessionLocal() as session:
        row = await session.get(CalendarEvent, stored.id)
        if row is not None and result.meeting_link:
            row.meeting_link = result.meeting_link
            await session.commit()
    return result


async def delete_calendar_event(user_id: int, provider: str, interview_id: int) -> bool:
    provider = _provider(provider)
    stored = await _stored_event(interview_id, user_id, provider)
    if stored is None:
        return False

    access_token = await _access_token(user_id, provider)
    await get_calendar_provider(provider.value).delete_event(access_token, stored.external_event_id)

    async with AsyncSessionLocal() as session:
        await session.execute(delete(CalendarEvent).where(CalendarEvent.id == stored.id))
        await session.commit()
    return True


# ==================== Interview fan-out ===================== #
async def create_calendar_events_for_interview(
    interview_id: int,
    user_ids: Iterable[int],
    event: CalendarEventInput,
) -> Optional[str]:
    """
    Put the interview on every connected calendar of the given users.

    Failures are logged per user and provider.

    Returns:
        The first meeting link any provider generated
    """
    meeting_link = None
    for user_id in user_ids:
        for provider in await oauth_tokens.get_connected_providers(user_id):
            try:
                result = await create_calendar_event(user_id, provider, interview_id, event)
            except (CalendarProviderError, NotFoundError) as e:
                logger.error(f"Failed to create {provider} event for user {user_id}: {e}")
                continue
            if result.meeting_link and not meeting_link:
                meeting_link = result.meeting_link
    return meeting_link


async def _interview_events(interview_id: int, user_ids: Optional[Iterable[int]]) -> List[CalendarEvent]:
    async with AsyncSessionLocal() as session:
        query = select(CalendarEvent).where(CalendarEvent.interview_id == interview_id)
        if user_ids is not None:
            query = query.where(CalendarEvent.user_id.in_(list(user_ids)))
        return list((await session.execute(query)).scalars().all())


async def update_calendar_events_for_interview(
    interview_id: int,
    event: CalendarEventInput,
    user_ids: Optional[Iterable[int]] = None,
) -> int:
    """Push new details to existing events. Returns how many were updated."""
    updated = 0
    for stored in await _interview_events(interview_id, user_ids):
        try:
            if await update_calendar_event(stored.user_id, stored.provider, interview_id, event):
                updated += 1
        except (CalendarProviderError, NotFoundError) as e:
            logger.error(f"Failed to update {stored.provider} event for user {stored.user_id}: {e}")
    return updated


async def delete_calendar_events_for_interview(
    interview_id: int,
    user_ids: Optional[Iterable[int]] = None,
) -> int:
    deleted = 0
    for stored in await _interview_events(interview_id, user_ids):
        try:
            if await delete_calendar_event(stored.user_id, stored.provider, interview_id):
                deleted += 1
        except (CalendarProviderError, NotFoundError) as e:
            logger.error(f"Failed to delete {stored.provider} event for user {stored.user_id}: {e}")
    return deleted


async def generate_meeting_link(
    mode: str,
    user_id: int,
    event: CalendarEventInput,
    interview_id: Optional[int] = None,
) -> Optional[str]:
    """
    Create a Meet / Teams link on the scheduler's calendar.

    Returns None for in-person or custom-link interviews, or when the
    scheduler has not connected the matching calendar.
    """
    provider = MEETING_PROVIDERS.get(InterviewMode(getattr(mode, "value", mode)))
    if provider is None:
        return None

    if provider.value not in await oauth_tokens.get_connected_providers(user_id):
        logger.warning(f"{PROVIDER_LABELS[provider]} calendar not connected for user {user_id}")
        return None

    event = replace(event, create_meeting_link=True)
    try:
        if interview_id is not None:
            result = await create_calendar_event(user_id, provider.value, interview_id, event)
        else:
            access_token = await _access_token(user_id, provider)
            result = await get_calendar_provider(provider.value).create_event(access_token, event)
    except (CalendarProviderError, NotFoundError) as e:
        logger.error(f"Failed to generate {PROVIDER_LABELS[provider]} meeting link: {e}")
        return None
    return result.meeting_link
