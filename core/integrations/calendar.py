"""
Calendar integration (Google Calendar and Microsoft Graph).

Thin async clients over the providers' REST APIs: OAuth code exchange,
token refresh and event create/update/delete with meeting links.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional
from urllib.parse import urlencode
import logging

import httpx

from core.config import settings

logger = logging.getLogger(__name__)

GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_EVENTS_URL = "https://www.googleapis.com/calendar/v3/calendars/primary/events"
GOOGLE_SCOPES = [
    "https://www.googleapis.com/auth/calendar.events",
    "https://www.googleapis.com/auth/calendar.readonly",
]

MICROSOFT_LOGIN_URL = "https://login.microsoftonline.com/{tenant}/oauth2/v2.0"
MICROSOFT_EVENTS_URL = "https://graph.microsoft.com/v1.0/me/events"
MICROSOFT_SCOPES = ["Calendars.ReadWrite", "OnlineMeetings.ReadWrite", "offline_access"]

REQUEST_TIMEOUT = 30.0


class CalendarProviderError(Exception):
    """Raised when a provider call fails or the provider is not configured."""

    def __init__(self, provider: str, message: str, status_code: Optional[int] = None):
        self.provider = provider
        self.status_code = status_code
        super().__init__(f"{provider}: {message}")


@dataclass
class TokenSet:
    access_token: str
    refresh_token: Optional[str]
    expires_at: Optional[datetime]
    scope: Optional[str] = None


@dataclass
class Attendee:
    email: str
    name: Optional[str] = None


@dataclass
class CalendarEventInput:
    """Provider-neutral description of an interview event."""
    title: str
    start_time: datetime
    end_time: datetime
    timezone: str = "UTC"
    description: Optional[str] = None
    attendees: List[Attendee] = field(default_factory=list)
    create_meeting_link: bool = False
    request_id: Optional[str] = None  # idempotency key for Meet creation


@dataclass
class EventResult:
    provider: str
    event_id: str
    meeting_link: Optional[str] = None


def _expiry_from(expires_in: Any) -> Optional[datetime]:
    if expires_in is None:
        return None
    return datetime.now(timezone.utc) + timedelta(seconds=int(expires_in))


class BaseCalendarProvider:
    """
    Shared HTTP plumbing for calendar providers.

    An ``httpx.AsyncClient`` may be injected (tests pass one built on
    ``httpx.MockTransport``); otherwise a short-lived client is used per call.
    """

    name: str = ""

    def __init__(
        self,
        client_id: Optional[str],
        client_secret: Optional[str],
        redirect_uri: str,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self._http_client = http_client

    @property
    def is_configured(self) -> bool:
        return bool(self.client_id and self.client_secret)

    def _require_configured(self) -> None:
        if not self.is_configured:
            raise CalendarProviderError(self.name, "OAuth is not configured")

    async def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        try:
            if self._http_client is not None:
                return await self._http_client.request(method, url, **kwargs)
            async with httpx.AsyncClient(timeout=REQUEST_TIMEOUT) as client:
                return await client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            raise CalendarProviderError(self.name, f"request failed: {e}") from e

    def _raise_for_status(self, response: httpx.Response, action: str) -> None:
        if response.is_success:
            return
        logger.error(f"{self.name} {action} failed with {response.status_code}: {response.text[:500]}")
        raise CalendarProviderError(
            self.name, f"Failed to {action}", status_code=response.status_code
        )

    async def _token_request(self, data: Dict[str, str], action: str) -> Dict[str, Any]:
        response = await self._request(
            "POST",
            self.token_url,
            data=data,
            headers={"Content-Type": "application/x-www-form-urlencoded"},
        )
        self._raise_for_status(response, action)
        return response.json()

    @staticmethod
    def _auth_headers(access_token: str) -> Dict[str, str]:
        return {"Authorization": f"Bearer {access_token}"}

    @property
    def token_url(self) -> str:
        raise NotImplementedError

    def get_auth_url(self, user_id: int | str) -> str:
        raise NotImplementedError

    async def exchange_code(self, code: str) -> TokenSet:
        raise NotImplementedError

    async def refresh_access_token(self, refresh_token: str) -> TokenSet:
        raise NotImplementedError

    async def create_event(self, access_token: str, event: CalendarEventInput) -> EventResult:
        raise NotImplementedError

    async def update_event(
        self, access_token: str, event_id: str, event: CalendarEventInput
    ) -> EventResult:
        raise NotImplementedError

    async def delete_event(self, access_token: str, event_id: str) -> None:
        raise NotImplementedError


class GoogleCalendarProvider(BaseCalendarProvider):
    """Google Calendar with Google Meet conference links."""

    name = "google"

    @property
    def token_url(self) -> str:
        return GOOGLE_TOKEN_URL

    def get_auth_url(self, user_id: int | str) -> str:
        if not self.client_id:
            raise CalendarProviderError(self.name, "OAuth is not configured")
        params = {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
            "scope": " ".join(GOOGLE_SCOPES),
            "access_type": "offline",
            "prompt": "consent",
            "state": str(user_id),
        }
        return f"{GOOGLE_AUTH_URL}?{urlencode(params)}"

    async def exchange_code(self, code: str) -> TokenSet:
        self._require_configured()
        data = await self._token_request(
            {
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "code": code,
                "grant_type": "authorization_code",
                "redirect_uri": self.redirect_uri,
            },
            "exchange authorization code",
        )
        return TokenSet(
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token"),
            expires_at=_expiry_from(data.get("expires_in")),
            scope=data.get("scope"),
        )

    async def refresh_access_token(self, refresh_token: str) -> TokenSet:
        self._require_configured()
        data = await self._token_request(
            {
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "refresh_token": refresh_token,
                "grant_type": "refresh_token",
            },
            "refresh token",
        )
        # Google keeps the original refresh token
        return TokenSet(
            access_token=data["access_token"],
            refresh_token=refresh_token,
            expires_at=_expiry_from(data.get("expires_in")),
            scope=data.get("scope"),
        )

    @staticmethod
    def _event_body(event: CalendarEventInput) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "summary": event.title,
            "description": event.description,
            "start": {"dateTime": event.start_time.isoformat(), "timeZone": event.timezone},
            "end": {"dateTime": event.end_time.isoformat(), "timeZone": event.timezone},
            "attendees": [
                {"email": a.email, "displayName": a.name} for a in event.attendees
            ],
        }
        if event.create_meeting_link:
            body["conferenceData"] = {
                "createRequest": {
                    "requestId": event.request_id or f"ats-{int(event.start_time.timestamp())}",
                    "conferenceSolutionKey": {"type": "hangoutsMeet"},
                }
            }
        return body

    @staticmethod
    def _meeting_link(payload: Dict[str, Any]) -> Optional[str]:
        entry_points = (payload.get("conferenceData") or {}).get("entryPoints") or []
        for entry in entry_points:
            if entry.get("entryPointType") == "video":
                return entry.get("uri")
        return None

    async def create_event(self, access_token: str, event: CalendarEventInput) -> EventResult:
        response = await self._request(
            "POST",
            GOOGLE_EVENTS_URL,
            params={"conferenceDataVersion": "1", "sendUpdates": "all"},
            json=self._event_body(event),
            headers=self._auth_headers(access_token),
        )
        self._raise_for_status(response, "create event")
        payload = response.json()
        return EventResult(self.name, payload["id"], self._meeting_link(payload))

    async def update_event(
        self, access_token: str, event_id: str, event: CalendarEventInput
    ) -> EventResult:
        body = self._event_body(event)
        body.pop("conferenceData", None)
        response = await self._request(
            "PATCH",
            f"{GOOGLE_EVENTS_URL}/{event_id}",
            params={"sendUpdates": "all"},
            json=body,
            headers=self._auth_headers(access_token),
        )
        self._raise_for_status(response, "update event")
        payload = response.json()
        return EventResult(self.name, payload.get("id", event_id), self._meeting_link(payload))

    async def delete_event(self, access_token: str, event_id: str) -> None:
        response = await self._request(
            "DELETE",
            f"{GOOGLE_EVENTS_URL}/{event_id}",
            params={"sendUpdates": "all"},
            headers=self._auth_headers(access_token),
        )
        if response.status_code == 404:
            return
        self._raise_for_status(response, "delete event")


class MicrosoftCalendarProvider(BaseCalendarProvider):
    """Outlook calendar through Microsoft Graph, with Teams meeting links."""

    name = "microsoft"

    def __init__(self, *args, tenant_id: str = "common", **kwargs):
        super().__init__(*args, **kwargs)
        self.tenant_id = tenant_id

    @property
    def token_url(self) -> str:
        return f"{MICROSOFT_LOGIN_URL.format(tenant=self.tenant_id)}/token"

    def get_auth_url(self, user_id: int | str) -> str:
        if not self.client_id:
            raise CalendarProviderError(self.name, "OAuth is not configured")
        params = {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
            "scope": " ".join(MICROSOFT_SCOPES),
            "response_mode": "query",
            "state": str(user_id),
        }
        return f"{MICROSOFT_LOGIN_URL.format(tenant=self.tenant_id)}/authorize?{urlencode(params)}"

    async def exchange_code(self, code: str) -> TokenSet:
        self._require_configured()
        data = await self._token_request(
            {
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "code": code,
                "grant_type": "authorization_code",
                "redirect_uri": self.redirect_uri,
                "scope": " ".join(MICROSOFT_SCOPES),
            },
            "exchange authorization code",
        )
        return TokenSet(
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token"),
            expires_at=_expiry_from(data.get("expires_in")),
            scope=data.get("scope"),
        )

    async def refresh_access_token(self, refresh_token: str) -> TokenSet:
        self._require_configured()
        data = await self._token_request(
            {
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "refresh_token": refresh_token,
                "grant_type": "refresh_token",
                "scope": " ".join(MICROSOFT_SCOPES),
            },
            "refresh token",
        )
        # Microsoft may rotate the refresh token
        return TokenSet(
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token") or refresh_token,
            expires_at=_expiry_from(data.get("expires_in")),
            scope=data.get("scope"),
        )

    @staticmethod
    def _graph_datetime(value: datetime) -> str:
        # Graph takes a naive local datetime plus a separate timeZone
        return value.replace(tzinfo=None).isoformat()

    def _event_body(self, event: CalendarEventInput) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "subject": event.title,
            "body": {"contentType": "HTML", "content": event.description or ""},
            "start": {"dateTime": self._graph_datetime(event.start_time), "timeZone": event.timezone},
            "end": {"dateTime": self._graph_datetime(event.end_time), "timeZone": event.timezone},
            "attendees": [
                {"emailAddress": {"address": a.email, "name": a.name}, "type": "required"}
                for a in event.attendees
            ],
        }
        if event.create_meeting_link:
            body["isOnlineMeeting"] = True
            body["onlineMeetingProvider"] = "teamsForBusiness"
        return body

    @staticmethod
    def _meeting_link(payload: Dict[str, Any]) -> Optional[str]:
        return (payload.get("onlineMeeting") or {}).get("joinUrl")

    async def create_event(self, access_token: str, event: CalendarEventInput) -> EventResult:
        response = await self._request(
            "POST",
            MICROSOFT_EVENTS_URL,
            json=self._event_body(event),
            headers=self._auth_headers(access_token),
        )
        self._raise_for_status(response, "create event")
        payload = response.json()
        return EventResult(self.name, payload["id"], self._meeting_link(payload))

    async def update_event(
        self, access_token: str, event_id: str, event: CalendarEventInput
    ) -> EventResult:
        body = self._event_body(event)
        body.pop("isOnlineMeeting", None)
        body.pop("onlineMeetingProvider", None)
        response = await self._request(
            "PATCH",
            f"{MICROSOFT_EVENTS_URL}/{event_id}",
            json=body,
            headers=self._auth_headers(access_token),
        )
        self._raise_for_status(response, "update event")
        payload = response.json()
        return EventResult(self.name, payload.get("id", event_id), self._meeting_link(payload))

    async def delete_event(self, access_token: str, event_id: str) -> None:
        response = await self._request(
            "DELETE",
            f"{MICROSOFT_EVENTS_URL}/{event_id}",
            headers=self._auth_headers(access_token),
        )
        if response.status_code == 404:
            return
        self._raise_for_status(response, "delete event")


_providers: Dict[str, BaseCalendarProvider] = {}


def get_calendar_provider(provider: str) -> BaseCalendarProvider:
    """
    Get or create the configured client for ``provider`` ("google" or "microsoft").
    """
    key = getattr(provider, "value", provider)
    if key not in _providers:
        if key == "google":
            _providers[key] = GoogleCalendarProvider(
                settings.google_client_id,
                settings.google_client_secret,
                settings.google_redirect_uri,
            )
        elif key == "microsoft":
            _providers[key] = MicrosoftCalendarProvider(
                settings.microsoft_client_id,
                settings.microsoft_client_secret,
                settings.microsoft_redirect_uri,
                tenant_id=settings.microsoft_tenant_id,
            )
        else:
            raise ValueError(f"Unsupported calendar provider: {provider}")
    return _providers[key]


def set_calendar_provider(provider: str, client: Optional[BaseCalendarProvider]) -> None:
    """Override (or with None, reset) the client used for ``provider``."""
    if client is None:
        _providers.pop(provider, None)
    else:
        _providers[provider] = client
