"""Tests for the Google and Microsoft calendar clients over a mocked transport."""

import json
from datetime import datetime, timedelta, timezone
from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from core.integrations.calendar import (
    Attendee,
    CalendarEventInput,
    CalendarProviderError,
    GoogleCalendarProvider,
    MicrosoftCalendarProvider,
    get_calendar_provider,
    set_calendar_provider,
)

START = datetime(2026, 11, 2, 10, 0, tzinfo=timezone.utc)


def make_event(**overrides) -> CalendarEventInput:
    values = dict(
        title="Interview: Jane Doe - Backend Engineer",
        start_time=START,
        end_time=START + timedelta(minutes=60),
        attendees=[Attendee("hank@example.com", "Hank Manager")],
        create_meeting_link=True,
        request_id="interview-1",
    )
    values.update(overrides)
    return CalendarEventInput(**values)


class Recorder:
    """Mock transport handler that remembers every request."""

    def __init__(self, responses):
        self.responses = list(responses)
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.responses.pop(0)


def google(handler) -> GoogleCalendarProvider:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return GoogleCalendarProvider("gid", "gsecret", "http://test/callback/google", http_client=client)


def microsoft(handler) -> MicrosoftCalendarProvider:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return MicrosoftCalendarProvider(
        "mid", "msecret", "http://test/callback/microsoft", http_client=client, tenant_id="acme"
    )


class TestGoogleCalendarProvider:

    def test_auth_url(self):
        url = google(Recorder([])).get_auth_url(42)

        query = parse_qs(urlparse(url).query)
        assert url.startswith("https://accounts.google.com/")
        assert query["state"] == ["42"]
        assert query["access_type"] == ["offline"]
        assert query["prompt"] == ["consent"]
        assert query["client_id"] == ["gid"]

    def test_auth_url_unconfigured(self):
        provider = GoogleCalendarProvider(None, None, "http://test/callback/google")

        with pytest.raises(CalendarProviderError):
            provider.get_auth_url(1)

    async def test_exchange_code(self):
        recorder = Recorder([httpx.Response(200, json={
            "access_token": "ya29.a", "refresh_token": "1//r", "expires_in": 3600, "scope": "calendar",
        })])

        tokens = await google(recorder).exchange_code("auth-code")

        assert tokens.access_token == "ya29.a"
        assert tokens.refresh_token == "1//r"
        assert tokens.expires_at > datetime.now(timezone.utc)
        sent = parse_qs(recorder.requests[0].content.decode())
        assert sent["grant_type"] == ["authorization_code"]
        assert sent["code"] == ["auth-code"]

    async def test_refresh_keeps_refresh_token(self):
        recorder = Recorder([httpx.Response(200, json={"access_token": "ya29.b", "expires_in": 3600})])

        tokens = await google(recorder).refresh_access_token("1//r")

        assert tokens.access_token == "ya29.b"
        assert tokens.refresh_token == "1//r"

    async def test_create_event_with_meet_link(self):
        recorder = Recorder([httpx.Response(200, json={
            "id": "evt-1",
            "conferenceData": {"entryPoints": [
                {"entryPointType": "phone", "uri": "tel:+1"},
                {"entryPointType": "video", "uri": "https://meet.google.com/abc-defg-hij"},
            ]},
        })])

        result = await google(recorder).create_event("ya29.a", make_event())

        assert result.event_id == "evt-1"
        assert result.meeting_link == "https://meet.google.com/abc-defg-hij"
        request = recorder.requests[0]
        assert request.headers["authorization"] == "Bearer ya29.a"
        assert request.url.params["conferenceDataVersion"] == "1"
        body = json.loads(request.content)
        assert body["conferenceData"]["createRequest"]["requestId"] == "interview-1"
        assert body["attendees"] == [{"email": "hank@example.com", "displayName": "Hank Manager"}]

    async def test_delete_missing_event_ignored(self):
        recorder = Recorder([httpx.Response(404)])

        await google(recorder).delete_event("ya29.a", "gone")

    async def test_error_status_raises(self):
        recorder = Recorder([httpx.Response(403, json={"error": "forbidden"})])

        with pytest.raises(CalendarProviderError) as exc_info:
            await google(recorder).create_event("ya29.a", make_event())

        assert exc_info.value.status_code == 403
        assert exc_info.value.provider == "google"

    async def test_transport_error_wrapped(self):
        def fail(request):
            raise httpx.ConnectError("connection refused")

        with pytest.raises(CalendarProviderError):
            await google(fail).delete_event("ya29.a", "evt-1")


class TestMicrosoftCalendarProvider:

    def test_auth_url_uses_tenant(self):
        url = microsoft(Recorder([])).get_auth_url("7")

        assert url.startswith("https://login.microsoftonline.com/acme/oauth2/v2.0/authorize?")
        assert parse_qs(urlparse(url).query)["state"] == ["7"]

    async def test_refresh_rotates_token(self):
        recorder = Recorder([httpx.Response(200, json={
            "access_token": "eyJ.new", "refresh_token": "rotated", "expires_in": 3600,
        })])

        tokens = await microsoft(recorder).refresh_access_token("old")

        assert tokens.refresh_token == "rotated"
        assert str(recorder.requests[0].url) == "https://login.microsoftonline.com/acme/oauth2/v2.0/token"

    async def test_create_event_with_teams_link(self):
        recorder = Recorder([httpx.Response(201, json={
            "id": "AAMk",
            "onlineMeeting": {"joinUrl": "https://teams.microsoft.com/l/meetup-join/1"},
        })])

        result = await microsoft(recorder).create_event("eyJ", make_event())

        assert result.meeting_link == "https://teams.microsoft.com/l/meetup-join/1"
        body = json.loads(recorder.requests[0].content)
        assert body["isOnlineMeeting"] is True
        assert body["start"]["dateTime"] == "2026-11-02T10:00:00"

    async def test_update_event_drops_meeting_request(self):
        recorder = Recorder([httpx.Response(200, json={"id": "AAMk"})])

        result = await microsoft(recorder).update_event("eyJ", "AAMk", make_event())

        assert result.meeting_link is None
        assert "isOnlineMeeting" not in json.loads(recorder.requests[0].content)
        assert recorder.requests[0].method == "PATCH"


class TestProviderRegistry:

    def test_override_and_reset(self):
        custom = GoogleCalendarProvider("x", "y", "http://test")
        set_calendar_provider("google", custom)
        try:
            assert get_calendar_provider("google") is custom
        finally:
            set_calendar_provider("google", None)

        assert get_calendar_provider("google") is not custom

    def test_unknown_provider(self):
        with pytest.raises(ValueError):
            get_calendar_provider("zoom")
