"""Factories and small helpers shared by the test modules."""

import json
from datetime import timedelta

import bcrypt
import httpx
from sqlalchemy import update

from core.integrations.calendar import GoogleCalendarProvider
from core.security import create_access_token
from core.utils.datetime import now
from database.engine import AsyncSessionLocal
from database.models.candidates import JobCandidate, StageHistory
from database.models.companies import Company
from database.models.users import User, UserRole

TEST_PASSWORD = "password123"
# Low cost factor keeps fixtures fast; verify_password accepts any cost
TEST_PASSWORD_HASH = bcrypt.hashpw(TEST_PASSWORD.encode(), bcrypt.gensalt(rounds=4)).decode()


async def make_company(name: str = "Acme Corp") -> Company:
    async with AsyncSessionLocal() as session:
        company = Company(name=name)
        session.add(company)
        await session.commit()
        return company


async def make_user(
    company_id: int,
    role: UserRole = UserRole.RECRUITER,
    name: str | None = None,
    email: str | None = None,
    is_active: bool = True,
) -> User:
    async with AsyncSessionLocal() as session:
        user = User(
            company_id=company_id,
            name=name or role.value.replace("_", " ").title(),
            email=email or f"{role.value}.{company_id}@example.com",
            password_hash=TEST_PASSWORD_HASH,
            role=role,
            is_active=is_active,
        )
        session.add(user)
        await session.commit()
        return user


def auth_headers(user: User) -> dict:
    token = create_access_token(user.id, user.company_id, UserRole(user.role).value)
    return {"Authorization": f"Bearer {token}"}


def stage_id(job: dict, name: str) -> int:
    """Id of the named stage of a job returned by the job service."""
    for stage in job["stages"]:
        if stage["name"] == name:
            return stage["id"]
    raise KeyError(name)


async def backdate_stage_entry(job_candidate_id: int, days: float) -> None:
    """Pretend the application entered its current stage ``days`` ago."""
    entered_at = now() - timedelta(days=days)
    async with AsyncSessionLocal() as session:
        await session.execute(
            update(StageHistory)
            .where(
                StageHistory.job_candidate_id == job_candidate_id,
                StageHistory.exited_at.is_(None),
            )
            .values(entered_at=entered_at)
        )
        await session.execute(
            update(JobCandidate)
            .where(JobCandidate.id == job_candidate_id)
            .values(applied_at=entered_at)
        )
        await session.commit()


class FakeGoogle:
    """
    Google Calendar stand-in served by ``httpx.MockTransport``.

    Issues sequential event ids and a Meet link whenever one is requested.
    """

    MEET_LINK = "https://meet.google.com/abc-defg-hij"

    def __init__(self, fail_refresh: bool = False):
        self.fail_refresh = fail_refresh
        self.requests = []
        self._next_id = 1

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.host == "oauth2.googleapis.com":
            if self.fail_refresh and b"grant_type=refresh_token" in request.content:
                return httpx.Response(400, json={"error": "invalid_grant"})
            return httpx.Response(200, json={
                "access_token": "fresh-access", "refresh_token": "fresh-refresh",
                "expires_in": 3600, "scope": "calendar",
            })
        if request.method == "POST":
            body = json.loads(request.content)
            event_id = f"evt-{self._next_id}"
            self._next_id += 1
            payload = {"id": event_id}
            if "conferenceData" in body:
                payload["conferenceData"] = {
                    "entryPoints": [{"entryPointType": "video", "uri": self.MEET_LINK}]
                }
            return httpx.Response(200, json=payload)
        if request.method == "PATCH":
            return httpx.Response(200, json={"id": request.url.path.rsplit("/", 1)[-1]})
        return httpx.Response(204)

    def calls(self, method: str) -> list:
        return [r for r in self.requests if r.method == method and "/events" in r.url.path]

    def provider(self) -> GoogleCalendarProvider:
        client = httpx.AsyncClient(transport=httpx.MockTransport(self))
        return GoogleCalendarProvider("gid", "gsecret", "http://test/callback/google", http_client=client)
