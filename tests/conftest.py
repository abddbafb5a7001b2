"""Shared fixtures for tests."""

import os
import tempfile

# Settings are read at import time, so the environment goes first
TEST_DB_PATH = os.path.join(tempfile.gettempdir(), "hireflow_ats_test.db")
os.environ.setdefault("DATABASE_URL", f"sqlite+aiosqlite:///{TEST_DB_PATH}")
os.environ.setdefault("JWT_SECRET_KEY", "test-jwt-secret-key-min-32-chars-long-for-security")
os.environ.setdefault("JWT_ALGORITHM", "HS256")
os.environ.setdefault("OAUTH_ENCRYPTION_KEY", "0123456789abcdef0123456789abcdef")
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("JSON_LOGS", "false")
os.environ.setdefault("EMAIL_ENABLED", "false")
os.environ.setdefault("APP_BASE_URL", "http://localhost:3000")

import httpx
import pytest

from core.integrations.calendar import set_calendar_provider
from core.security import token_blacklist
from database.engine import drop_db, init_db
from database.models.users import UserRole
from tests.helpers import FakeGoogle, make_company, make_user


@pytest.fixture(autouse=True)
async def database():
    """Fresh schema for every test."""
    await drop_db()
    await init_db()
    token_blacklist.clear()
    yield


@pytest.fixture
async def company():
    return await make_company()


@pytest.fixture
async def other_company():
    return await make_company("Globex")


@pytest.fixture
async def admin(company):
    return await make_user(company.id, UserRole.ADMIN, name="Alice Admin")


@pytest.fixture
async def hiring_manager(company):
    return await make_user(company.id, UserRole.HIRING_MANAGER, name="Hank Manager")


@pytest.fixture
async def recruiter(company):
    return await make_user(company.id, UserRole.RECRUITER, name="Rita Recruiter")


@pytest.fixture
async def vendor(company):
    return await make_user(company.id, UserRole.VENDOR, name="Vera Vendor")


@pytest.fixture
async def other_admin(other_company):
    return await make_user(other_company.id, UserRole.ADMIN, name="Otto Other")


@pytest.fixture
async def job(admin, recruiter):
    from api.services import jobs as job_service

    return await job_service.create_job(admin, {
        "title": "Backend Engineer",
        "department": "Engineering",
        "location": "Remote",
        "skills": ["Python", "PostgreSQL"],
        "experience_min": 2,
        "experience_max": 6,
        "assigned_recruiter_id": recruiter.id,
    })


@pytest.fixture
async def candidate(company):
    from api.services import candidates as candidate_service

    return await candidate_service.create_candidate(company.id, {
        "name": "Jane Doe",
        "email": "jane.doe@example.com",
        "location": "Berlin",
        "source": "LinkedIn",
        "experience_years": 4,
        "skills": ["Python", "Django"],
    })


@pytest.fixture
async def application(company, candidate, job, admin):
    """Jane applied to the backend job, sitting in Queue."""
    from api.services import candidates as candidate_service

    return await candidate_service.add_to_job(
        company.id, candidate["id"], job["id"], user_id=admin.id
    )


@pytest.fixture
async def client():
    from api.main import app

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
def fake_google():
    """Route Google Calendar traffic to an in-process fake."""
    fake = FakeGoogle()
    set_calendar_provider("google", fake.provider())
    yield fake
    set_calendar_provider("google", None)
