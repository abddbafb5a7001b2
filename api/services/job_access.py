"""
Per-job access control.

admin / hiring_manager: every job of their company
recruiter: jobs assigned to them
vendor: jobs with a VendorJobAssignment row for them
"""

import logging

from sqlalchemy import and_, select, true
from sqlalchemy.sql.elements import ColumnElement

from core.exceptions import ForbiddenError, NotFoundError
from database.engine import AsyncSessionLocal
from database.models.jobs import Job
from database.models.users import User, UserRole
from database.models.vendors import VendorJobAssignment

logger = logging.getLogger(__name__)


def _role(user: User) -> UserRole:
    return UserRole(user.role)


def build_job_scope(user: User) -> ColumnElement[bool]:
    """
    Filter clause over ``Job`` limiting rows to what ``user`` may see.
    """
    company_clause = Job.company_id == user.company_id
    role = _role(user)

    if role in (UserRole.ADMIN, UserRole.HIRING_MANAGER):
        role_clause = true()
    elif role == UserRole.RECRUITER:
        role_clause = Job.assigned_recruiter_id == user.id
    else:
        role_clause = Job.id.in_(
            select(VendorJobAssignment.job_id).where(VendorJobAssignment.vendor_id == user.id)
        )

    return and_(company_clause, role_clause)


async def can_access_job(user: User, job_id: int) -> bool:
    async with AsyncSessionLocal() as session:
        result = await session.execute(
            select(Job.id).where(Job.id == job_id, build_job_scope(user))
        )
        return result.scalar_one_or_none() is not None


async def validate_job_access(user: User, job_id: int) -> None:
    """
    Raises:
        NotFoundError: Job does not exist (or belongs to another company)
        ForbiddenError: Job exists but the user may not access it
    """
    async with AsyncSessionLocal() as session:
        company_id = (
            await session.execute(select(Job.company_id).where(Job.id == job_id))
        ).scalar_one_or_none()

    # Jobs of other tenants are indistinguishable from missing ones
    if company_id is None or company_id != user.company_id:
        raise NotFoundError("Job")

    if not await can_access_job(user, job_id):
        logger.warning(f"User {user.id} denied access to job {job_id}")
        raise ForbiddenError("You do not have access to this job")
