"""
Vendor management.

Vendors are users with the vendor role. The jobs they can see come only
from their VendorJobAssignment rows.
"""

from typing import Any, Dict, List, Optional
import logging

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import ConflictError, NotFoundError, ValidationError
from core.security import AuditAction, ResourceType, hash_password, log_audit_event
from database.engine import AsyncSessionLocal
from database.models.jobs import Job
from database.models.users import User, UserRole
from database.models.vendors import VendorJobAssignment
from api.services.users import find_user_by_email, normalize_email, validate_user_fields

logger = logging.getLogger(__name__)


async def _load_vendor(session: AsyncSession, vendor_id: int, company_id: Optional[int]) -> User:
    vendor = await session.get(User, vendor_id)
    if (
        not vendor
        or UserRole(vendor.role) != UserRole.VENDOR
        or (company_id is not None and vendor.company_id != company_id)
    ):
        raise NotFoundError("Vendor")
    return vendor


async def _check_company_jobs(session: AsyncSession, company_id: int, job_ids: List[int]) -> None:
    if not job_ids:
        return
    found = set((await session.execute(
        select(Job.id).where(Job.id.in_(job_ids), Job.company_id == company_id)
    )).scalars().all())
    if len(found) != len(set(job_ids)):
        raise NotFoundError("Job")


async def _assigned_jobs(session: AsyncSession, vendor_id: int) -> List[Dict[str, Any]]:
    result = await session.execute(
        select(Job.id, Job.title)
        .join(VendorJobAssignment, VendorJobAssignment.job_id == Job.id)
        .where(VendorJobAssignment.vendor_id == vendor_id)
        .order_by(Job.title)
    )
    return [{"id": job_id, "title": title} for job_id, title in result.all()]


async def _vendor_dict(session: AsyncSession, vendor: User) -> Dict[str, Any]:
    jobs = await _assigned_jobs(session, vendor.id)
    return {**vendor.to_dict(), "assigned_jobs": jobs, "job_ids": [j["id"] for j in jobs]}


async def create_vendor(
    company_id: int,
    name: str,
    email: str,
    password: str,
    job_ids: Optional[List[int]] = None,
    created_by: Optional[int] = None,
) -> Dict[str, Any]:
    """
    Create a vendor user and its job assignments in one transaction.

    Raises:
        ValidationError: Missing or malformed fields
        ConflictError: Email already registered
        NotFoundError: A job does not belong to the company
    """
    errors = validate_user_fields(name, email, password)
    if errors:
        raise ValidationError(errors)
    job_ids = list(dict.fromkeys(job_ids or []))

    async with AsyncSessionLocal() as session:
        if await find_user_by_email(session, email):
            raise ConflictError("A user with this email already exists")
        await _check_company_jobs(session, company_id, job_ids)

        vendor = User(
            company_id=company_id,
            name=name.strip(),
            email=normalize_email(email),
            password_hash=hash_password(password),
            role=UserRole.VENDOR,
            is_active=True,
        )
        session.add(vendor)
        await session.flush()

        for job_id in job_ids:
            session.add(VendorJobAssignment(vendor_id=vendor.id, job_id=job_id))
        await session.commit()

        log_audit_event(
            AuditAction.CREATE, ResourceType.VENDOR, vendor.id,
            user_id=created_by, company_id=company_id, details={"job_ids": job_ids},
        )
        return await _vendor_dict(session, vendor)


async def get_vendors(company_id: int) -> List[Dict[str, Any]]:
    async with AsyncSessionLocal() as session:
        result = await session.execute(
            select(User)
            .where(User.company_id == company_id, User.role == UserRole.VENDOR)
            .order_by(User.name)
        )
        return [await _vendor_dict(session, v) for v in result.scalars().all()]


async def get_vendor(vendor_id: int, company_id: Optional[int] = None) -> Dict[str, Any]:
    async with AsyncSessionLocal() as session:
        vendor = await _load_vendor(session, vendor_id, company_id)
        return await _vendor_dict(session, vendor)


async def update_vendor(
    vendor_id: int,
    company_id: int,
    data: Dict[str, Any],
) -> Dict[str, Any]:
    """
    Update name, email, is_active and optionally replace job assignments.
    """
    errors = validate_user_fields(data.get("name"), data.get("email"), data.get("password"), partial=True)
    if errors:
        raise ValidationError(errors)

    async with AsyncSessionLocal() as session:
        vendor = await _load_vendor(session, vendor_id, company_id)

        if data.get("email") is not None:
            email = normalize_email(data["email"])
            if email != vendor.email:
                existing = await find_user_by_email(session, email)
                if existing and existing.id != vendor.id:
                    raise ConflictError("A user with this email already exists")
                vendor.email = email

        if data.get("name") is not None:
            vendor.name = data["name"].strip()
        if data.get("password"):
            vendor.password_hash = hash_password(data["password"])
        if data.get("is_active") is not None:
            vendor.is_active = bool(data["is_active"])

        if data.get("job_ids") is not None:
            job_ids = list(dict.fromkeys(data["job_ids"]))
            await _check_company_jobs(session, company_id, job_ids)
            await session.execute(
                delete(VendorJobAssignment).where(VendorJobAssignment.vendor_id == vendor_id)
            )
            for job_id in job_ids:
                session.add(VendorJobAssignment(vendor_id=vendor_id, job_id=job_id))

        await session.commit()
        return await _vendor_dict(session, vendor)


async def delete_vendor(vendor_id: int, company_id: int, deleted_by: Optional[int] = None) -> bool:
    async with AsyncSessionLocal() as session:
        vendor = await _load_vendor(session, vendor_id, company_id)
        await session.execute(
            delete(VendorJobAssignment).where(VendorJobAssignment.vendor_id == vendor_id)
        )
        await session.delete(vendor)
        await session.commit()

    log_audit_event(
        AuditAction.DELETE, ResourceType.VENDOR, vendor_id,
        user_id=deleted_by, company_id=company_id,
    )
    return True


async def deactivate_vendor(vendor_id: int, company_id: int) -> Dict[str, Any]:
    async with AsyncSessionLocal() as session:
        vendor = await _load_vendor(session, vendor_id, company_id)
        vendor.is_active = False
        await session.commit()
        logger.info(f"Deactivated vendor {vendor_id}")
        return await _vendor_dict(session, vendor)


async def assign_jobs_to_vendor(
    vendor_id: int,
    company_id: int,
    job_ids: List[int],
) -> Dict[str, Any]:
    """Add assignments; jobs already assigned are left alone."""
    if not job_ids:
        raise ValidationError({"job_ids": ["At least one job ID is required"]})
    job_ids = list(dict.fromkeys(job_ids))

    async with AsyncSessionLocal() as session:
        vendor = await _load_vendor(session, vendor_id, company_id)
        await _check_company_jobs(session, company_id, job_ids)

        existing = set((await session.execute(
            select(VendorJobAssignment.job_id).where(VendorJobAssignment.vendor_id == vendor_id)
        )).scalars().all())
        for job_id in job_ids:
            if job_id not in existing:
                session.add(VendorJobAssignment(vendor_id=vendor_id, job_id=job_id))
        await session.commit()

        log_audit_event(
            AuditAction.ASSIGN, ResourceType.VENDOR, vendor_id,
            company_id=company_id, details={"job_ids": job_ids},
        )
        return await _vendor_dict(session, vendor)


async def remove_job_assignment(vendor_id: int, job_id: int) -> bool:
    async with AsyncSessionLocal() as session:
        assignment = (await session.execute(
            select(VendorJobAssignment).where(
                VendorJobAssignment.vendor_id == vendor_id,
                VendorJobAssignment.job_id == job_id,
            )
        )).scalar_one_or_none()
        if not assignment:
            raise NotFoundError("Job assignment")
        await session.delete(assignment)
        await session.commit()
        return True


async def get_vendor_job_ids(vendor_id: int) -> List[int]:
    async with AsyncSessionLocal() as session:
        result = await session.execute(
            select(VendorJobAssignment.job_id).where(VendorJobAssignment.vendor_id == vendor_id)
        )
        return list(result.scalars().all())


async def has_job_access(vendor_id: int, job_id: int) -> bool:
    async with AsyncSessionLocal() as session:
        result = await session.execute(
            select(VendorJobAssignment.id).where(
                VendorJobAssignment.vendor_id == vendor_id,
                VendorJobAssignment.job_id == job_id,
            )
        )
        return result.scalar_one_or_none() is not None
