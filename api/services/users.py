"""
User service functions for API endpoints.

Company members (admins, hiring managers, recruiters). Vendors are users
too but are managed through ``api.services.vendors``.
"""

from typing import Any, Dict, List, Optional
import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import ConflictError, NotFoundError, ValidationError
from core.security import hash_password, log_audit_event, AuditAction, ResourceType
from core.utils.validators import validate_email
from database.engine import AsyncSessionLocal
from database.models.users import User, UserRole

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 8


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def validate_user_fields(
    name: Optional[str],
    email: Optional[str],
    password: Optional[str],
    role: Optional[str] = None,
    partial: bool = False,
) -> Dict[str, List[str]]:
    """
    Field errors for user input. With ``partial`` only provided fields are checked.
    """
    errors: Dict[str, List[str]] = {}

    if not partial or name is not None:
        if not (name or "").strip():
            errors["name"] = ["Name is required"]

    if not partial or email is not None:
        if not email:
            errors["email"] = ["Email is required"]
        else:
            valid, _ = validate_email(email)
            if not valid:
                errors["email"] = ["Invalid email format"]

    if not partial or password is not None:
        if not password or len(password) < MIN_PASSWORD_LENGTH:
            errors["password"] = [f"Password must be at least {MIN_PASSWORD_LENGTH} characters"]

    if role is not None:
        try:
            UserRole(role)
        except ValueError:
            errors["role"] = [f"Role must be one of: {', '.join(r.value for r in UserRole)}"]

    return errors


async def find_user_by_email(session: AsyncSession, email: str) -> Optional[User]:
    result = await session.execute(select(User).where(User.email == normalize_email(email)))
    return result.scalar_one_or_none()


async def _load_user(session: AsyncSession, user_id: int, company_id: Optional[int]) -> User:
    query = select(User).where(User.id == user_id)
    if company_id is not None:
        query = query.where(User.company_id == company_id)
    user = (await session.execute(query)).scalar_one_or_none()
    if not user:
        raise NotFoundError("User")
    return user


async def create_user(
    company_id: int,
    name: str,
    email: str,
    password: str,
    role: str = UserRole.RECRUITER.value,
    created_by: Optional[int] = None,
) -> Dict[str, Any]:
    """
    Create a company user.

    Raises:
        ValidationError: Missing or malformed fields
        ConflictError: Email already registered
    """
    errors = validate_user_fields(name, email, password, role)
    if errors:
        raise ValidationError(errors)

    async with AsyncSessionLocal() as session:
        if await find_user_by_email(session, email):
            raise ConflictError("A user with this email already exists")

        user = User(
            company_id=company_id,
            name=name.strip(),
            email=normalize_email(email),
            password_hash=hash_password(password),
            role=UserRole(role),
            is_active=True,
        )
        session.add(user)
        await session.commit()

        log_audit_event(
            AuditAction.CREATE, ResourceType.USER, user.id,
            user_id=created_by, company_id=company_id, details={"role": role},
        )
        return user.to_dict()


async def get_user(user_id: int, company_id: Optional[int] = None) -> Dict[str, Any]:
    async with AsyncSessionLocal() as session:
        user = await _load_user(session, user_id, company_id)
        return user.to_dict()


async def get_user_by_email(email: str) -> Optional[Dict[str, Any]]:
    async with AsyncSessionLocal() as session:
        user = await find_user_by_email(session, email)
        return user.to_dict() if user else None


async def update_user(
    user_id: int,
    data: Dict[str, Any],
    company_id: Optional[int] = None,
) -> Dict[str, Any]:
    """
    Update name, email, password, role or is_active.

    Raises:
        NotFoundError: Unknown user
        ConflictError: New email belongs to someone else
    """
    errors = validate_user_fields(
        data.get("name"), data.get("email"), data.get("password"), data.get("role"),
        partial=True,
    )
    if errors:
        raise ValidationError(errors)

    async with AsyncSessionLocal() as session:
        user = await _load_user(session, user_id, company_id)

        if data.get("email") is not None:
            email = normalize_email(data["email"])
            if email != user.email:
                existing = await find_user_by_email(session, email)
                if existing and existing.id != user.id:
                    raise ConflictError("A user with this email already exists")
                user.email = email

        if data.get("name") is not None:
            user.name = data["name"].strip()
        if data.get("password"):
            user.password_hash = hash_password(data["password"])
        if data.get("role") is not None:
            user.role = UserRole(data["role"])
        if data.get("is_active") is not None:
            user.is_active = bool(data["is_active"])

        await session.commit()
        return user.to_dict()


async def deactivate_user(user_id: int, company_id: Optional[int] = None) -> Dict[str, Any]:
    async with AsyncSessionLocal() as session:
        user = await _load_user(session, user_id, company_id)
        user.is_active = False
        await session.commit()
        logger.info(f"Deactivated user {user_id}")
        return user.to_dict()


async def delete_user(
    user_id: int,
    company_id: Optional[int] = None,
    deleted_by: Optional[int] = None,
) -> bool:
    async with AsyncSessionLocal() as session:
        user = await _load_user(session, user_id, company_id)
        await session.delete(user)
        await session.commit()

    log_audit_event(
        AuditAction.DELETE, ResourceType.USER, user_id,
        user_id=deleted_by, company_id=company_id,
    )
    return True


async def list_company_users(
    company_id: int,
    role: Optional[str] = None,
    include_inactive: bool = True,
) -> List[Dict[str, Any]]:
    """Users of a company ordered by name, optionally filtered by role."""
    async with AsyncSessionLocal() as session:
        query = select(User).where(User.company_id == company_id)
        if role:
            try:
                query = query.where(User.role == UserRole(role))
            except ValueError:
                raise ValidationError({"role": [f"Unknown role: {role}"]})
        if not include_inactive:
            query = query.where(User.is_active.is_(True))
        result = await session.execute(query.order_by(User.name))
        return [u.to_dict() for u in result.scalars().all()]
