"""Registration, login and logout."""

from typing import Any, Dict
import logging

from core.exceptions import AuthenticationError, ConflictError, ValidationError
from core.security import (
    AuditAction,
    ResourceType,
    create_access_token,
    hash_password,
    log_audit_event,
    revoke_token,
    verify_password,
)
from database.engine import AsyncSessionLocal
from database.models.companies import Company
from database.models.users import User, UserRole
from api.services.users import find_user_by_email, normalize_email, validate_user_fields

logger = logging.getLogger(__name__)


def _issue_token(user: User) -> str:
    role = user.role.value if hasattr(user.role, "value") else user.role
    return create_access_token(user.id, user.company_id, role)


async def register(
    full_name: str,
    email: str,
    password: str,
    company_name: str,
) -> Dict[str, Any]:
    """
    Sign up a new company with its first admin user.

    Both rows are created in one transaction.

    Returns:
        Dict with ``token``, ``user`` and ``company``

    Raises:
        ValidationError: Missing or malformed fields
        ConflictError: Email already registered
    """
    errors = validate_user_fields(full_name, email, password)
    if not (company_name or "").strip():
        errors["company_name"] = ["Company name is required"]
    if errors:
        raise ValidationError(errors)

    async with AsyncSessionLocal() as session:
        if await find_user_by_email(session, email):
            raise ConflictError("A user with this email already exists")

        company = Company(name=company_name.strip())
        session.add(company)
        await session.flush()

        user = User(
            company_id=company.id,
            name=full_name.strip(),
            email=normalize_email(email),
            password_hash=hash_password(password),
            role=UserRole.ADMIN,
            is_active=True,
        )
        session.add(user)
        await session.commit()

        log_audit_event(
            AuditAction.CREATE, ResourceType.COMPANY, company.id,
            user_id=user.id, company_id=company.id,
        )
        return {
            "token": _issue_token(user),
            "user": user.to_dict(),
            "company": company.to_dict(),
        }


async def login(email: str, password: str) -> Dict[str, Any]:
    """
    Authenticate with email and password.

    Unknown emails, inactive accounts and wrong passwords all fail with the
    same message.
    """
    async with AsyncSessionLocal() as session:
        user = await find_user_by_email(session, email or "")

    if not user or not user.is_active or not verify_password(password or "", user.password_hash):
        logger.info("Failed login attempt")
        raise AuthenticationError("Invalid email or password")

    log_audit_event(AuditAction.LOGIN, ResourceType.USER, user.id, user.id, user.company_id)
    return {"token": _issue_token(user), "user": user.to_dict()}


async def logout(token: str) -> bool:
    """Revoke the token until it expires."""
    revoked = revoke_token(token)
    if revoked:
        logger.info("Token revoked on logout")
    return revoked
