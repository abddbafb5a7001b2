"""Company service functions."""

from typing import Any, Dict, List
import logging

from sqlalchemy import select

from core.exceptions import NotFoundError, ValidationError
from database.engine import AsyncSessionLocal
from database.models.companies import Company

logger = logging.getLogger(__name__)


def _apply_profile(company: Company, data: Dict[str, Any]) -> None:
    for field in Company.PROFILE_FIELDS:
        if field in data:
            setattr(company, field, data[field])


async def create_company(data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Create a company.

    Args:
        data: Profile fields; ``name`` is required
    """
    name = (data.get("name") or "").strip()
    if not name:
        raise ValidationError({"name": ["Company name is required"]})

    async with AsyncSessionLocal() as session:
        company = Company(name=name)
        _apply_profile(company, {**data, "name": name})
        session.add(company)
        await session.commit()
        logger.info(f"Created company {company.id}")
        return company.to_dict()


async def get_company(company_id: int) -> Dict[str, Any]:
    async with AsyncSessionLocal() as session:
        company = await session.get(Company, company_id)
        if not company:
            raise NotFoundError("Company")
        return company.to_dict()


async def update_company(company_id: int, data: Dict[str, Any]) -> Dict[str, Any]:
    """Update profile fields present in ``data``."""
    if "name" in data and not (data["name"] or "").strip():
        raise ValidationError({"name": ["Company name cannot be empty"]})

    async with AsyncSessionLocal() as session:
        company = await session.get(Company, company_id)
        if not company:
            raise NotFoundError("Company")
        _apply_profile(company, data)
        await session.commit()
        return company.to_dict()


async def list_companies() -> List[Dict[str, Any]]:
    async with AsyncSessionLocal() as session:
        result = await session.execute(select(Company).order_by(Company.created_at.desc()))
        return [c.to_dict() for c in result.scalars().all()]
