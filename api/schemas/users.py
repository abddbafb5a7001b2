"""User management schemas."""

from typing import Optional
from pydantic import Field

from api.schemas.common import StrippedModel
from database.models.users import UserRole


class UserCreate(StrippedModel):
    name: str
    email: str
    password: str
    role: UserRole = Field(UserRole.RECRUITER, description="admin, hiring_manager, recruiter or vendor")


class UserUpdate(StrippedModel):
    name: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None
    role: Optional[UserRole] = None
    is_active: Optional[bool] = None
