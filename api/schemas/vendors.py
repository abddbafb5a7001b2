"""Vendor management schemas."""

from typing import List, Optional
from pydantic import BaseModel, Field

from api.schemas.common import StrippedModel


class VendorCreate(StrippedModel):
    name: str
    email: str
    password: str
    job_ids: List[int] = Field(default_factory=list)


class VendorUpdate(StrippedModel):
    name: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None
    is_active: Optional[bool] = None
    job_ids: Optional[List[int]] = Field(None, description="Replaces all assignments when sent")


class JobAssignment(BaseModel):
    job_ids: List[int]
