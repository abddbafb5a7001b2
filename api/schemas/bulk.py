"""Bulk move and import schemas."""

from typing import List, Optional
from pydantic import BaseModel, Field

from api.schemas.common import StrippedModel


class BulkMoveRequest(StrippedModel):
    job_id: int
    candidate_ids: List[int] = Field(description="JobCandidate ids to move")
    target_stage_id: int
    comment: Optional[str] = None


class ImportCandidate(StrippedModel):
    """One parsed row; only name and email are required."""

    name: str
    email: str
    phone: Optional[str] = None
    location: Optional[str] = None
    experience_years: Optional[float] = None
    current_company: Optional[str] = None
    skills: Optional[List[str]] = None
    source: Optional[str] = None


class BulkImportRequest(BaseModel):
    job_id: int
    candidates: List[ImportCandidate]
    send_emails: bool = False
