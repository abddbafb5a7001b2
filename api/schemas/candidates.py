"""Candidate and application schemas."""

from typing import List, Optional
from pydantic import BaseModel, Field

from api.schemas.common import StrippedModel


class CandidateFields(StrippedModel):
    phone: Optional[str] = Field(None, max_length=50)
    experience_years: Optional[float] = None
    current_company: Optional[str] = None
    current_ctc: Optional[str] = None
    expected_ctc: Optional[str] = None
    notice_period: Optional[str] = None
    availability: Optional[str] = None
    skills: Optional[List[str]] = None
    resume_url: Optional[str] = Field(None, max_length=500)


class CandidateCreate(CandidateFields):
    """Name, email, location and source are checked by the service."""

    name: Optional[str] = None
    email: Optional[str] = None
    location: Optional[str] = None
    source: Optional[str] = None


class CandidateUpdate(CandidateFields):
    name: Optional[str] = None
    email: Optional[str] = None
    location: Optional[str] = None
    source: Optional[str] = None


class ResumeUpdate(StrippedModel):
    resume_url: str = Field(min_length=1, max_length=500)


class AddToJobRequest(BaseModel):
    job_id: int
    stage_id: Optional[int] = None


class StageChangeRequest(StrippedModel):
    stage_id: int
    rejection_reason: Optional[str] = None
    comment: Optional[str] = None


class ScoreUpdate(BaseModel):
    score: int


class NoteCreate(StrippedModel):
    content: str = Field(min_length=1)
