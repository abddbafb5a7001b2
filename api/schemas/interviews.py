"""Interview scheduling and feedback schemas."""

from datetime import datetime
from typing import List, Optional
from pydantic import Field

from api.schemas.common import StrippedModel


class InterviewCreate(StrippedModel):
    job_candidate_id: int
    scheduled_at: datetime
    duration: int = Field(description="Minutes")
    timezone: str
    mode: str = Field(description="google_meet, microsoft_teams, in_person or custom_url")
    location: Optional[str] = Field(None, description="Address or meeting URL depending on mode")
    notes: Optional[str] = None
    panel_member_ids: List[int]


class InterviewUpdate(StrippedModel):
    scheduled_at: Optional[datetime] = None
    duration: Optional[int] = None
    timezone: Optional[str] = None
    mode: Optional[str] = None
    location: Optional[str] = None
    notes: Optional[str] = None
    panel_member_ids: Optional[List[int]] = None


class InterviewCancel(StrippedModel):
    reason: Optional[str] = None


class FeedbackSubmit(StrippedModel):
    rating: int = Field(ge=1, le=5)
    recommendation: str = Field(description="strong_hire, hire, no_hire or strong_no_hire")
    comments: Optional[str] = None
