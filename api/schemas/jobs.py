"""Job and pipeline schemas."""

from typing import Any, Dict, List, Optional, Union
from pydantic import BaseModel, Field

from api.schemas.common import StrippedModel


class SubStageInput(StrippedModel):
    name: str


class PipelineStageInput(StrippedModel):
    """A custom stage; mandatory stages missing from the list are added."""

    name: str
    position: Optional[int] = Field(None, ge=0)
    sub_stages: List[Union[SubStageInput, str]] = Field(default_factory=list)


class JobBase(StrippedModel):
    department: Optional[str] = Field(None, max_length=255)
    location: Optional[str] = Field(None, max_length=255)
    locations: Optional[List[str]] = None
    employment_type: Optional[str] = None
    work_mode: Optional[str] = Field(None, description="onsite, remote or hybrid")
    description: Optional[str] = None
    skills: Optional[List[str]] = None
    experience_min: Optional[float] = Field(None, ge=0)
    experience_max: Optional[float] = Field(None, ge=0)
    salary_min: Optional[int] = Field(None, ge=0)
    salary_max: Optional[int] = Field(None, ge=0)
    salary_currency: Optional[str] = Field(None, max_length=10)
    openings: Optional[int] = None
    priority: Optional[str] = Field(None, description="Low, Medium, High or Urgent")
    status: Optional[str] = Field(None, description="active, paused, closed or draft")
    assigned_recruiter_id: Optional[int] = None
    mandatory_criteria: Optional[Dict[str, Any]] = None
    screening_questions: Optional[List[Dict[str, Any]]] = None
    auto_rejection_rules: Optional[Dict[str, Any]] = Field(
        None, description="{\"enabled\": bool, \"rules\": [{field, operator, value, logic_connector}]}"
    )


class JobCreate(JobBase):
    title: str = Field(max_length=255)
    pipeline_stages: Optional[List[PipelineStageInput]] = None


class JobUpdate(JobBase):
    title: Optional[str] = Field(None, max_length=255)
    pipeline_stages: Optional[List[PipelineStageInput]] = Field(
        None, description="Replaces the pipeline while the job has no candidates"
    )


class StageCreate(StrippedModel):
    name: str = Field(min_length=1, max_length=255)
    position: int = Field(ge=0)


class StageUpdate(StrippedModel):
    name: str = Field(min_length=1, max_length=255)


class StageReorder(BaseModel):
    new_position: int = Field(ge=0)
