"""
Candidates Module

Candidate profiles, their applications to jobs, activity timeline and
stage history.
"""

from datetime import datetime
from enum import Enum as PyEnum
from typing import Any, TYPE_CHECKING

from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy import (
    String,
    ForeignKey,
    Integer,
    Float,
    DateTime,
    Text,
    JSON,
    Index,
    UniqueConstraint,
)

from database.engine import Base
from database.types import IdType, enum_column, utc_now

if TYPE_CHECKING:
    from database.models.jobs import Job
    from database.models.pipelines import PipelineStage


# ==================== Enums ===================== #
class ActivityType(str, PyEnum):
    """Timeline entry types."""

    STAGE_CHANGE = "stage_change"
    NOTE_ADDED = "note_added"
    RESUME_UPLOADED = "resume_uploaded"
    INTERVIEW_SCHEDULED = "interview_scheduled"
    INTERVIEW_RESCHEDULED = "interview_rescheduled"
    INTERVIEW_CANCELLED = "interview_cancelled"
    SCORE_UPDATED = "score_updated"


# ==================== Candidate Model ===================== #
class Candidate(Base):
    """
    Person in the company's talent database. Email is unique per company.
    """

    __tablename__ = "candidates"

    id: Mapped[int] = mapped_column(IdType, primary_key=True, autoincrement=True)
    company_id: Mapped[int] = mapped_column(
        IdType,
        ForeignKey("companies.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # Profile
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    phone: Mapped[str | None] = mapped_column(String(50))
    location: Mapped[str] = mapped_column(String(255), nullable=False)
    experience_years: Mapped[float] = mapped_column(Float, default=0, nullable=False)
    current_company: Mapped[str | None] = mapped_column(String(255))
    current_ctc: Mapped[str | None] = mapped_column(String(100))
    expected_ctc: Mapped[str | None] = mapped_column(String(100))
    notice_period: Mapped[str | None] = mapped_column(String(100))
    availability: Mapped[str | None] = mapped_column(String(100))
    skills: Mapped[list[str] | None] = mapped_column(JSON)
    source: Mapped[str] = mapped_column(String(100), nullable=False)
    resume_url: Mapped[str | None] = mapped_column(String(500))

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )

    applications: Mapped[list["JobCandidate"]] = relationship(
        "JobCandidate", back_populates="candidate", cascade="all, delete-orphan"
    )

    __table_args__ = (
        UniqueConstraint("company_id", "email", name="uq_candidate_company_email"),
    )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "location": self.location,
            "experience_years": self.experience_years,
            "current_company": self.current_company,
            "current_ctc": self.current_ctc,
            "expected_ctc": self.expected_ctc,
            "notice_period": self.notice_period,
            "availability": self.availability,
            "skills": self.skills or [],
            "source": self.source,
            "resume_url": self.resume_url,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


# ==================== JobCandidate Model ===================== #
class JobCandidate(Base):
    """
    A candidate's application to one job and their position in its pipeline.
    """

    __tablename__ = "job_candidates"

    id: Mapped[int] = mapped_column(IdType, primary_key=True, autoincrement=True)
    job_id: Mapped[int] = mapped_column(
        IdType, ForeignKey("jobs.id", ondelete="CASCADE"), nullable=False, index=True
    )
    candidate_id: Mapped[int] = mapped_column(
        IdType,
        ForeignKey("candidates.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    current_stage_id: Mapped[int] = mapped_column(
        IdType, ForeignKey("pipeline_stages.id"), nullable=False, index=True
    )
    score: Mapped[int | None] = mapped_column(Integer)

    applied_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )

    job: Mapped["Job"] = relationship("Job", back_populates="job_candidates")
    candidate: Mapped["Candidate"] = relationship(
        "Candidate", back_populates="applications"
    )
    current_stage: Mapped["PipelineStage"] = relationship("PipelineStage")
    activities: Mapped[list["CandidateActivity"]] = relationship(
        "CandidateActivity", cascade="all, delete-orphan"
    )
    stage_history: Mapped[list["StageHistory"]] = relationship(
        "StageHistory", cascade="all, delete-orphan"
    )

    __table_args__ = (
        UniqueConstraint("job_id", "candidate_id", name="uq_job_candidate"),
    )


# ==================== CandidateActivity Model ===================== #
class CandidateActivity(Base):
    """
    Timeline entry for a candidate, optionally tied to one application.
    """

    __tablename__ = "candidate_activities"

    id: Mapped[int] = mapped_column(IdType, primary_key=True, autoincrement=True)
    candidate_id: Mapped[int] = mapped_column(
        IdType,
        ForeignKey("candidates.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    job_candidate_id: Mapped[int | None] = mapped_column(
        IdType, ForeignKey("job_candidates.id", ondelete="CASCADE"), index=True
    )
    activity_type: Mapped[ActivityType] = mapped_column(
        enum_column(ActivityType), nullable=False
    )
    description: Mapped[str] = mapped_column(Text, nullable=False)
    activity_metadata: Mapped[dict[str, Any] | None] = mapped_column("metadata", JSON)
    created_by: Mapped[int | None] = mapped_column(
        IdType, ForeignKey("users.id", ondelete="SET NULL")
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )

    __table_args__ = (
        Index("idx_activity_job_candidate_created", "job_candidate_id", "created_at"),
    )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "candidate_id": self.candidate_id,
            "job_candidate_id": self.job_candidate_id,
            "activity_type": self.activity_type.value
            if hasattr(self.activity_type, "value")
            else self.activity_type,
            "description": self.description,
            "metadata": self.activity_metadata or {},
            "created_by": self.created_by,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


# ==================== StageHistory Model ===================== #
class StageHistory(Base):
    """
    One visit of an application to a stage. Open while exited_at is null.
    """

    __tablename__ = "stage_history"

    id: Mapped[int] = mapped_column(IdType, primary_key=True, autoincrement=True)
    job_candidate_id: Mapped[int] = mapped_column(
        IdType,
        ForeignKey("job_candidates.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    stage_id: Mapped[int] = mapped_column(IdType, nullable=False, index=True)
    stage_name: Mapped[str] = mapped_column(String(255), nullable=False)
    entered_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
    exited_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    duration_hours: Mapped[float | None] = mapped_column(Float)
    comment: Mapped[str | None] = mapped_column(Text)
    moved_by: Mapped[int | None] = mapped_column(
        IdType, ForeignKey("users.id", ondelete="SET NULL")
    )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "job_candidate_id": self.job_candidate_id,
            "stage_id": self.stage_id,
            "stage_name": self.stage_name,
            "entered_at": self.entered_at.isoformat() if self.entered_at else None,
            "exited_at": self.exited_at.isoformat() if self.exited_at else None,
            "duration_hours": self.duration_hours,
            "comment": self.comment,
            "moved_by": self.moved_by,
        }
