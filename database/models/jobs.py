"""
Jobs Module

Job postings owned by a company, each with its own hiring pipeline.
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
)

from database.engine import Base
from database.types import IdType, enum_column, utc_now

if TYPE_CHECKING:
    from database.models.companies import Company
    from database.models.pipelines import PipelineStage
    from database.models.candidates import JobCandidate


# ==================== Enums ===================== #
class JobStatus(str, PyEnum):
    """Lifecycle state of a job posting."""

    ACTIVE = "active"
    PAUSED = "paused"
    CLOSED = "closed"
    DRAFT = "draft"


class JobPriority(str, PyEnum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    URGENT = "Urgent"


# ==================== Job Model ===================== #
class Job(Base):
    """
    Open role and its hiring requirements.
    """

    __tablename__ = "jobs"

    id: Mapped[int] = mapped_column(IdType, primary_key=True, autoincrement=True)
    company_id: Mapped[int] = mapped_column(
        IdType,
        ForeignKey("companies.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # Posting info
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    department: Mapped[str | None] = mapped_column(String(255))
    location: Mapped[str | None] = mapped_column(String(255))
    locations: Mapped[list[str] | None] = mapped_column(JSON)
    employment_type: Mapped[str | None] = mapped_column(String(50))
    work_mode: Mapped[str | None] = mapped_column(String(50))  # onsite/remote/hybrid
    description: Mapped[str | None] = mapped_column(Text)
    skills: Mapped[list[str] | None] = mapped_column(JSON)

    # Requirements
    experience_min: Mapped[float | None] = mapped_column(Float)
    experience_max: Mapped[float | None] = mapped_column(Float)
    salary_min: Mapped[int | None] = mapped_column(Integer)
    salary_max: Mapped[int | None] = mapped_column(Integer)
    salary_currency: Mapped[str | None] = mapped_column(String(10))
    openings: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    # Screening
    mandatory_criteria: Mapped[dict[str, Any] | None] = mapped_column(JSON)
    screening_questions: Mapped[list[dict[str, Any]] | None] = mapped_column(JSON)
    auto_rejection_rules: Mapped[dict[str, Any] | None] = mapped_column(JSON)

    # Tracking
    priority: Mapped[JobPriority] = mapped_column(
        enum_column(JobPriority), default=JobPriority.MEDIUM, nullable=False
    )
    status: Mapped[JobStatus] = mapped_column(
        enum_column(JobStatus), default=JobStatus.ACTIVE, nullable=False
    )
    assigned_recruiter_id: Mapped[int | None] = mapped_column(
        IdType, ForeignKey("users.id", ondelete="SET NULL"), index=True
    )
    created_by: Mapped[int | None] = mapped_column(
        IdType, ForeignKey("users.id", ondelete="SET NULL")
    )

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )

    # Relationships
    company: Mapped["Company"] = relationship("Company", back_populates="jobs")
    stages: Mapped[list["PipelineStage"]] = relationship(
        "PipelineStage",
        back_populates="job",
        cascade="all, delete-orphan",
        order_by="PipelineStage.position",
    )
    job_candidates: Mapped[list["JobCandidate"]] = relationship(
        "JobCandidate", back_populates="job", cascade="all, delete-orphan"
    )

    __table_args__ = (
        Index("idx_job_company_status", "company_id", "status"),
    )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "title": self.title,
            "department": self.department,
            "location": self.location,
            "locations": self.locations or [],
            "employment_type": self.employment_type,
            "work_mode": self.work_mode,
            "description": self.description,
            "skills": self.skills or [],
            "experience_min": self.experience_min,
            "experience_max": self.experience_max,
            "salary_min": self.salary_min,
            "salary_max": self.salary_max,
            "salary_currency": self.salary_currency,
            "openings": self.openings,
            "mandatory_criteria": self.mandatory_criteria or {},
            "screening_questions": self.screening_questions or [],
            "auto_rejection_rules": self.auto_rejection_rules,
            "priority": self.priority.value if hasattr(self.priority, "value") else self.priority,
            "status": self.status.value if hasattr(self.status, "value") else self.status,
            "assigned_recruiter_id": self.assigned_recruiter_id,
            "created_by": self.created_by,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
