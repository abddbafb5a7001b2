"""
Interviews Module

Scheduled interviews for an application, their panel and panel feedback.
"""

from datetime import datetime
from enum import Enum as PyEnum
from typing import Any, TYPE_CHECKING

from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy import (
    String,
    ForeignKey,
    Integer,
    DateTime,
    Text,
    Index,
    UniqueConstraint,
)

from database.engine import Base
from database.types import IdType, enum_column, utc_now

if TYPE_CHECKING:
    from database.models.candidates import JobCandidate


# ==================== Enums ===================== #
class InterviewMode(str, PyEnum):
    GOOGLE_MEET = "google_meet"
    MICROSOFT_TEAMS = "microsoft_teams"
    IN_PERSON = "in_person"
    CUSTOM_URL = "custom_url"


class InterviewStatus(str, PyEnum):
    SCHEDULED = "scheduled"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"


class Recommendation(str, PyEnum):
    STRONG_HIRE = "strong_hire"
    HIRE = "hire"
    NO_HIRE = "no_hire"
    STRONG_NO_HIRE = "strong_no_hire"


# ==================== Interview Model ===================== #
class Interview(Base):
    """
    Interview round scheduled for one application.
    """

    __tablename__ = "interviews"

    id: Mapped[int] = mapped_column(IdType, primary_key=True, autoincrement=True)
    job_candidate_id: Mapped[int] = mapped_column(
        IdType,
        ForeignKey("job_candidates.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    scheduled_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    duration: Mapped[int] = mapped_column(Integer, nullable=False)  # minutes
    timezone: Mapped[str] = mapped_column(String(64), nullable=False)
    mode: Mapped[InterviewMode] = mapped_column(enum_column(InterviewMode), nullable=False)
    location: Mapped[str | None] = mapped_column(String(500))
    meeting_link: Mapped[str | None] = mapped_column(String(500))
    notes: Mapped[str | None] = mapped_column(Text)
    status: Mapped[InterviewStatus] = mapped_column(
        enum_column(InterviewStatus), nullable=False, default=InterviewStatus.SCHEDULED
    )
    cancel_reason: Mapped[str | None] = mapped_column(Text)
    scheduled_by: Mapped[int] = mapped_column(
        IdType, ForeignKey("users.id"), nullable=False
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )

    job_candidate: Mapped["JobCandidate"] = relationship("JobCandidate")
    panel_members: Mapped[list["InterviewPanelMember"]] = relationship(
        "InterviewPanelMember", back_populates="interview", cascade="all, delete-orphan"
    )
    feedback: Mapped[list["InterviewFeedback"]] = relationship(
        "InterviewFeedback", back_populates="interview", cascade="all, delete-orphan"
    )

    __table_args__ = (
        Index("idx_interview_scheduled_at", "scheduled_at"),
    )


class InterviewPanelMember(Base):
    __tablename__ = "interview_panel_members"

    id: Mapped[int] = mapped_column(IdType, primary_key=True, autoincrement=True)
    interview_id: Mapped[int] = mapped_column(
        IdType, ForeignKey("interviews.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id: Mapped[int] = mapped_column(
        IdType, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )

    interview: Mapped["Interview"] = relationship("Interview", back_populates="panel_members")

    __table_args__ = (
        UniqueConstraint("interview_id", "user_id", name="uq_interview_panel_member"),
    )


class InterviewFeedback(Base):
    """
    Scorecard submitted by one panel member for one interview.
    """

    __tablename__ = "interview_feedback"

    id: Mapped[int] = mapped_column(IdType, primary_key=True, autoincrement=True)
    interview_id: Mapped[int] = mapped_column(
        IdType, ForeignKey("interviews.id", ondelete="CASCADE"), nullable=False, index=True
    )
    panel_member_id: Mapped[int] = mapped_column(
        IdType, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    rating: Mapped[int] = mapped_column(Integer, nullable=False)  # 1-5
    recommendation: Mapped[Recommendation] = mapped_column(
        enum_column(Recommendation), nullable=False
    )
    comments: Mapped[str | None] = mapped_column(Text)
    submitted_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )

    interview: Mapped["Interview"] = relationship("Interview", back_populates="feedback")

    __table_args__ = (
        UniqueConstraint("interview_id", "panel_member_id", name="uq_interview_feedback_member"),
    )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "interview_id": self.interview_id,
            "panel_member_id": self.panel_member_id,
            "rating": self.rating,
            "recommendation": self.recommendation.value
            if hasattr(self.recommendation, "value")
            else self.recommendation,
            "comments": self.comments,
            "submitted_at": self.submitted_at.isoformat() if self.submitted_at else None,
        }
