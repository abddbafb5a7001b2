"""
Pipelines Module

Ordered hiring stages per job, optionally nested one level via parent_id.
"""

from datetime import datetime
from typing import Any, TYPE_CHECKING

from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy import (
    String,
    Boolean,
    ForeignKey,
    Integer,
    DateTime,
    Index,
)

from database.engine import Base
from database.types import IdType, utc_now

if TYPE_CHECKING:
    from database.models.jobs import Job


# ==================== PipelineStage Model ===================== #
class PipelineStage(Base):
    """
    Individual stage in a job's hiring pipeline.

    Top-level stages hold contiguous positions 0..n-1. Sub-stages carry a
    parent_id and positions offset past the top-level range.
    """

    __tablename__ = "pipeline_stages"

    id: Mapped[int] = mapped_column(IdType, primary_key=True, autoincrement=True)
    job_id: Mapped[int] = mapped_column(
        IdType,
        ForeignKey("jobs.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    parent_id: Mapped[int | None] = mapped_column(
        IdType, ForeignKey("pipeline_stages.id", ondelete="CASCADE"), index=True
    )

    # Stage info
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    is_default: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_mandatory: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )

    job: Mapped["Job"] = relationship("Job", back_populates="stages")

    __table_args__ = (
        Index("idx_stage_job_position", "job_id", "position"),
    )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "job_id": self.job_id,
            "parent_id": self.parent_id,
            "name": self.name,
            "position": self.position,
            "is_default": self.is_default,
            "is_mandatory": self.is_mandatory,
        }
