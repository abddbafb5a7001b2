"""
Vendors Module

Job assignments that grant a vendor user access to specific jobs.
"""

from datetime import datetime

from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import ForeignKey, DateTime, UniqueConstraint

from database.engine import Base
from database.types import IdType, utc_now


class VendorJobAssignment(Base):
    """
    The only source of job visibility for users with the vendor role.
    """

    __tablename__ = "vendor_job_assignments"

    id: Mapped[int] = mapped_column(IdType, primary_key=True, autoincrement=True)
    vendor_id: Mapped[int] = mapped_column(
        IdType, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    job_id: Mapped[int] = mapped_column(
        IdType, ForeignKey("jobs.id", ondelete="CASCADE"), nullable=False, index=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )

    __table_args__ = (
        UniqueConstraint("vendor_id", "job_id", name="uq_vendor_job"),
    )
