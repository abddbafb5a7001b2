"""
Notifications Module

In-app notifications delivered to individual users.
"""

from datetime import datetime
from enum import Enum as PyEnum
from typing import Any

from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import String, Boolean, ForeignKey, DateTime, Text, Index

from database.engine import Base
from database.types import IdType, enum_column, utc_now


class NotificationType(str, PyEnum):
    STAGE_CHANGE = "stage_change"
    FEEDBACK_PENDING = "feedback_pending"
    SLA_BREACH = "sla_breach"
    INTERVIEW_SCHEDULED = "interview_scheduled"
    OFFER_PENDING = "offer_pending"


class Notification(Base):
    __tablename__ = "notifications"

    id: Mapped[int] = mapped_column(IdType, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        IdType, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    type: Mapped[NotificationType] = mapped_column(
        enum_column(NotificationType), nullable=False
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    entity_type: Mapped[str | None] = mapped_column(String(50))
    entity_id: Mapped[str | None] = mapped_column(String(100))
    is_read: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )

    __table_args__ = (
        Index("idx_notification_user_read", "user_id", "is_read"),
    )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "type": self.type.value if hasattr(self.type, "value") else self.type,
            "title": self.title,
            "message": self.message,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "is_read": self.is_read,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
