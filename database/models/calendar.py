"""
Calendar Module

OAuth credentials for calendar providers and the external events created
for interviews.
"""

from datetime import datetime
from enum import Enum as PyEnum

from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import String, ForeignKey, DateTime, Text, UniqueConstraint

from database.engine import Base
from database.types import IdType, enum_column, utc_now


# ==================== Enums ===================== #
class CalendarProvider(str, PyEnum):
    """Calendar providers."""

    GOOGLE = "google"
    MICROSOFT = "microsoft"


# ==================== OAuthToken Model ===================== #
class OAuthToken(Base):
    """
    Encrypted provider credentials, one row per user and provider.
    """

    __tablename__ = "oauth_tokens"

    id: Mapped[int] = mapped_column(IdType, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        IdType, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    provider: Mapped[CalendarProvider] = mapped_column(
        enum_column(CalendarProvider), nullable=False
    )
    access_token: Mapped[str] = mapped_column(Text, nullable=False)  # encrypted
    refresh_token: Mapped[str | None] = mapped_column(Text)  # encrypted
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    scope: Mapped[str | None] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )

    __table_args__ = (
        UniqueConstraint("user_id", "provider", name="uq_oauth_user_provider"),
    )


# ==================== CalendarEvent Model ===================== #
class CalendarEvent(Base):
    """
    External calendar event created for an interview on a user's calendar.
    """

    __tablename__ = "calendar_events"

    id: Mapped[int] = mapped_column(IdType, primary_key=True, autoincrement=True)
    interview_id: Mapped[int] = mapped_column(
        IdType, ForeignKey("interviews.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id: Mapped[int] = mapped_column(
        IdType, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    provider: Mapped[CalendarProvider] = mapped_column(
        enum_column(CalendarProvider), nullable=False
    )
    external_event_id: Mapped[str] = mapped_column(String(255), nullable=False)
    meeting_link: Mapped[str | None] = mapped_column(String(500))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
