from datetime import datetime
from enum import Enum as PyEnum
from typing import TYPE_CHECKING

from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy import String, Boolean, ForeignKey, DateTime, Index

from database.engine import Base
from database.types import IdType, enum_column, utc_now

if TYPE_CHECKING:
    from database.models.companies import Company


# ==================== User Role ===================== #
class UserRole(str, PyEnum):
    ADMIN = "admin"  # company admin with full access
    HIRING_MANAGER = "hiring_manager"  # sees all company jobs, manages hiring
    RECRUITER = "recruiter"  # works the jobs assigned to them
    VENDOR = "vendor"  # external agency limited to assigned jobs


class User(Base):
    """
    Company member who signs in to the ATS.
    """

    __tablename__: str = "users"

    id: Mapped[int] = mapped_column(IdType, primary_key=True, autoincrement=True)
    company_id: Mapped[int] = mapped_column(
        IdType,
        ForeignKey("companies.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(
        String(255), unique=True, nullable=False, index=True
    )
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[UserRole] = mapped_column(
        enum_column(UserRole), nullable=False, default=UserRole.RECRUITER
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )

    company: Mapped["Company"] = relationship("Company", back_populates="users")

    __table_args__ = (
        Index("idx_user_company_role", "company_id", "role"),
    )

    def to_dict(self) -> dict:
        """Public representation, never includes the password hash."""
        return {
            "id": self.id,
            "company_id": self.company_id,
            "name": self.name,
            "email": self.email,
            "role": self.role.value if hasattr(self.role, "value") else self.role,
            "is_active": self.is_active,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
