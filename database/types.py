"""Column type helpers shared by the models."""

from datetime import datetime, timezone
from enum import Enum as PyEnum
from typing import Type

from sqlalchemy import BigInteger, Integer, Enum as SQLEnum

# SQLite only autoincrements INTEGER PRIMARY KEY columns
IdType = BigInteger().with_variant(Integer, "sqlite")


def enum_column(enum_cls: Type[PyEnum]) -> SQLEnum:
    """String-backed enum column storing member values."""
    return SQLEnum(
        enum_cls,
        native_enum=False,
        length=50,
        values_callable=lambda members: [m.value for m in members],
    )


def utc_now() -> datetime:
    return datetime.now(timezone.utc)
