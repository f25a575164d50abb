"""
SQLModel bases and shared columns for the Warthug ORM schema.

Every table class derives from `IdModel` or `TimestampedModel` with
`table=True`; all tables register on `SQLModel.metadata`. Time columns are
timezone-aware and normalised to UTC when read back (some drivers return
naive values).
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import BigInteger, DateTime, Integer, func
from sqlmodel import Field, SQLModel

# SQLite only autoincrements INTEGER PRIMARY KEY columns
ID_TYPE = BigInteger().with_variant(Integer, "sqlite")

UTC_TIMESTAMP = DateTime(timezone=True)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class IdModel(SQLModel):
    """Surrogate integer primary key."""

    id: Optional[int] = Field(default=None, primary_key=True, sa_type=ID_TYPE)


class TimestampedModel(IdModel):
    """Row creation / modification timestamps."""

    created_at: datetime = Field(
        default_factory=utc_now,
        sa_type=UTC_TIMESTAMP,
        nullable=False,
        sa_column_kwargs={"server_default": func.now()},
    )
    updated_at: datetime = Field(
        default_factory=utc_now,
        sa_type=UTC_TIMESTAMP,
        nullable=False,
        sa_column_kwargs={"server_default": func.now(), "onupdate": utc_now},
    )


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes returned by the driver."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
