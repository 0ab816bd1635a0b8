"""SQLAlchemy base model and mixins.

Models must run unchanged on PostgreSQL, SQL Server and SQLite, so only
portable column types are used here.
"""

from datetime import datetime, timezone

from sqlalchemy import BigInteger, DateTime, Integer, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# SQLite only auto-increments an INTEGER PRIMARY KEY
RowKey = BigInteger().with_variant(Integer(), "sqlite")


def utcnow() -> datetime:
    """Timezone-aware current time."""
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    type_annotation_map = {
        str: String(255),
    }


class RowKeyMixin:
    """Mixin for a generated integer primary key."""

    id: Mapped[int] = mapped_column(
        RowKey,
        primary_key=True,
        autoincrement=True,
    )


class TimestampMixin:
    """Mixin for a created_at timestamp set on the client.

    Client-side so that ordering has sub-second resolution on every dialect.
    """

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
        index=True,
    )
