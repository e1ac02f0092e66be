"""
SQLAlchemy Type Decorators.

Provides timezone-safe storage of instants.
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import DateTime, TypeDecorator


class UTCDateTime(TypeDecorator):
    """
    SQLAlchemy type that stores instants as UTC and always returns aware datetimes.

    Usage in models:
        posted_at: Mapped[datetime] = mapped_column(UTCDateTime(), index=True)

    Note: SQLite has no timezone-aware column type and hands back naive
    values; those are read as UTC. Naive values are rejected on write so a
    local wall-clock time can never be stored by mistake.
    """

    impl = DateTime
    cache_ok = True

    def __init__(self, **kwargs):
        super().__init__(timezone=True, **kwargs)

    def process_bind_param(self, value: Optional[datetime], dialect) -> Optional[datetime]:
        """Normalize to UTC before storing in database."""
        if value is None:
            return None
        if value.tzinfo is None or value.utcoffset() is None:
            raise ValueError("UTCDateTime requires timezone-aware datetimes")
        value = value.astimezone(timezone.utc)
        if dialect.name == "sqlite":
            return value.replace(tzinfo=None)
        return value

    def process_result_value(self, value: Optional[datetime], dialect) -> Optional[datetime]:
        """Attach UTC when reading from database."""
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)
