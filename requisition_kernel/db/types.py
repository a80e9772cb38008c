"""
Module: requisition_kernel.db.types
Responsibility: Column types shared by every model.  Centralizes timestamp
    normalization so that every model reads and writes the same instant.
Architecture position: Kernel > DB.  May be imported by models/, services/
    and selectors/.  MUST NOT import from any of those layers.

Invariants enforced:
    - Timestamps are timezone-aware on the Python side and stored as UTC.
      SQLite has no timezone support, so UTCDateTime normalizes on bind and
      re-attaches UTC on load; PostgreSQL stores TIMESTAMPTZ natively.

Failure modes:
    - ValueError on binding a naive datetime (ambiguous instant).
"""

from datetime import timezone

from sqlalchemy import DateTime
from sqlalchemy.types import TypeDecorator


class UTCDateTime(TypeDecorator):
    """
    Timezone-aware datetime stored in UTC.

    Contract:
        Accepts aware datetimes only.  Returns aware UTC datetimes on every
        backend, including SQLite which drops tzinfo.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            raise ValueError(f"Naive datetime not allowed: {value!r}")
        value = value.astimezone(timezone.utc)
        if dialect.name == "sqlite":
            return value.replace(tzinfo=None)
        return value

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)
