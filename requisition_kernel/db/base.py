"""
Module: requisition_kernel.db.base
Responsibility: Declarative base shared by every requisition model, with the
    column-type conventions applied through ``type_annotation_map``.
Architecture position: Kernel > DB.  Lowest import target of the kernel;
    imports only db/types.py.

Invariants enforced:
    - Surrogate ``id`` primary keys are uuid4, stored as 36-character text
      so the same schema runs on PostgreSQL and SQLite.
    - ``Mapped[Decimal]`` columns are Numeric(18, 4) quantities.
    - ``Mapped[datetime]`` columns are UTCDateTime (aware, stored in UTC).
    - ``Mapped[int]`` columns are BigInteger (sequences, versions).
"""

from datetime import datetime
from decimal import Decimal
from typing import ClassVar
from uuid import UUID, uuid4

from sqlalchemy import BigInteger, Numeric, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator

from requisition_kernel.db.types import UTCDateTime


class UUIDString(TypeDecorator):
    """UUID on the Python side, ``VARCHAR(36)`` in the database."""

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return None if value is None else str(value)

    def process_result_value(self, value, dialect):
        return None if value is None else UUID(value)


class Base(DeclarativeBase):
    """Declarative base for requisitions, items, logs, ledger rows and edges."""

    type_annotation_map: ClassVar[dict] = {
        Decimal: Numeric(18, 4),
        datetime: UTCDateTime(),
        UUID: UUIDString(),
        int: BigInteger,
    }

    id: Mapped[UUID] = mapped_column(UUIDString(), primary_key=True, default=uuid4)
