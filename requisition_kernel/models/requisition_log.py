"""
Module: requisition_kernel.models.requisition_log
Responsibility: Append-only approval log for requisitions.

Architecture position: Kernel > Models.  May import from db/ and the closed
    enums of domain/requisition.py only.

Invariants enforced:
    - Log entries are immutable from creation: no UPDATE, no DELETE.
    - ``sequence`` is numbered per requisition from 1, allocated while the
      requisition row is locked.  (requisition_id, sequence) is unique, so
      ordering is total even when two entries share a timestamp.

Failure modes:
    - ImmutabilityViolationError on UPDATE/DELETE through the ORM.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import (
    CheckConstraint,
    ForeignKey,
    Index,
    String,
    Text,
    UniqueConstraint,
    event,
)
from sqlalchemy.orm import Mapped, mapped_column

from requisition_kernel.db.base import Base, UUIDString
from requisition_kernel.domain.requisition import LogAction
from requisition_kernel.exceptions import ImmutabilityViolationError

if TYPE_CHECKING:
    from requisition_kernel.domain.requisition import LogEntry


class RequisitionLogModel(Base):
    """One approval log entry.  Append-only."""

    __tablename__ = "requisition_logs"

    __table_args__ = (
        CheckConstraint(
            "action IN (" + ", ".join(f"'{a.value}'" for a in LogAction) + ")",
            name="ck_requisition_logs_valid_action",
        ),
        UniqueConstraint(
            "requisition_id", "sequence", name="uq_requisition_logs_sequence",
        ),
        Index("ix_requisition_logs_actor", "actor_id", "created_at"),
    )

    log_id: Mapped[UUID] = mapped_column(
        UUIDString(), nullable=False, unique=True,
    )
    requisition_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("requisitions.requisition_id"),
        nullable=False,
    )
    sequence: Mapped[int] = mapped_column(nullable=False)
    action: Mapped[str] = mapped_column(String(50), nullable=False)
    previous_status: Mapped[str | None] = mapped_column(String(50), nullable=True)
    new_status: Mapped[str] = mapped_column(String(50), nullable=False)
    actor_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    comments: Mapped[str] = mapped_column(Text, nullable=False, default="")
    created_at: Mapped[datetime] = mapped_column(nullable=False)

    def __repr__(self) -> str:
        return (
            f"<RequisitionLog #{self.sequence} {self.action} "
            f"{self.previous_status}->{self.new_status}>"
        )

    def to_dto(self) -> LogEntry:
        from requisition_kernel.domain.requisition import (
            LogEntry as LogEntryDTO,
            RequisitionStatus,
        )

        return LogEntryDTO(
            log_id=self.log_id,
            requisition_id=self.requisition_id,
            sequence=self.sequence,
            action=LogAction(self.action),
            previous_status=(
                RequisitionStatus(self.previous_status)
                if self.previous_status else None
            ),
            new_status=RequisitionStatus(self.new_status),
            actor_id=self.actor_id,
            comments=self.comments,
            created_at=self.created_at,
        )


@event.listens_for(RequisitionLogModel, "before_update")
def prevent_log_update(mapper, connection, target):
    """Prevent updates to requisition log entries."""
    raise ImmutabilityViolationError(
        entity_type="RequisitionLog",
        entity_id=str(target.log_id),
        reason="Requisition log entries are append-only -- cannot modify",
    )


@event.listens_for(RequisitionLogModel, "before_delete")
def prevent_log_delete(mapper, connection, target):
    """Prevent deletion of requisition log entries."""
    raise ImmutabilityViolationError(
        entity_type="RequisitionLog",
        entity_id=str(target.log_id),
        reason="Requisition log entries are append-only -- cannot delete",
    )
