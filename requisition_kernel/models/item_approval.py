"""
Module: requisition_kernel.models.item_approval
Responsibility: ORM persistence for per-item gate decisions (the item
    approval ledger).

Architecture position: Kernel > Models.  May import from db/ and the closed
    enums of domain/ only.

Invariants enforced:
    - At most one *valid* row per (requisition, gate, item_number): partial
      unique index on ``is_valid``.
    - Rows are never deleted.  The only permitted UPDATE is the
      invalidation ``is_valid: True -> False`` together with
      ``invalidated_at``.
    - Rejected rows carry non-empty comments (check constraint).

Failure modes:
    - IntegrityError on a second valid row for the same item and gate.
    - ImmutabilityViolationError on any other UPDATE, or on DELETE.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import (
    CheckConstraint,
    ForeignKey,
    Index,
    String,
    Text,
    event,
    inspect,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from requisition_kernel.db.base import Base, UUIDString
from requisition_kernel.exceptions import ImmutabilityViolationError

if TYPE_CHECKING:
    from requisition_kernel.domain.item_approval import ItemApprovalRecord


class ItemApprovalModel(Base):
    """One item decision at one gate, for one decision round."""

    __tablename__ = "item_approvals"

    __table_args__ = (
        CheckConstraint(
            "status IN ('approved', 'rejected')",
            name="ck_item_approvals_valid_status",
        ),
        CheckConstraint(
            "gate IN ('validate', 'review', 'authorize', 'management')",
            name="ck_item_approvals_valid_gate",
        ),
        CheckConstraint(
            "status <> 'rejected' OR length(trim(comments)) > 0",
            name="ck_item_approvals_rejection_comment",
        ),
        Index(
            "uq_item_approvals_valid",
            "requisition_id", "gate", "item_number",
            unique=True,
            postgresql_where=text("is_valid"),
            sqlite_where=text("is_valid = 1"),
        ),
        Index(
            "ix_item_approvals_lookup",
            "requisition_id", "gate", "is_valid", "generation",
        ),
    )

    approval_id: Mapped[UUID] = mapped_column(
        UUIDString(), nullable=False, unique=True,
    )
    requisition_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("requisitions.requisition_id"),
        nullable=False,
    )
    item_number: Mapped[int] = mapped_column(nullable=False)
    material_id: Mapped[int] = mapped_column(nullable=False)
    gate: Mapped[str] = mapped_column(String(20), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    comments: Mapped[str] = mapped_column(Text, nullable=False, default="")
    actor_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    # Snapshot of the line as it was decided
    quantity: Mapped[Decimal] = mapped_column(nullable=False)
    observation: Mapped[str | None] = mapped_column(Text, nullable=True)
    generation: Mapped[int] = mapped_column(nullable=False)
    is_valid: Mapped[bool] = mapped_column(nullable=False, default=True)
    decided_at: Mapped[datetime] = mapped_column(nullable=False)
    invalidated_at: Mapped[datetime | None] = mapped_column(nullable=True)

    def __repr__(self) -> str:
        return (
            f"<ItemApproval {self.gate} #{self.item_number} "
            f"{self.status} gen={self.generation} valid={self.is_valid}>"
        )

    def to_dto(self) -> ItemApprovalRecord:
        from requisition_kernel.domain.item_approval import (
            ItemApprovalRecord as ItemApprovalRecordDTO,
        )
        from requisition_kernel.domain.requisition import Gate, ItemDecisionStatus

        return ItemApprovalRecordDTO(
            approval_id=self.approval_id,
            requisition_id=self.requisition_id,
            item_number=self.item_number,
            material_id=self.material_id,
            gate=Gate(self.gate),
            status=ItemDecisionStatus(self.status),
            actor_id=self.actor_id,
            quantity=self.quantity,
            generation=self.generation,
            is_valid=self.is_valid,
            decided_at=self.decided_at,
            comments=self.comments,
            observation=self.observation,
            invalidated_at=self.invalidated_at,
        )


# =============================================================================
# ORM-Level Immutability (append-only, invalidation is the only update)
# =============================================================================

_INVALIDATION_FIELDS = frozenset({"is_valid", "invalidated_at"})


@event.listens_for(ItemApprovalModel, "before_update")
def restrict_item_approval_update(mapper, connection, target):
    """Allow only ``is_valid`` True -> False (with invalidated_at)."""
    state = inspect(target)
    changed = {
        attr.key for attr in state.attrs if attr.history.has_changes()
    }
    illegal = changed - _INVALIDATION_FIELDS
    if illegal:
        raise ImmutabilityViolationError(
            entity_type="ItemApproval",
            entity_id=str(target.approval_id),
            reason=f"Item decisions are immutable -- cannot modify {sorted(illegal)}",
        )

    was_valid = state.attrs.is_valid.history.deleted
    if (
        "is_valid" not in changed
        or target.is_valid
        or not was_valid
        or was_valid[0] is not True
        or target.invalidated_at is None
    ):
        raise ImmutabilityViolationError(
            entity_type="ItemApproval",
            entity_id=str(target.approval_id),
            reason="Item decisions can only be invalidated once, with a timestamp",
        )


@event.listens_for(ItemApprovalModel, "before_delete")
def prevent_item_approval_delete(mapper, connection, target):
    """Prevent deletion of item decisions."""
    raise ImmutabilityViolationError(
        entity_type="ItemApproval",
        entity_id=str(target.approval_id),
        reason="Item decisions are append-only -- cannot delete",
    )
