"""
ItemApprovalLedger -- append-only per-item gate decisions.

Responsibility:
    Records one generation of item decisions per (requisition, gate)
    decision round, invalidates the previous generation when a new round
    starts or when the requisition is resubmitted, and answers "what is
    the latest valid decision for each item at this gate".

Architecture position:
    Kernel > Services.  Called by RequisitionStateMachine while it holds
    the requisition row lock, so generations for one requisition are never
    allocated concurrently.

Invariants enforced:
    - Recording a generation first invalidates every valid row of that
      (requisition, gate); at most one valid row per item and gate.
    - Rows are never deleted.  Invalidation is the only update, enforced
      by ORM listeners on ItemApprovalModel.
    - ``latest_valid`` never merges rows from different generations.
"""

from __future__ import annotations

from typing import Sequence
from uuid import UUID, uuid4

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from requisition_kernel.domain.clock import Clock, SystemClock
from requisition_kernel.domain.item_approval import (
    ItemApprovalRecord,
    ItemKey,
    LedgerDecision,
)
from requisition_kernel.domain.requisition import Gate, ItemDecisionStatus
from requisition_kernel.exceptions import MissingRejectionCommentError
from requisition_kernel.logging_config import get_logger
from requisition_kernel.models.item_approval import ItemApprovalModel
from requisition_kernel.services.base import BaseService

logger = get_logger("services.item_approval_ledger")


class ItemApprovalLedger(BaseService):
    """Append-only item decision ledger."""

    def __init__(self, session: Session, clock: Clock | None = None):
        super().__init__(session)
        self._clock = clock or SystemClock()

    def record_decisions(
        self,
        requisition_id: UUID,
        gate: Gate,
        decisions: Sequence[LedgerDecision],
        actor_id: UUID,
    ) -> list[ItemApprovalRecord]:
        """
        Write a new valid generation for ``gate``.

        Preconditions:
            - ``decisions`` cover the requisition's current items exactly
              (checked by the caller).
            - Rejected decisions carry non-empty comments.

        Postconditions:
            - The previous valid generation for the gate is invalidated.
            - One valid row exists per decided item.
        """
        for decision in decisions:
            if decision.status == ItemDecisionStatus.REJECTED and not decision.comments.strip():
                raise MissingRejectionCommentError(decision.item_number)

        superseded = self.invalidate(requisition_id, gate)
        generation = self.current_generation(requisition_id, gate) + 1
        now = self._clock.now()

        models = [
            ItemApprovalModel(
                approval_id=uuid4(),
                requisition_id=requisition_id,
                item_number=d.item_number,
                material_id=d.material_id,
                gate=gate.value,
                status=d.status.value,
                comments=d.comments.strip(),
                actor_id=actor_id,
                quantity=d.quantity,
                observation=d.observation,
                generation=generation,
                is_valid=True,
                decided_at=now,
            )
            for d in decisions
        ]
        self.session.add_all(models)
        self.session.flush()

        logger.info(
            "item_decisions_recorded",
            extra={
                "requisition_id": str(requisition_id),
                "gate": gate.value,
                "generation": generation,
                "items": len(models),
                "rejected": sum(
                    1 for d in decisions if d.status == ItemDecisionStatus.REJECTED
                ),
                "superseded": superseded,
            },
        )
        return [m.to_dto() for m in models]

    def invalidate(self, requisition_id: UUID, gate: Gate) -> int:
        """Mark every valid row of (requisition, gate) invalid.  Returns the count."""
        rows = self.session.execute(
            select(ItemApprovalModel).where(
                ItemApprovalModel.requisition_id == requisition_id,
                ItemApprovalModel.gate == gate.value,
                ItemApprovalModel.is_valid.is_(True),
            )
        ).scalars().all()
        if not rows:
            return 0

        now = self._clock.now()
        for row in rows:
            row.is_valid = False
            row.invalidated_at = now
        self.session.flush()

        logger.info(
            "item_decisions_invalidated",
            extra={
                "requisition_id": str(requisition_id),
                "gate": gate.value,
                "count": len(rows),
            },
        )
        return len(rows)

    def current_generation(self, requisition_id: UUID, gate: Gate) -> int:
        """Highest generation written for (requisition, gate); 0 if none."""
        value = self.session.execute(
            select(func.max(ItemApprovalModel.generation)).where(
                ItemApprovalModel.requisition_id == requisition_id,
                ItemApprovalModel.gate == gate.value,
            )
        ).scalar_one_or_none()
        return value or 0

    def latest_valid(
        self, requisition_id: UUID, gate: Gate,
    ) -> dict[ItemKey, ItemApprovalRecord]:
        """Valid decisions for ``gate`` keyed by (item_number, material_id)."""
        rows = self.session.execute(
            select(ItemApprovalModel)
            .where(
                ItemApprovalModel.requisition_id == requisition_id,
                ItemApprovalModel.gate == gate.value,
                ItemApprovalModel.is_valid.is_(True),
            )
            .order_by(ItemApprovalModel.item_number)
        ).scalars().all()
        records = [row.to_dto() for row in rows]
        return {record.key: record for record in records}

    def history(
        self,
        requisition_id: UUID,
        gate: Gate | None = None,
        include_invalid: bool = True,
    ) -> list[ItemApprovalRecord]:
        """All decisions for a requisition, oldest generation first."""
        stmt = select(ItemApprovalModel).where(
            ItemApprovalModel.requisition_id == requisition_id,
        )
        if gate is not None:
            stmt = stmt.where(ItemApprovalModel.gate == gate.value)
        if not include_invalid:
            stmt = stmt.where(ItemApprovalModel.is_valid.is_(True))
        stmt = stmt.order_by(
            ItemApprovalModel.decided_at,
            ItemApprovalModel.generation,
            ItemApprovalModel.item_number,
        )
        return [row.to_dto() for row in self.session.execute(stmt).scalars()]
