"""
Item approval ledger records (``requisition_kernel.domain.item_approval``).

One record per (requisition, item, gate) decision event.  A gate's
*generation* is the set of records written by one decision round; the
latest valid generation is the only one the workflow reads.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import NamedTuple
from uuid import UUID

from requisition_kernel.domain.requisition import Gate, ItemDecisionStatus


class ItemKey(NamedTuple):
    item_number: int
    material_id: int


@dataclass(frozen=True)
class LedgerDecision:
    """An item decision resolved against the current item, ready to record."""

    item_number: int
    material_id: int
    quantity: Decimal
    status: ItemDecisionStatus
    comments: str = ""
    observation: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "comments", self.comments or "")

    @property
    def key(self) -> ItemKey:
        return ItemKey(self.item_number, self.material_id)


@dataclass(frozen=True)
class ItemApprovalRecord:
    """Immutable view of one persisted item decision."""

    approval_id: UUID
    requisition_id: UUID
    item_number: int
    material_id: int
    gate: Gate
    status: ItemDecisionStatus
    actor_id: UUID
    quantity: Decimal
    generation: int
    is_valid: bool
    decided_at: datetime
    comments: str = ""
    observation: str | None = None
    invalidated_at: datetime | None = None

    @property
    def key(self) -> ItemKey:
        return ItemKey(self.item_number, self.material_id)

    @property
    def is_rejected(self) -> bool:
        return self.status == ItemDecisionStatus.REJECTED
