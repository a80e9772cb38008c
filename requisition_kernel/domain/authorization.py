"""
Delegation graph records (``requisition_kernel.domain.authorization``).

An edge ``authorizer -> subordinate`` of a given type lets the authorizer
act on the subordinate's requisitions at the matching gate.  Edges are
single hop: an authorizer of an authorizer gains nothing.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from uuid import UUID

from requisition_kernel.domain.requisition import AuthorizationType, Gate

# Edge type required at each edge-governed gate
GATE_AUTHORIZATION_TYPES: dict[Gate, AuthorizationType] = {
    Gate.REVIEW: AuthorizationType.REVISION,
    Gate.AUTHORIZE: AuthorizationType.AUTORIZACION,
    Gate.MANAGEMENT: AuthorizationType.APROBACION,
}


@dataclass(frozen=True)
class AuthorizationEdge:
    edge_id: UUID
    authorizer_id: UUID
    subordinate_id: UUID
    authorization_type: AuthorizationType
    level: int
    created_at: datetime


@dataclass(frozen=True)
class BulkEdgeResult:
    """Outcome of assigning many subordinates to one authorizer."""

    created: tuple[UUID, ...] = ()
    skipped: tuple[UUID, ...] = ()
    errors: tuple[tuple[UUID, str], ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class HierarchyEntry:
    """One authorizer with everyone they authorize, grouped by type."""

    authorizer_id: UUID
    subordinates: dict[AuthorizationType, tuple[UUID, ...]]

    @property
    def total(self) -> int:
        return sum(len(v) for v in self.subordinates.values())
