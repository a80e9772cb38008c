"""
Pure domain layer.

This module contains value objects and workflow rules with NO
dependencies on:
- ORM (SQLAlchemy)
- Database
- I/O (SystemClock aside)

All domain objects are immutable and deterministic.
"""

from requisition_kernel.domain.authorization import (
    GATE_AUTHORIZATION_TYPES,
    AuthorizationEdge,
    BulkEdgeResult,
    HierarchyEntry,
)
from requisition_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from requisition_kernel.domain.directory import (
    MasterDataDirectory,
    MasterDataRef,
    MaterialRef,
    QuotationHandoff,
    UserDirectory,
)
from requisition_kernel.domain.item_approval import (
    ItemApprovalRecord,
    ItemKey,
    LedgerDecision,
)
from requisition_kernel.domain.requisition import (
    GATE_RULES,
    AuthorizationType,
    Gate,
    GateOutcome,
    GateResult,
    ItemDecision,
    ItemDecisionStatus,
    ItemSpec,
    LogAction,
    LogEntry,
    Priority,
    RequisitionHeader,
    RequisitionSnapshot,
    RequisitionStatus,
    RequisitionStatusView,
    StageSignature,
)
from requisition_kernel.domain.sla import (
    BusinessCalendar,
    SLAClock,
    SlaBudget,
    SlaStatus,
)

__all__ = [
    "GATE_AUTHORIZATION_TYPES",
    "GATE_RULES",
    "AuthorizationEdge",
    "AuthorizationType",
    "BulkEdgeResult",
    "BusinessCalendar",
    "Clock",
    "DeterministicClock",
    "Gate",
    "GateOutcome",
    "GateResult",
    "HierarchyEntry",
    "ItemApprovalRecord",
    "ItemDecision",
    "ItemDecisionStatus",
    "ItemKey",
    "ItemSpec",
    "LedgerDecision",
    "LogAction",
    "LogEntry",
    "MasterDataDirectory",
    "MasterDataRef",
    "MaterialRef",
    "Priority",
    "QuotationHandoff",
    "RequisitionHeader",
    "RequisitionSnapshot",
    "RequisitionStatus",
    "RequisitionStatusView",
    "SLAClock",
    "SlaBudget",
    "SlaStatus",
    "StageSignature",
    "SystemClock",
    "UserDirectory",
]
