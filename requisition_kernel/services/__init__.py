"""Services for the requisition kernel (write side)."""

from requisition_kernel.services.authorization_graph import AuthorizationGraph
from requisition_kernel.services.item_approval_ledger import ItemApprovalLedger
from requisition_kernel.services.requisition_state_machine import (
    RequisitionStateMachine,
)
from requisition_kernel.services.sequence_service import SequenceService

__all__ = [
    "AuthorizationGraph",
    "ItemApprovalLedger",
    "RequisitionStateMachine",
    "SequenceService",
]
