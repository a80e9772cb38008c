"""ORM models for the requisition kernel."""

from requisition_kernel.models.authorization_edge import AuthorizationEdgeModel
from requisition_kernel.models.item_approval import ItemApprovalModel
from requisition_kernel.models.requisition import (
    RequisitionItemModel,
    RequisitionModel,
)
from requisition_kernel.models.requisition_log import RequisitionLogModel

__all__ = [
    "AuthorizationEdgeModel",
    "ItemApprovalModel",
    "RequisitionItemModel",
    "RequisitionLogModel",
    "RequisitionModel",
]
