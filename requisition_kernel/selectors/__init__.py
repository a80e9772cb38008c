"""Read-only selectors for the requisition kernel."""

from requisition_kernel.selectors.requisition_selector import RequisitionSelector

__all__ = ["RequisitionSelector"]
