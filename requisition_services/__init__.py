"""
requisition_services -- Package init and public API.

Responsibility:
    Transaction-owning orchestration over the requisition kernel.  This
    is the only layer that opens and commits database sessions.

Architecture position:
    Services.  Dependency direction:
        requisition_services -> requisition_kernel  (allowed)
        requisition_services -> requisition_config  (allowed)
        requisition_kernel   -> requisition_services (FORBIDDEN)

Invariants enforced:
    - DI transparency: all kernel service wiring lives in KernelServices.
"""

from requisition_services.kernel_services import KernelServices
from requisition_services.workflow_orchestrator import WorkflowOrchestrator

__all__ = [
    "KernelServices",
    "WorkflowOrchestrator",
]
