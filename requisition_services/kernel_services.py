"""
requisition_services.kernel_services -- per-transaction service container.

Responsibility:
    Creates every kernel service exactly once for one Session and wires
    them together.  No kernel service creates another service internally.

Architecture position:
    Services.  Built by WorkflowOrchestrator inside each transaction;
    also usable directly by callers that own their own Session.

Invariants enforced:
    - Single-instance lifecycle: one SequenceService, ledger, graph and
      state machine per Session.
    - All services share the same Session and Clock.

Non-goals:
    - Does NOT manage transaction boundaries.
"""

from __future__ import annotations

from sqlalchemy.orm import Session

from requisition_kernel.domain.clock import Clock, SystemClock
from requisition_kernel.domain.directory import MasterDataDirectory, UserDirectory
from requisition_kernel.domain.requisition import WorkflowRoles
from requisition_kernel.domain.sla import SLAClock
from requisition_kernel.selectors.requisition_selector import RequisitionSelector
from requisition_kernel.services.authorization_graph import AuthorizationGraph
from requisition_kernel.services.item_approval_ledger import ItemApprovalLedger
from requisition_kernel.services.requisition_state_machine import (
    DEFAULT_NUMBER_FORMAT,
    RequisitionStateMachine,
)
from requisition_kernel.services.sequence_service import SequenceService


class KernelServices:
    """Kernel services bound to one Session.

    Usage:
        services = KernelServices(session, sla_clock=..., users=..., master_data=...)
        services.state_machine.create(...)
        services.selector.logs(requisition_id)
    """

    def __init__(
        self,
        session: Session,
        *,
        sla_clock: SLAClock,
        users: UserDirectory,
        master_data: MasterDataDirectory,
        roles: WorkflowRoles | None = None,
        clock: Clock | None = None,
        number_format: str = DEFAULT_NUMBER_FORMAT,
    ) -> None:
        self.session = session
        self.clock = clock or SystemClock()

        # Foundational services (no kernel dependencies)
        self.sequences = SequenceService(session)
        self.ledger = ItemApprovalLedger(session, self.clock)
        self.graph = AuthorizationGraph(session, users, self.clock)

        # Lifecycle (depends on all of the above)
        self.state_machine = RequisitionStateMachine(
            session,
            ledger=self.ledger,
            graph=self.graph,
            sla_clock=sla_clock,
            users=users,
            master_data=master_data,
            roles=roles,
            sequences=self.sequences,
            clock=self.clock,
            number_format=number_format,
        )

        # Read side
        self.selector = RequisitionSelector(session)
