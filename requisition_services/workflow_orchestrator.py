"""
WorkflowOrchestrator -- the public entry point of the requisition workflow.

Responsibility:
    Runs every workflow operation in its own transaction: opens a Session,
    builds the kernel services for it, delegates to the state machine,
    ledger, authorization graph or selector, commits on success and rolls
    back on failure.  Publishes the quotation handoff after a requisition
    is committed in ``aprobada_gerencia``.

Architecture position:
    Services layer.  Consumed by the API layer.  Depends on
    requisition_kernel (services, selectors, domain) and on
    requisition_config bridges for the SLA clock and role names.

Invariants enforced:
    - One transaction per operation; any error rolls back everything.
    - A ConcurrencyConflictError raised by a lost race is retried with a
      fresh transaction (``concurrency.conflict_retries`` times).  A
      caller-supplied stale ``expected_version`` is never retried.
    - The handoff is published only after commit.

Failure modes:
    - Every RequisitionKernelError surfaces unchanged after rollback.
    - A handoff failure surfaces after the decision is already committed.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from contextlib import contextmanager
from typing import Iterator, TypeVar
from uuid import UUID, uuid4

from sqlalchemy.orm import Session

from requisition_config.bridges import build_roles, build_sla_clock
from requisition_config.schema import WorkflowConfiguration
from requisition_kernel.domain.authorization import (
    AuthorizationEdge,
    BulkEdgeResult,
    HierarchyEntry,
)
from requisition_kernel.domain.clock import Clock, SystemClock
from requisition_kernel.domain.directory import (
    MasterDataDirectory,
    QuotationHandoff,
    UserDirectory,
)
from requisition_kernel.domain.item_approval import ItemApprovalRecord
from requisition_kernel.domain.requisition import (
    REJECTION_GATES,
    AuthorizationType,
    Gate,
    GateResult,
    ItemDecision,
    ItemSpec,
    LogEntry,
    RequisitionHeader,
    RequisitionSnapshot,
    RequisitionStatus,
    RequisitionStatusView,
    StageSignature,
)
from requisition_kernel.exceptions import (
    ConcurrencyConflictError,
    RequisitionKernelError,
    RequisitionNotFoundError,
)
from requisition_kernel.logging_config import LogContext, get_logger
from requisition_services.kernel_services import KernelServices

logger = get_logger("services.workflow_orchestrator")

T = TypeVar("T")


class WorkflowOrchestrator:
    """
    Transaction-owning facade over the requisition kernel.

    Usage:
        orchestrator = WorkflowOrchestrator(
            get_session_factory(), get_active_config(), users, master_data,
        )
        snapshot = orchestrator.create_requisition(creator_id, header, items)
        result = orchestrator.validate(snapshot.requisition_id, validator_id, decisions)
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        config: WorkflowConfiguration,
        users: UserDirectory,
        master_data: MasterDataDirectory,
        clock: Clock | None = None,
        handoff: QuotationHandoff | None = None,
    ):
        self._session_factory = session_factory
        self._config = config
        self._users = users
        self._master_data = master_data
        self._clock = clock or SystemClock()
        self._handoff = handoff
        self._sla_clock = build_sla_clock(config)
        self._roles = build_roles(config)
        self._conflict_retries = config.concurrency.conflict_retries

    # ------------------------------------------------------------------
    # Transaction plumbing
    # ------------------------------------------------------------------

    def _services(self, session: Session) -> KernelServices:
        return KernelServices(
            session,
            sla_clock=self._sla_clock,
            users=self._users,
            master_data=self._master_data,
            roles=self._roles,
            clock=self._clock,
            number_format=self._config.numbering.requisition_format,
        )

    @contextmanager
    def _transaction(self) -> Iterator[KernelServices]:
        session = self._session_factory()
        try:
            yield self._services(session)
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def _run(
        self,
        operation: str,
        work: Callable[[KernelServices], T],
        *,
        requisition_id: UUID | None = None,
        actor_id: UUID | None = None,
        gate: Gate | None = None,
    ) -> T:
        """Run ``work`` in a fresh transaction, retrying lost races."""
        correlation_id = LogContext.get_all().get("correlation_id") or str(uuid4())
        with LogContext.bind(
            correlation_id=correlation_id,
            operation=operation,
            requisition_id=str(requisition_id) if requisition_id else None,
            actor_id=str(actor_id) if actor_id else None,
            gate=gate.value if gate else None,
        ):
            attempt = 0
            while True:
                attempt += 1
                try:
                    with self._transaction() as services:
                        return work(services)
                except ConcurrencyConflictError as exc:
                    # A stale caller version carries the observed version; a race does not
                    race = exc.actual_version is None
                    if not race or attempt > self._conflict_retries:
                        logger.warning(
                            "requisition_operation_conflict",
                            extra={"attempt": attempt, "race": race},
                        )
                        raise
                    logger.info(
                        "requisition_operation_retry",
                        extra={"attempt": attempt},
                    )
                except RequisitionKernelError as exc:
                    logger.info(
                        "requisition_operation_rejected",
                        extra={"error_code": exc.code, "error_type": type(exc).__name__},
                    )
                    raise

    # ------------------------------------------------------------------
    # Creation and creator edits
    # ------------------------------------------------------------------

    def create_requisition(
        self,
        creator_id: UUID,
        header: RequisitionHeader,
        items: Sequence[ItemSpec],
    ) -> RequisitionSnapshot:
        return self._run(
            "create_requisition",
            lambda s: s.state_machine.create(creator_id, header, items),
            actor_id=creator_id,
        )

    def submit_for_validation(
        self,
        requisition_id: UUID,
        actor_id: UUID,
        expected_version: int | None = None,
    ) -> RequisitionSnapshot:
        return self._run(
            "submit_for_validation",
            lambda s: s.state_machine.submit_for_validation(
                requisition_id, actor_id, expected_version,
            ),
            requisition_id=requisition_id,
            actor_id=actor_id,
            gate=Gate.VALIDATE,
        )

    def update_requisition(
        self,
        requisition_id: UUID,
        actor_id: UUID,
        updated_items: Sequence[ItemSpec],
        updated_header: RequisitionHeader | None = None,
        expected_version: int | None = None,
    ) -> RequisitionSnapshot:
        """Creator edits a ``pendiente`` requisition without changing its status."""
        return self._run(
            "update_requisition",
            lambda s: s.state_machine.update_pending(
                requisition_id, actor_id, updated_items, updated_header, expected_version,
            ),
            requisition_id=requisition_id,
            actor_id=actor_id,
        )

    def edit_and_resubmit(
        self,
        requisition_id: UUID,
        actor_id: UUID,
        updated_items: Sequence[ItemSpec],
        updated_header: RequisitionHeader | None = None,
        expected_version: int | None = None,
    ) -> RequisitionSnapshot:
        """
        Creator fixes a rejected requisition and sends it back to the gate
        that rejected it.  Returns the snapshot in its new status.
        """
        return self._run(
            "edit_and_resubmit",
            lambda s: s.state_machine.edit_and_resubmit(
                requisition_id, actor_id, updated_items, updated_header, expected_version,
            ),
            requisition_id=requisition_id,
            actor_id=actor_id,
        )

    # ------------------------------------------------------------------
    # Gates
    # ------------------------------------------------------------------

    def start_review(
        self,
        requisition_id: UUID,
        actor_id: UUID,
        expected_version: int | None = None,
    ) -> RequisitionSnapshot:
        return self._run(
            "start_review",
            lambda s: s.state_machine.start_review(requisition_id, actor_id, expected_version),
            requisition_id=requisition_id,
            actor_id=actor_id,
            gate=Gate.REVIEW,
        )

    def gate_decision(
        self,
        requisition_id: UUID,
        gate: Gate,
        actor_id: UUID,
        item_decisions: Sequence[ItemDecision],
        comments: str | None = None,
        expected_version: int | None = None,
    ) -> GateResult:
        """
        Apply one decision round at ``gate`` and commit it.

        When the round moves the requisition to ``aprobada_gerencia`` the
        committed snapshot is handed to the quotation subsystem.
        """
        gate = Gate(gate)

        def work(services: KernelServices) -> tuple[GateResult, RequisitionSnapshot]:
            result = services.state_machine.apply_gate_decision(
                requisition_id, gate, actor_id, item_decisions, comments, expected_version,
            )
            return result, services.state_machine.get(requisition_id)

        result, snapshot = self._run(
            "gate_decision",
            work,
            requisition_id=requisition_id,
            actor_id=actor_id,
            gate=gate,
        )
        if snapshot.ready_for_quotation:
            self._publish_ready(snapshot)
        return result

    def validate(
        self,
        requisition_id: UUID,
        actor_id: UUID,
        item_decisions: Sequence[ItemDecision],
        comments: str | None = None,
        expected_version: int | None = None,
    ) -> GateResult:
        return self.gate_decision(
            requisition_id, Gate.VALIDATE, actor_id, item_decisions, comments, expected_version,
        )

    def review(
        self,
        requisition_id: UUID,
        actor_id: UUID,
        item_decisions: Sequence[ItemDecision],
        comments: str | None = None,
        expected_version: int | None = None,
    ) -> GateResult:
        return self.gate_decision(
            requisition_id, Gate.REVIEW, actor_id, item_decisions, comments, expected_version,
        )

    def authorize(
        self,
        requisition_id: UUID,
        actor_id: UUID,
        item_decisions: Sequence[ItemDecision],
        comments: str | None = None,
        expected_version: int | None = None,
    ) -> GateResult:
        return self.gate_decision(
            requisition_id, Gate.AUTHORIZE, actor_id, item_decisions, comments, expected_version,
        )

    def approve_management(
        self,
        requisition_id: UUID,
        actor_id: UUID,
        item_decisions: Sequence[ItemDecision],
        comments: str | None = None,
        expected_version: int | None = None,
    ) -> GateResult:
        return self.gate_decision(
            requisition_id, Gate.MANAGEMENT, actor_id, item_decisions, comments, expected_version,
        )

    def _publish_ready(self, snapshot: RequisitionSnapshot) -> None:
        if self._handoff is None:
            return
        self._handoff.requisition_ready(snapshot)
        logger.info(
            "quotation_handoff_published",
            extra={
                "requisition_id": str(snapshot.requisition_id),
                "requisition_number": snapshot.requisition_number,
            },
        )

    # ------------------------------------------------------------------
    # Downstream subsystems
    # ------------------------------------------------------------------

    def record_downstream_status(
        self,
        requisition_id: UUID,
        new_status: RequisitionStatus,
        actor_id: UUID,
        comments: str | None = None,
        expected_version: int | None = None,
    ) -> RequisitionSnapshot:
        return self._run(
            "record_downstream_status",
            lambda s: s.state_machine.record_downstream_status(
                requisition_id, RequisitionStatus(new_status), actor_id, comments,
                expected_version,
            ),
            requisition_id=requisition_id,
            actor_id=actor_id,
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_status(self, requisition_id: UUID) -> RequisitionStatusView:
        return self._run(
            "get_status",
            lambda s: s.state_machine.status_view(requisition_id),
            requisition_id=requisition_id,
        )

    def get_requisition(self, requisition_id: UUID) -> RequisitionSnapshot:
        return self._run(
            "get_requisition",
            lambda s: s.state_machine.get(requisition_id),
            requisition_id=requisition_id,
        )

    def get_requisition_by_number(self, requisition_number: str) -> RequisitionSnapshot:
        def work(services: KernelServices) -> RequisitionSnapshot:
            snapshot = services.selector.get_by_number(requisition_number)
            if snapshot is None:
                raise RequisitionNotFoundError(requisition_number)
            return snapshot

        return self._run("get_requisition_by_number", work)

    def item_approvals(
        self,
        requisition_id: UUID,
        gate: Gate | None = None,
        include_invalid: bool = False,
    ) -> list[ItemApprovalRecord]:
        """Per-item decisions, oldest first; valid rows only unless asked."""

        def work(services: KernelServices) -> list[ItemApprovalRecord]:
            services.state_machine.get(requisition_id)
            return services.ledger.history(requisition_id, gate, include_invalid)

        return self._run("item_approvals", work, requisition_id=requisition_id)

    def last_rejection(self, requisition_id: UUID) -> list[ItemApprovalRecord]:
        """
        Valid decisions of the gate that rejected the requisition, for the
        creator's edit screen.  Empty when the requisition is not rejected.
        """

        def work(services: KernelServices) -> list[ItemApprovalRecord]:
            snapshot = services.state_machine.get(requisition_id)
            gate = REJECTION_GATES.get(snapshot.status)
            if gate is None:
                return []
            latest = services.ledger.latest_valid(requisition_id, gate)
            return [latest[key] for key in sorted(latest)]

        return self._run("last_rejection", work, requisition_id=requisition_id)

    def history(self, requisition_id: UUID) -> list[LogEntry]:
        def work(services: KernelServices) -> list[LogEntry]:
            services.state_machine.get(requisition_id)
            return services.selector.logs(requisition_id)

        return self._run("history", work, requisition_id=requisition_id)

    def signatures(self, requisition_id: UUID) -> list[StageSignature]:
        """Who signed each stage (creation, validation, review, ...)."""

        def work(services: KernelServices) -> list[StageSignature]:
            services.state_machine.get(requisition_id)
            return services.selector.signatures(requisition_id)

        return self._run("signatures", work, requisition_id=requisition_id)

    def my_requisitions(self, actor_id: UUID) -> list[RequisitionSnapshot]:
        return self._run(
            "my_requisitions",
            lambda s: s.selector.by_creator(actor_id),
            actor_id=actor_id,
        )

    def pending_actions(self, actor_id: UUID) -> dict[Gate, list[RequisitionSnapshot]]:
        """
        Requisitions waiting on ``actor_id``, grouped by gate.

        Validation is role based, review and authorization follow the
        actor's delegation edges, and management accepts either.
        """

        def work(services: KernelServices) -> dict[Gate, list[RequisitionSnapshot]]:
            selector = services.selector

            def subordinates(gate_type: AuthorizationType) -> list[UUID]:
                return [
                    edge.subordinate_id
                    for edge in services.graph.subordinates_of(actor_id, gate_type)
                ]

            pending: dict[Gate, list[RequisitionSnapshot]] = {}
            if self._users.has_role(actor_id, self._roles.validator):
                pending[Gate.VALIDATE] = selector.awaiting_gate(Gate.VALIDATE)
            else:
                pending[Gate.VALIDATE] = []
            pending[Gate.REVIEW] = selector.awaiting_gate(
                Gate.REVIEW, subordinates(AuthorizationType.REVISION),
            )
            pending[Gate.AUTHORIZE] = selector.awaiting_gate(
                Gate.AUTHORIZE, subordinates(AuthorizationType.AUTORIZACION),
            )
            if self._users.has_role(actor_id, self._roles.management):
                pending[Gate.MANAGEMENT] = selector.awaiting_gate(Gate.MANAGEMENT)
            else:
                pending[Gate.MANAGEMENT] = selector.awaiting_gate(
                    Gate.MANAGEMENT, subordinates(AuthorizationType.APROBACION),
                )
            return pending

        return self._run("pending_actions", work, actor_id=actor_id)

    # ------------------------------------------------------------------
    # Delegation administration
    # ------------------------------------------------------------------

    def add_authorization_edge(
        self,
        authorizer_id: UUID,
        subordinate_id: UUID,
        gate_type: AuthorizationType,
        level: int = 1,
    ) -> AuthorizationEdge:
        return self._run(
            "add_authorization_edge",
            lambda s: s.graph.add_edge(
                authorizer_id, subordinate_id, AuthorizationType(gate_type), level,
            ),
            actor_id=authorizer_id,
        )

    def remove_authorization_edge(self, authorizer_id: UUID, subordinate_id: UUID) -> bool:
        return self._run(
            "remove_authorization_edge",
            lambda s: s.graph.remove_edge(authorizer_id, subordinate_id),
            actor_id=authorizer_id,
        )

    def add_authorization_edges_bulk(
        self,
        authorizer_id: UUID,
        subordinate_ids: Sequence[UUID],
        gate_type: AuthorizationType,
    ) -> BulkEdgeResult:
        return self._run(
            "add_authorization_edges_bulk",
            lambda s: s.graph.add_edges_bulk(
                authorizer_id, subordinate_ids, AuthorizationType(gate_type),
            ),
            actor_id=authorizer_id,
        )

    def subordinates_of(
        self, authorizer_id: UUID, gate_type: AuthorizationType | None = None,
    ) -> list[AuthorizationEdge]:
        return self._run(
            "subordinates_of",
            lambda s: s.graph.subordinates_of(authorizer_id, gate_type),
            actor_id=authorizer_id,
        )

    def supervisors_of(
        self, subordinate_id: UUID, gate_type: AuthorizationType | None = None,
    ) -> list[AuthorizationEdge]:
        return self._run(
            "supervisors_of",
            lambda s: s.graph.supervisors_of(subordinate_id, gate_type),
        )

    def available_subordinates(self, actor_id: UUID) -> list[UUID]:
        return self._run(
            "available_subordinates",
            lambda s: s.graph.available_subordinates(actor_id),
            actor_id=actor_id,
        )

    def authorization_hierarchy(self) -> list[HierarchyEntry]:
        return self._run("authorization_hierarchy", lambda s: s.graph.hierarchy())
