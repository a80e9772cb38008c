"""
RequisitionStateMachine -- owns requisition status and every write to it.

Responsibility:
    Creates requisitions, applies gate decisions (validate, review,
    authorize, management), handles creator edits and resubmission after
    a rejection, and accepts the status writes of the downstream
    quotation / purchase-order / receipt subsystems.  Each operation
    writes the requisition row, the item approval ledger and one
    append-only log entry inside the caller's transaction.

Architecture position:
    Kernel > Services.  Depends on ItemApprovalLedger, AuthorizationGraph,
    SLAClock and SequenceService.  Flushes, never commits: the
    WorkflowOrchestrator owns the transaction.

Invariants enforced:
    - Every gate decision is resolved through ``GATE_RULES``.
    - Checks run in a fixed order before the first write:
      NotFound -> ConcurrencyConflict (expected_version) ->
      IllegalTransition -> Forbidden -> IncompleteDecision ->
      ValidationError.  A failed check leaves no side effects.
    - One rejected item rejects the document.  Items are never released
      independently.
    - Resubmission invalidates the rejecting gate's ledger generation and
      returns to the status held before that gate.
    - The requisition row is loaded ``FOR UPDATE`` and versioned; a lost
      race surfaces as ConcurrencyConflictError.
    - Log entries are numbered per requisition under that row lock, so
      writes to different requisitions share no counter.

Failure modes:
    - Subclasses of ForbiddenError, IncompleteDecisionError,
      ValidationError, IllegalTransitionError, ConcurrencyConflictError
      and NotFoundError (see ``requisition_kernel.exceptions``).
"""

from __future__ import annotations

from collections import Counter
from contextlib import contextmanager
from datetime import datetime
from decimal import Decimal
from typing import Iterator, Sequence
from uuid import UUID, uuid4

from sqlalchemy import func, select
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from requisition_kernel.domain.clock import Clock, SystemClock
from requisition_kernel.domain.directory import (
    MasterDataDirectory,
    MaterialRef,
    UserDirectory,
)
from requisition_kernel.domain.item_approval import LedgerDecision
from requisition_kernel.domain.requisition import (
    APPROVED_ALL_COMMENT,
    GATE_RULES,
    REJECTION_GATES,
    REJECTION_STATUSES,
    RESUBMITTED_COMMENT,
    AuthorizationType,
    Gate,
    GateOutcome,
    GateResult,
    GateRule,
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
    WorkflowRoles,
    aggregate_outcome,
    approve_target,
    awaited_gate,
    consolidate_rejection_comments,
    downstream_allowed,
    initial_status,
    resubmission_status,
)
from requisition_kernel.domain.sla import SLAClock
from requisition_kernel.exceptions import (
    ConcurrencyConflictError,
    DownstreamTransitionError,
    DuplicateItemDecisionError,
    DuplicateItemReferenceError,
    EmptyRequisitionError,
    GateNotApplicableError,
    GateNotAuthorizedError,
    IncompleteDecisionError,
    InvalidQuantityError,
    MasterDataNotFoundError,
    MaterialNotFoundError,
    MissingRejectionCommentError,
    NotCreatorError,
    NotEditableError,
    RequisitionNotFoundError,
    UnknownItemDecisionError,
    UnknownItemReferenceError,
    UserNotFoundError,
)
from requisition_kernel.logging_config import get_logger
from requisition_kernel.models.requisition import (
    RequisitionItemModel,
    RequisitionModel,
)
from requisition_kernel.models.requisition_log import RequisitionLogModel
from requisition_kernel.services.authorization_graph import AuthorizationGraph
from requisition_kernel.services.base import BaseService
from requisition_kernel.services.item_approval_ledger import ItemApprovalLedger
from requisition_kernel.services.sequence_service import SequenceService

logger = get_logger("services.requisition_state_machine")

DEFAULT_NUMBER_FORMAT = "REQ-{seq:03d}"


class RequisitionStateMachine(BaseService):
    """
    Requisition lifecycle writes.

    Contract:
        Every public mutating method loads the requisition under a row lock,
        validates completely, then writes.  The returned values are frozen
        DTOs; ORM objects never leave the service.

    Non-goals:
        - Does NOT commit.  Does NOT retry conflicts (the orchestrator does).
        - Does NOT notify the quotation subsystem (the orchestrator does,
          after commit).
    """

    def __init__(
        self,
        session: Session,
        *,
        ledger: ItemApprovalLedger,
        graph: AuthorizationGraph,
        sla_clock: SLAClock,
        users: UserDirectory,
        master_data: MasterDataDirectory,
        roles: WorkflowRoles | None = None,
        sequences: SequenceService | None = None,
        clock: Clock | None = None,
        number_format: str = DEFAULT_NUMBER_FORMAT,
    ):
        super().__init__(session)
        self._ledger = ledger
        self._graph = graph
        self._sla = sla_clock
        self._users = users
        self._master_data = master_data
        self._roles = roles or WorkflowRoles()
        self._sequences = sequences or SequenceService(session)
        self._clock = clock or SystemClock()
        self._number_format = number_format

    # ------------------------------------------------------------------
    # Creation and creator edits
    # ------------------------------------------------------------------

    def create(
        self,
        creator_id: UUID,
        header: RequisitionHeader,
        items: Sequence[ItemSpec],
    ) -> RequisitionSnapshot:
        """
        Create a requisition.

        Postconditions:
            - Status is ``pendiente_validacion`` when the header carries a
              work reference, else ``pendiente``.
            - Items are numbered 1..n in the order given.
            - The SLA deadline of the awaited gate is stamped.
            - One ``crear`` log entry exists.
        """
        if not self._users.exists(creator_id):
            raise UserNotFoundError(str(creator_id))
        self._check_header(header)
        self._check_items(None, items)

        now = self._clock.now()
        number = self._number_format.format(
            seq=self._sequences.next_value(SequenceService.REQUISITION_NUMBER),
        )
        status = initial_status(header.has_work_reference)
        requisition_id = uuid4()

        model = RequisitionModel(
            requisition_id=requisition_id,
            requisition_number=number,
            creator_id=creator_id,
            status=status.value,
            created_at=now,
            updated_at=now,
        )
        self._apply_header(model, header)
        self._stamp_sla(model, now)
        for index, spec in enumerate(items, start=1):
            model.items.append(self._new_item(requisition_id, index, spec))

        self.session.add(model)
        self.session.flush()
        self._append_log(model, LogAction.CREAR, None, status, creator_id, "", now)

        logger.info(
            "requisition_created",
            extra={
                "requisition_id": str(requisition_id),
                "requisition_number": number,
                "status": status.value,
                "items": len(items),
                "priority": model.priority,
            },
        )
        return model.to_dto()

    def submit_for_validation(
        self,
        requisition_id: UUID,
        actor_id: UUID,
        expected_version: int | None = None,
    ) -> RequisitionSnapshot:
        """Creator (re)sends a requisition with a work reference to validation."""
        model = self._load(requisition_id)
        self._check_version(model, expected_version)
        status = RequisitionStatus(model.status)
        if status != RequisitionStatus.PENDIENTE_VALIDACION:
            raise NotEditableError(str(requisition_id), status.value, "submit for validation")
        self._require_creator(model, actor_id, "submit for validation")

        now = self._clock.now()
        with self._version_guard(model):
            self._stamp_sla(model, now)
            model.updated_at = now
            self.session.flush()
            self._append_log(
                model, LogAction.ENVIAR_VALIDACION, status, status, actor_id, "", now,
            )

        logger.info(
            "requisition_submitted_for_validation",
            extra={"requisition_id": str(requisition_id)},
        )
        return model.to_dto()

    def start_review(
        self,
        requisition_id: UUID,
        actor_id: UUID,
        expected_version: int | None = None,
    ) -> RequisitionSnapshot:
        """A reviewer picks up a ``pendiente`` requisition (-> ``en_revision``)."""
        model = self._load(requisition_id)
        self._check_version(model, expected_version)
        status = RequisitionStatus(model.status)
        if status != RequisitionStatus.PENDIENTE:
            raise GateNotApplicableError(str(requisition_id), Gate.REVIEW.value, status.value)
        if not self._graph.can_act(actor_id, model.creator_id, AuthorizationType.REVISION):
            raise GateNotAuthorizedError(str(requisition_id), Gate.REVIEW.value, str(actor_id))

        now = self._clock.now()
        new_status = RequisitionStatus.EN_REVISION
        with self._version_guard(model):
            model.status = new_status.value
            model.updated_at = now
            self.session.flush()
            self._append_log(
                model, LogAction.INICIAR_REVISION, status, new_status, actor_id, "", now,
            )

        logger.info(
            "requisition_review_started",
            extra={"requisition_id": str(requisition_id), "reviewer_id": str(actor_id)},
        )
        return model.to_dto()

    def update_pending(
        self,
        requisition_id: UUID,
        actor_id: UUID,
        items: Sequence[ItemSpec],
        header: RequisitionHeader | None = None,
        expected_version: int | None = None,
    ) -> RequisitionSnapshot:
        """Creator edits a ``pendiente`` requisition in place; status unchanged."""
        model = self._load(requisition_id)
        self._check_version(model, expected_version)
        status = RequisitionStatus(model.status)
        if status != RequisitionStatus.PENDIENTE:
            raise NotEditableError(str(requisition_id), status.value, "edit")
        self._require_creator(model, actor_id, "edit")
        if header is not None:
            self._check_header(header)
        self._check_items(model, items)

        now = self._clock.now()
        with self._version_guard(model):
            self._replace_items(model, items)
            if header is not None:
                self._apply_header(model, header)
            model.updated_at = now
            self.session.flush()
            self._append_log(model, LogAction.EDITAR, status, status, actor_id, "", now)

        logger.info(
            "requisition_updated",
            extra={"requisition_id": str(requisition_id), "items": len(items)},
        )
        return model.to_dto()

    def edit_and_resubmit(
        self,
        requisition_id: UUID,
        actor_id: UUID,
        items: Sequence[ItemSpec],
        header: RequisitionHeader | None = None,
        expected_version: int | None = None,
    ) -> RequisitionSnapshot:
        """
        Creator fixes a rejected requisition and sends it back.

        Postconditions:
            - Every ItemApproval of the rejecting gate is invalid.  Earlier
              gates keep their valid generations.
            - Status is the one held before the rejecting gate.
            - A fresh SLA deadline is stamped and a ``reenviar`` entry logged.
        """
        model = self._load(requisition_id)
        self._check_version(model, expected_version)
        status = RequisitionStatus(model.status)
        if status not in REJECTION_STATUSES:
            raise NotEditableError(str(requisition_id), status.value, "resubmit")
        self._require_creator(model, actor_id, "resubmit")
        if header is not None:
            self._check_header(header)
        self._check_items(model, items)

        rejecting_gate = REJECTION_GATES[status]
        before = (
            RequisitionStatus(model.status_before_rejection)
            if model.status_before_rejection else None
        )
        new_status = resubmission_status(status, before)
        now = self._clock.now()

        with self._version_guard(model):
            invalidated = self._ledger.invalidate(requisition_id, rejecting_gate)
            self._replace_items(model, items)
            if header is not None:
                self._apply_header(model, header)
            model.status = new_status.value
            model.status_before_rejection = None
            model.updated_at = now
            self._stamp_sla(model, now)
            self.session.flush()
            self._append_log(
                model, LogAction.REENVIAR, status, new_status, actor_id,
                RESUBMITTED_COMMENT, now,
            )

        logger.info(
            "requisition_resubmitted",
            extra={
                "requisition_id": str(requisition_id),
                "from_status": status.value,
                "to_status": new_status.value,
                "rejecting_gate": rejecting_gate.value,
                "invalidated_decisions": invalidated,
            },
        )
        return model.to_dto()

    # ------------------------------------------------------------------
    # Gate decisions
    # ------------------------------------------------------------------

    def apply_gate_decision(
        self,
        requisition_id: UUID,
        gate: Gate,
        actor_id: UUID,
        decisions: Sequence[ItemDecision],
        comments: str | None = None,
        expected_version: int | None = None,
    ) -> GateResult:
        """
        Apply one item-by-item decision round at ``gate``.

        Preconditions:
            - Exactly one decision per current item.
            - Rejected items carry non-empty comments.

        Postconditions (approve):
            - One approved ItemApproval per item at this gate.
            - Status moves to the gate's approve target; the next gate's
              SLA deadline is stamped (cleared if no gate awaits).
        Postconditions (reject):
            - One ItemApproval per item with its own status.
            - Status moves to the gate's rejection status; SLA cleared.
            - The log comment lists every rejected item with its code.
        """
        model = self._load(requisition_id)
        self._check_version(model, expected_version)

        rule = GATE_RULES[gate]
        previous = RequisitionStatus(model.status)
        if previous not in rule.from_statuses:
            raise GateNotApplicableError(str(requisition_id), gate.value, previous.value)
        if not self._is_authorized(rule, actor_id, model.creator_id):
            raise GateNotAuthorizedError(str(requisition_id), gate.value, str(actor_id))

        items_by_number = {item.item_number: item for item in model.items}
        self._check_decision_coverage(requisition_id, gate, items_by_number, decisions)
        material_codes = self._check_rejection_comments(items_by_number, decisions)

        outcome = aggregate_outcome(decisions)
        decision_by_number = {d.item_number: d for d in decisions}
        ledger_decisions = [
            LedgerDecision(
                item_number=number,
                material_id=item.material_id,
                quantity=item.quantity,
                status=decision_by_number[number].status,
                comments=decision_by_number[number].comments,
                observation=item.observation,
            )
            for number, item in sorted(items_by_number.items())
        ]

        if outcome == GateOutcome.APPROVE:
            new_status = approve_target(rule, self._creator_has_authorizer(rule, model))
            log_comments = (comments or "").strip() or APPROVED_ALL_COMMENT
        else:
            new_status = rule.reject_status
            rejected = [
                (d.item_number, material_codes[d.item_number], d.comments)
                for d in sorted(decisions, key=lambda d: d.item_number)
                if d.is_rejected
            ]
            log_comments = consolidate_rejection_comments(rejected)
            if comments and comments.strip():
                log_comments = f"{log_comments}\n{comments.strip()}"

        now = self._clock.now()
        with self._version_guard(model):
            self._ledger.record_decisions(requisition_id, gate, ledger_decisions, actor_id)
            model.status = new_status.value
            model.updated_at = now
            if outcome == GateOutcome.REJECT:
                model.status_before_rejection = previous.value
                model.sla_deadline = None
            else:
                model.status_before_rejection = None
                self._stamp_sla(model, now)
            self.session.flush()
            entry = self._append_log(
                model, rule.action_for(outcome, new_status), previous, new_status, actor_id,
                log_comments, now,
            )

        logger.info(
            "gate_decision_applied",
            extra={
                "requisition_id": str(requisition_id),
                "gate": gate.value,
                "outcome": outcome.value,
                "from_status": previous.value,
                "to_status": new_status.value,
                "items": len(ledger_decisions),
            },
        )
        return GateResult(
            requisition_id=requisition_id,
            gate=gate,
            outcome=outcome,
            previous_status=previous,
            new_status=new_status,
            log_entry=entry,
            sla_deadline=model.sla_deadline,
            rejected_items=tuple(
                d.item_number for d in ledger_decisions
                if d.status == ItemDecisionStatus.REJECTED
            ),
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
        """Accept a status write from quotation / purchase orders / receipts."""
        model = self._load(requisition_id)
        self._check_version(model, expected_version)
        previous = RequisitionStatus(model.status)
        if not downstream_allowed(previous, new_status):
            raise DownstreamTransitionError(
                str(requisition_id), previous.value, new_status.value,
            )

        now = self._clock.now()
        with self._version_guard(model):
            model.status = new_status.value
            model.updated_at = now
            model.sla_deadline = None
            self.session.flush()
            self._append_log(
                model, LogAction.ACTUALIZAR_ESTADO, previous, new_status, actor_id,
                (comments or "").strip(), now,
            )

        logger.info(
            "downstream_status_recorded",
            extra={
                "requisition_id": str(requisition_id),
                "from_status": previous.value,
                "to_status": new_status.value,
            },
        )
        return model.to_dto()

    # ------------------------------------------------------------------
    # Reads used by the orchestrator inside its transaction
    # ------------------------------------------------------------------

    def get(self, requisition_id: UUID) -> RequisitionSnapshot:
        return self._load(requisition_id, lock=False).to_dto()

    def status_view(self, requisition_id: UUID) -> RequisitionStatusView:
        """Status plus SLA flags derived at the current instant."""
        model = self._load(requisition_id, lock=False)
        sla = self._sla.status(model.sla_deadline, self._clock.now())
        return RequisitionStatusView(
            requisition_id=model.requisition_id,
            status=RequisitionStatus(model.status),
            sla_deadline=model.sla_deadline,
            is_overdue=sla.is_overdue,
            days_overdue=sla.days_overdue,
            days_remaining=sla.days_remaining,
        )

    # ------------------------------------------------------------------
    # Checks (no side effects)
    # ------------------------------------------------------------------

    def _load(self, requisition_id: UUID, lock: bool = True) -> RequisitionModel:
        stmt = select(RequisitionModel).where(
            RequisitionModel.requisition_id == requisition_id,
        )
        if lock:
            stmt = stmt.with_for_update()
        model = self.session.execute(stmt).scalar_one_or_none()
        if model is None:
            raise RequisitionNotFoundError(str(requisition_id))
        return model

    def _check_version(self, model: RequisitionModel, expected_version: int | None) -> None:
        if expected_version is not None and model.version != expected_version:
            logger.warning(
                "requisition_version_mismatch",
                extra={
                    "requisition_id": str(model.requisition_id),
                    "expected_version": expected_version,
                    "actual_version": model.version,
                },
            )
            raise ConcurrencyConflictError(
                str(model.requisition_id), expected_version, model.version,
            )

    def _require_creator(self, model: RequisitionModel, actor_id: UUID, operation: str) -> None:
        if model.creator_id != actor_id:
            raise NotCreatorError(str(model.requisition_id), str(actor_id), operation)

    def _is_authorized(self, rule: GateRule, actor_id: UUID, creator_id: UUID) -> bool:
        if rule.gate == Gate.VALIDATE:
            return self._users.has_role(actor_id, self._roles.validator)
        if rule.gate == Gate.MANAGEMENT and self._users.has_role(
            actor_id, self._roles.management,
        ):
            return True
        return self._graph.can_act(actor_id, creator_id, rule.authorization_type)

    def _creator_has_authorizer(self, rule: GateRule, model: RequisitionModel) -> bool:
        if rule.routed_approve_status is None:
            return False
        return bool(
            self._graph.authorizers_for(model.creator_id, AuthorizationType.AUTORIZACION)
        )

    def _check_decision_coverage(
        self,
        requisition_id: UUID,
        gate: Gate,
        items_by_number: dict[int, RequisitionItemModel],
        decisions: Sequence[ItemDecision],
    ) -> None:
        counts = Counter(d.item_number for d in decisions)
        missing = sorted(set(items_by_number) - set(counts))
        if missing:
            raise IncompleteDecisionError(str(requisition_id), gate.value, missing)
        for number, count in sorted(counts.items()):
            if number not in items_by_number:
                raise UnknownItemDecisionError(str(requisition_id), number)
            if count > 1:
                raise DuplicateItemDecisionError(number)

    def _check_rejection_comments(
        self,
        items_by_number: dict[int, RequisitionItemModel],
        decisions: Sequence[ItemDecision],
    ) -> dict[int, str]:
        """Validate rejected items have comments; return their material codes."""
        codes: dict[int, str] = {}
        for decision in sorted(decisions, key=lambda d: d.item_number):
            if not decision.is_rejected:
                continue
            material = self._resolve_material(items_by_number[decision.item_number].material_id)
            if not decision.comments.strip():
                raise MissingRejectionCommentError(decision.item_number, material.code)
            codes[decision.item_number] = material.code
        return codes

    def _check_header(self, header: RequisitionHeader) -> None:
        if self._master_data.resolve_company(header.company_id) is None:
            raise MasterDataNotFoundError("company", header.company_id)
        if header.project_id is not None and (
            self._master_data.resolve_project(header.project_id) is None
        ):
            raise MasterDataNotFoundError("project", header.project_id)
        if header.operation_center_id is not None and (
            self._master_data.resolve_operation_center(header.operation_center_id) is None
        ):
            raise MasterDataNotFoundError("operation_center", header.operation_center_id)

    def _check_items(
        self,
        model: RequisitionModel | None,
        items: Sequence[ItemSpec],
    ) -> None:
        requisition_id = str(model.requisition_id) if model is not None else None
        for spec in items:
            self._resolve_material(spec.material_id)
        if not items:
            raise EmptyRequisitionError(requisition_id)
        for spec in items:
            quantity = Decimal(spec.quantity)
            if not quantity.is_finite() or quantity <= 0:
                raise InvalidQuantityError(spec.material_id, spec.quantity)

        if model is None:
            return
        existing = {item.item_number for item in model.items}
        seen: set[int] = set()
        for spec in items:
            if spec.item_number is None:
                continue
            if spec.item_number not in existing:
                raise UnknownItemReferenceError(requisition_id, spec.item_number)
            if spec.item_number in seen:
                raise DuplicateItemReferenceError(requisition_id, spec.item_number)
            seen.add(spec.item_number)

    def _resolve_material(self, material_id: int) -> MaterialRef:
        material = self._master_data.resolve_material(material_id)
        if material is None:
            raise MaterialNotFoundError(material_id)
        return material

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    @contextmanager
    def _version_guard(self, model: RequisitionModel) -> Iterator[None]:
        requisition_id = model.requisition_id
        try:
            yield
        except StaleDataError as exc:
            logger.warning(
                "requisition_version_conflict",
                extra={"requisition_id": str(requisition_id)},
            )
            raise ConcurrencyConflictError(str(requisition_id)) from exc

    def _new_item(
        self, requisition_id: UUID, item_number: int, spec: ItemSpec,
    ) -> RequisitionItemModel:
        return RequisitionItemModel(
            requisition_id=requisition_id,
            item_number=item_number,
            material_id=spec.material_id,
            quantity=Decimal(spec.quantity),
            observation=spec.observation,
        )

    def _replace_items(self, model: RequisitionModel, items: Sequence[ItemSpec]) -> None:
        """Keep numbered items (edited in place), drop omitted ones, append new ones."""
        kept = {spec.item_number: spec for spec in items if spec.item_number is not None}

        removed = [item for item in model.items if item.item_number not in kept]
        for item in removed:
            model.items.remove(item)
        if removed:
            # Deletes must reach the database before a freed number is reused
            self.session.flush()

        for item in model.items:
            spec = kept[item.item_number]
            item.material_id = spec.material_id
            item.quantity = Decimal(spec.quantity)
            item.observation = spec.observation

        next_number = max(kept, default=0) + 1
        for spec in items:
            if spec.item_number is None:
                model.items.append(
                    self._new_item(model.requisition_id, next_number, spec)
                )
                next_number += 1

    def _apply_header(self, model: RequisitionModel, header: RequisitionHeader) -> None:
        model.company_id = header.company_id
        model.project_id = header.project_id
        model.operation_center_id = header.operation_center_id
        model.project_code_id = header.project_code_id
        model.obra = header.obra
        model.codigo_obra = header.codigo_obra
        model.priority = header.priority.value

    def _stamp_sla(self, model: RequisitionModel, now: datetime) -> None:
        gate = awaited_gate(RequisitionStatus(model.status))
        if gate is None:
            model.sla_deadline = None
            return
        model.sla_deadline = self._sla.deadline(now, gate, Priority(model.priority))

    def _next_log_sequence(self, model: RequisitionModel) -> int:
        # Caller holds the requisition row lock; numbering is per requisition.
        current = self.session.execute(
            select(func.max(RequisitionLogModel.sequence))
            .where(RequisitionLogModel.requisition_id == model.requisition_id)
        ).scalar_one()
        return (current or 0) + 1

    def _append_log(
        self,
        model: RequisitionModel,
        action: LogAction,
        previous: RequisitionStatus | None,
        new_status: RequisitionStatus,
        actor_id: UUID,
        comments: str,
        now: datetime,
    ) -> LogEntry:
        entry = RequisitionLogModel(
            log_id=uuid4(),
            requisition_id=model.requisition_id,
            sequence=self._next_log_sequence(model),
            action=action.value,
            previous_status=previous.value if previous is not None else None,
            new_status=new_status.value,
            actor_id=actor_id,
            comments=comments,
            created_at=now,
        )
        self.session.add(entry)
        self.session.flush()
        return entry.to_dto()
