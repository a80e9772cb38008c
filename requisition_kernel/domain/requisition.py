"""
Requisition domain types (``requisition_kernel.domain.requisition``).

Responsibility
--------------
Pure value objects for the requisition lifecycle.  Defines the closed
status / gate / action enums, the gate transition table that is the single
source of truth for legal gate decisions, the downstream status chain
driven by external subsystems, and the request/result records exchanged
with the state machine.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  No imports
from ``db/``, ``models/``, ``services/``, ``selectors/``, or outer layers.

Invariants enforced
-------------------
* Every gate decision is resolved through ``GATE_RULES``.  A (status, gate)
  pair absent from the table is an illegal transition.
* A gate outcome is ``reject`` if any item is rejected, else ``approve``.
* Each rejection status belongs to exactly one gate (``REJECTION_GATES``),
  which is how resubmission finds the ledger generation to invalidate.
* ``recepcion_completa`` is terminal.  Rejection statuses are editable.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Iterable, Sequence
from uuid import UUID


# =========================================================================
# Closed enums
# =========================================================================


class RequisitionStatus(str, Enum):
    """Requisition lifecycle states."""

    PENDIENTE = "pendiente"
    PENDIENTE_VALIDACION = "pendiente_validacion"
    EN_REVISION = "en_revision"
    APROBADA_REVISOR = "aprobada_revisor"
    PENDIENTE_AUTORIZACION = "pendiente_autorizacion"
    AUTORIZADO = "autorizado"
    APROBADA_GERENCIA = "aprobada_gerencia"
    EN_COTIZACION = "en_cotizacion"
    COTIZADA = "cotizada"
    EN_ORDEN_COMPRA = "en_orden_compra"
    PENDIENTE_RECEPCION = "pendiente_recepcion"
    EN_RECEPCION = "en_recepcion"
    RECEPCION_COMPLETA = "recepcion_completa"
    RECHAZADA_VALIDADOR = "rechazada_validador"
    RECHAZADA_REVISOR = "rechazada_revisor"
    RECHAZADA_AUTORIZADOR = "rechazada_autorizador"
    RECHAZADA_GERENCIA = "rechazada_gerencia"


class Gate(str, Enum):
    """Human approval stages."""

    VALIDATE = "validate"
    REVIEW = "review"
    AUTHORIZE = "authorize"
    MANAGEMENT = "management"


class AuthorizationType(str, Enum):
    """Gate type carried by a delegation edge."""

    REVISION = "revision"
    AUTORIZACION = "autorizacion"
    APROBACION = "aprobacion"


class Priority(str, Enum):
    NORMAL = "normal"
    ALTA = "alta"


class ItemDecisionStatus(str, Enum):
    """Verdict on a single requisition line."""

    APPROVED = "approved"
    REJECTED = "rejected"


class GateOutcome(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"


class LogAction(str, Enum):
    """Tag identifying which operation produced a log entry."""

    CREAR = "crear"
    EDITAR = "editar"
    ENVIAR_VALIDACION = "enviar_validacion"
    VALIDAR_APROBAR = "validar_aprobar"
    RECHAZAR_VALIDACION = "rechazar_validacion"
    INICIAR_REVISION = "iniciar_revision"
    REVISAR_APROBAR = "revisar_aprobar"
    REVISAR_APROBAR_PENDIENTE_AUTORIZACION = "revisar_aprobar_pendiente_autorizacion"
    RECHAZAR_REVISION = "rechazar_revision"
    AUTORIZAR_APROBAR = "autorizar_aprobar"
    RECHAZAR_AUTORIZACION = "rechazar_autorizacion"
    APROBAR_GERENCIA = "aprobar_gerencia"
    RECHAZAR_GERENCIA = "rechazar_gerencia"
    REENVIAR = "reenviar"
    ACTUALIZAR_ESTADO = "actualizar_estado"


# =========================================================================
# Gate transition table
# =========================================================================


@dataclass(frozen=True)
class GateRule:
    """One row of the gate transition table.

    ``authorization_type`` is the edge type an actor needs over the
    creator.  ``None`` means the gate is role-based only (validation).
    ``routed_approve_status`` is the alternative approve target used when
    the creator already has an authorizer assigned (review gate only), and
    ``routed_approve_action`` the log action recorded for it.
    """

    gate: Gate
    from_statuses: frozenset[RequisitionStatus]
    approve_status: RequisitionStatus
    reject_status: RequisitionStatus
    authorization_type: AuthorizationType | None
    approve_action: LogAction
    reject_action: LogAction
    routed_approve_status: RequisitionStatus | None = None
    routed_approve_action: LogAction | None = None

    def action_for(
        self, outcome: GateOutcome, new_status: RequisitionStatus | None = None,
    ) -> LogAction:
        if outcome == GateOutcome.REJECT:
            return self.reject_action
        if (
            self.routed_approve_action is not None
            and new_status == self.routed_approve_status
        ):
            return self.routed_approve_action
        return self.approve_action


GATE_RULES: dict[Gate, GateRule] = {
    Gate.VALIDATE: GateRule(
        gate=Gate.VALIDATE,
        from_statuses=frozenset({RequisitionStatus.PENDIENTE_VALIDACION}),
        approve_status=RequisitionStatus.PENDIENTE,
        reject_status=RequisitionStatus.RECHAZADA_VALIDADOR,
        authorization_type=None,
        approve_action=LogAction.VALIDAR_APROBAR,
        reject_action=LogAction.RECHAZAR_VALIDACION,
    ),
    Gate.REVIEW: GateRule(
        gate=Gate.REVIEW,
        from_statuses=frozenset({
            RequisitionStatus.PENDIENTE,
            RequisitionStatus.EN_REVISION,
        }),
        approve_status=RequisitionStatus.APROBADA_REVISOR,
        reject_status=RequisitionStatus.RECHAZADA_REVISOR,
        authorization_type=AuthorizationType.REVISION,
        approve_action=LogAction.REVISAR_APROBAR,
        reject_action=LogAction.RECHAZAR_REVISION,
        routed_approve_status=RequisitionStatus.PENDIENTE_AUTORIZACION,
        routed_approve_action=LogAction.REVISAR_APROBAR_PENDIENTE_AUTORIZACION,
    ),
    Gate.AUTHORIZE: GateRule(
        gate=Gate.AUTHORIZE,
        from_statuses=frozenset({
            RequisitionStatus.APROBADA_REVISOR,
            RequisitionStatus.PENDIENTE_AUTORIZACION,
        }),
        approve_status=RequisitionStatus.AUTORIZADO,
        reject_status=RequisitionStatus.RECHAZADA_AUTORIZADOR,
        authorization_type=AuthorizationType.AUTORIZACION,
        approve_action=LogAction.AUTORIZAR_APROBAR,
        reject_action=LogAction.RECHAZAR_AUTORIZACION,
    ),
    Gate.MANAGEMENT: GateRule(
        gate=Gate.MANAGEMENT,
        from_statuses=frozenset({RequisitionStatus.AUTORIZADO}),
        approve_status=RequisitionStatus.APROBADA_GERENCIA,
        reject_status=RequisitionStatus.RECHAZADA_GERENCIA,
        authorization_type=AuthorizationType.APROBACION,
        approve_action=LogAction.APROBAR_GERENCIA,
        reject_action=LogAction.RECHAZAR_GERENCIA,
    ),
}

REJECTION_GATES: dict[RequisitionStatus, Gate] = {
    rule.reject_status: rule.gate for rule in GATE_RULES.values()
}

REJECTION_STATUSES: frozenset[RequisitionStatus] = frozenset(REJECTION_GATES)

# Status -> gate the requisition is waiting at (drives SLA and inboxes)
AWAITED_GATES: dict[RequisitionStatus, Gate] = {
    status: rule.gate
    for rule in GATE_RULES.values()
    for status in rule.from_statuses
}

EDITABLE_STATUSES: frozenset[RequisitionStatus] = (
    frozenset({RequisitionStatus.PENDIENTE}) | REJECTION_STATUSES
)

TERMINAL_STATUSES: frozenset[RequisitionStatus] = frozenset({
    RequisitionStatus.RECEPCION_COMPLETA,
})

# Status writes owned by the quotation / purchase-order / receipt subsystems
DOWNSTREAM_TRANSITIONS: dict[RequisitionStatus, frozenset[RequisitionStatus]] = {
    RequisitionStatus.APROBADA_GERENCIA: frozenset({RequisitionStatus.EN_COTIZACION}),
    RequisitionStatus.EN_COTIZACION: frozenset({RequisitionStatus.COTIZADA}),
    RequisitionStatus.COTIZADA: frozenset({RequisitionStatus.EN_ORDEN_COMPRA}),
    RequisitionStatus.EN_ORDEN_COMPRA: frozenset({RequisitionStatus.PENDIENTE_RECEPCION}),
    RequisitionStatus.PENDIENTE_RECEPCION: frozenset({
        RequisitionStatus.EN_RECEPCION,
        RequisitionStatus.RECEPCION_COMPLETA,
    }),
    RequisitionStatus.EN_RECEPCION: frozenset({
        RequisitionStatus.EN_RECEPCION,
        RequisitionStatus.RECEPCION_COMPLETA,
    }),
    RequisitionStatus.RECEPCION_COMPLETA: frozenset(),
}

# Where a resubmitted requisition re-enters a gate when the pre-rejection
# status is unknown
REENTRY_STATUSES: dict[Gate, RequisitionStatus] = {
    Gate.VALIDATE: RequisitionStatus.PENDIENTE_VALIDACION,
    Gate.REVIEW: RequisitionStatus.PENDIENTE,
    Gate.AUTHORIZE: RequisitionStatus.APROBADA_REVISOR,
    Gate.MANAGEMENT: RequisitionStatus.AUTORIZADO,
}

APPROVED_ALL_COMMENT = "Todos los ítems aprobados"
RESUBMITTED_COMMENT = "Requisición editada y reenviada"
REJECTION_HEADER = "Requisición rechazada. Motivos:"


def gate_applies(gate: Gate, status: RequisitionStatus) -> bool:
    """True iff ``gate`` may be decided on a requisition in ``status``."""
    return status in GATE_RULES[gate].from_statuses


def awaited_gate(status: RequisitionStatus) -> Gate | None:
    """Gate the requisition is currently waiting at, if any."""
    return AWAITED_GATES.get(status)


def initial_status(has_work_reference: bool) -> RequisitionStatus:
    if has_work_reference:
        return RequisitionStatus.PENDIENTE_VALIDACION
    return RequisitionStatus.PENDIENTE


def approve_target(rule: GateRule, creator_has_authorizer: bool) -> RequisitionStatus:
    """Resolve the approve status, applying the review-gate routing."""
    if rule.routed_approve_status is not None and creator_has_authorizer:
        return rule.routed_approve_status
    return rule.approve_status


def resubmission_status(
    rejection_status: RequisitionStatus,
    status_before_rejection: RequisitionStatus | None = None,
) -> RequisitionStatus:
    """Status a rejected requisition returns to once edited and resubmitted.

    That is the status it held when it entered the rejecting gate.
    """
    gate = REJECTION_GATES[rejection_status]
    if status_before_rejection is not None and gate_applies(gate, status_before_rejection):
        return status_before_rejection
    return REENTRY_STATUSES[gate]


def downstream_allowed(
    current: RequisitionStatus, target: RequisitionStatus,
) -> bool:
    return target in DOWNSTREAM_TRANSITIONS.get(current, frozenset())


# =========================================================================
# Decisions and aggregation
# =========================================================================


@dataclass(frozen=True)
class ItemDecision:
    """A gate actor's verdict on one item, addressed by item number."""

    item_number: int
    status: ItemDecisionStatus
    comments: str = ""

    def __post_init__(self) -> None:
        # API callers send null for "no comment"
        object.__setattr__(self, "comments", self.comments or "")

    @classmethod
    def approve(cls, item_number: int, comments: str | None = "") -> ItemDecision:
        return cls(item_number, ItemDecisionStatus.APPROVED, comments)

    @classmethod
    def reject(cls, item_number: int, comments: str | None) -> ItemDecision:
        return cls(item_number, ItemDecisionStatus.REJECTED, comments)

    @property
    def is_rejected(self) -> bool:
        return self.status == ItemDecisionStatus.REJECTED


def aggregate_outcome(decisions: Iterable[ItemDecision]) -> GateOutcome:
    """Any rejected item rejects the whole document."""
    if any(d.is_rejected for d in decisions):
        return GateOutcome.REJECT
    return GateOutcome.APPROVE


def consolidate_rejection_comments(
    rejected: Sequence[tuple[int, str, str]],
) -> str:
    """Build the log comment for a rejection.

    ``rejected`` holds ``(item_number, material_code, comments)`` in item
    order.
    """
    lines = [
        f"Ítem {item_number} ({material_code}): {comments.strip()}"
        for item_number, material_code, comments in rejected
    ]
    return "\n".join([REJECTION_HEADER, *lines])


# =========================================================================
# Inputs
# =========================================================================


@dataclass(frozen=True)
class WorkflowRoles:
    """Role names granting gate access without a delegation edge."""

    validator: str = "validador"
    management: str = "gerencia"


@dataclass(frozen=True)
class ItemSpec:
    """An item as supplied on create or edit.

    ``item_number`` is set when editing an existing line and left ``None``
    for a new line, which receives the next free number.
    """

    material_id: int
    quantity: Decimal
    observation: str | None = None
    item_number: int | None = None


@dataclass(frozen=True)
class RequisitionHeader:
    """Header fields of a requisition (master-data references)."""

    company_id: int
    project_id: int | None = None
    operation_center_id: int | None = None
    project_code_id: int | None = None
    obra: str | None = None
    codigo_obra: str | None = None
    priority: Priority = Priority.NORMAL

    @property
    def has_work_reference(self) -> bool:
        return bool((self.obra or "").strip() or (self.codigo_obra or "").strip())


# =========================================================================
# Snapshots and results
# =========================================================================


@dataclass(frozen=True)
class RequisitionItemSnapshot:
    item_number: int
    material_id: int
    quantity: Decimal
    observation: str | None = None


@dataclass(frozen=True)
class RequisitionSnapshot:
    """Immutable view of a requisition after an operation."""

    requisition_id: UUID
    requisition_number: str
    creator_id: UUID
    company_id: int
    status: RequisitionStatus
    priority: Priority
    created_at: datetime
    updated_at: datetime
    version: int
    project_id: int | None = None
    operation_center_id: int | None = None
    project_code_id: int | None = None
    obra: str | None = None
    codigo_obra: str | None = None
    sla_deadline: datetime | None = None
    items: tuple[RequisitionItemSnapshot, ...] = ()

    @property
    def ready_for_quotation(self) -> bool:
        return self.status == RequisitionStatus.APROBADA_GERENCIA

    @property
    def item_numbers(self) -> tuple[int, ...]:
        return tuple(i.item_number for i in self.items)


@dataclass(frozen=True)
class LogEntry:
    """One append-only approval log entry."""

    log_id: UUID
    requisition_id: UUID
    sequence: int
    action: LogAction
    new_status: RequisitionStatus
    actor_id: UUID
    created_at: datetime
    previous_status: RequisitionStatus | None = None
    comments: str = ""


@dataclass(frozen=True)
class GateResult:
    """Outcome of one applied gate decision."""

    requisition_id: UUID
    gate: Gate
    outcome: GateOutcome
    previous_status: RequisitionStatus
    new_status: RequisitionStatus
    log_entry: LogEntry
    sla_deadline: datetime | None = None
    rejected_items: tuple[int, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class RequisitionStatusView:
    """Status plus derived SLA fields, computed at read time."""

    requisition_id: UUID
    status: RequisitionStatus
    sla_deadline: datetime | None
    is_overdue: bool
    days_overdue: int
    days_remaining: int


@dataclass(frozen=True)
class StageSignature:
    """Who signed a requisition at which stage (latest signing entry per stage)."""

    action: LogAction
    actor_id: UUID
    signed_at: datetime
    new_status: RequisitionStatus
    comments: str = ""
