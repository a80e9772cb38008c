"""
Module: requisition_kernel.selectors.requisition_selector
Responsibility: Read-only queries over requisitions and their approval log:
    "my requisitions", requisitions waiting at a gate, log history and the
    signature block (who approved each stage).
Architecture position: Kernel > Selectors.  Reads models, returns domain DTOs.
"""

from __future__ import annotations

from typing import Collection
from uuid import UUID

from sqlalchemy import select

from requisition_kernel.domain.requisition import (
    GATE_RULES,
    Gate,
    LogAction,
    LogEntry,
    RequisitionSnapshot,
    RequisitionStatus,
    StageSignature,
)
from requisition_kernel.models.requisition import RequisitionModel
from requisition_kernel.models.requisition_log import RequisitionLogModel
from requisition_kernel.selectors.base import BaseSelector

# Actions that sign each stage, in workflow order.  The review stage signs
# with either action depending on whether the approval was routed to an
# authorizer.
SIGNATURE_STAGES: tuple[frozenset[LogAction], ...] = (
    frozenset({LogAction.CREAR}),
    frozenset({LogAction.VALIDAR_APROBAR}),
    frozenset({
        LogAction.REVISAR_APROBAR,
        LogAction.REVISAR_APROBAR_PENDIENTE_AUTORIZACION,
    }),
    frozenset({LogAction.AUTORIZAR_APROBAR}),
    frozenset({LogAction.APROBAR_GERENCIA}),
)


class RequisitionSelector(BaseSelector):
    """Read-side queries for requisitions."""

    def get(self, requisition_id: UUID) -> RequisitionSnapshot | None:
        model = self.session.execute(
            select(RequisitionModel).where(
                RequisitionModel.requisition_id == requisition_id,
            )
        ).scalar_one_or_none()
        return model.to_dto() if model is not None else None

    def get_by_number(self, requisition_number: str) -> RequisitionSnapshot | None:
        model = self.session.execute(
            select(RequisitionModel).where(
                RequisitionModel.requisition_number == requisition_number,
            )
        ).scalar_one_or_none()
        return model.to_dto() if model is not None else None

    def by_creator(self, creator_id: UUID) -> list[RequisitionSnapshot]:
        """A user's own requisitions, newest first."""
        rows = self.session.execute(
            select(RequisitionModel)
            .where(RequisitionModel.creator_id == creator_id)
            .order_by(RequisitionModel.created_at.desc(), RequisitionModel.requisition_number.desc())
        ).scalars()
        return [m.to_dto() for m in rows]

    def in_statuses(
        self,
        statuses: Collection[RequisitionStatus],
        creator_ids: Collection[UUID] | None = None,
    ) -> list[RequisitionSnapshot]:
        """Requisitions in any of ``statuses``, oldest deadline first."""
        if not statuses or (creator_ids is not None and not creator_ids):
            return []
        stmt = select(RequisitionModel).where(
            RequisitionModel.status.in_([s.value for s in statuses]),
        )
        if creator_ids is not None:
            stmt = stmt.where(RequisitionModel.creator_id.in_(list(creator_ids)))
        stmt = stmt.order_by(
            RequisitionModel.sla_deadline,
            RequisitionModel.requisition_number,
        )
        return [m.to_dto() for m in self.session.execute(stmt).scalars()]

    def awaiting_gate(
        self,
        gate: Gate,
        creator_ids: Collection[UUID] | None = None,
    ) -> list[RequisitionSnapshot]:
        """Requisitions a decision at ``gate`` applies to."""
        return self.in_statuses(GATE_RULES[gate].from_statuses, creator_ids)

    def logs(self, requisition_id: UUID) -> list[LogEntry]:
        rows = self.session.execute(
            select(RequisitionLogModel)
            .where(RequisitionLogModel.requisition_id == requisition_id)
            .order_by(RequisitionLogModel.sequence)
        ).scalars()
        return [row.to_dto() for row in rows]

    def signatures(self, requisition_id: UUID) -> list[StageSignature]:
        """Latest signing entry per stage, in workflow order."""
        entries = self.logs(requisition_id)
        signatures: list[StageSignature] = []
        for stage in SIGNATURE_STAGES:
            signed = [entry for entry in entries if entry.action in stage]
            if not signed:
                continue
            latest = signed[-1]
            signatures.append(
                StageSignature(
                    action=latest.action,
                    actor_id=latest.actor_id,
                    signed_at=latest.created_at,
                    new_status=latest.new_status,
                    comments=latest.comments,
                )
            )
        return signatures
