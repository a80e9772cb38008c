"""
End-to-end requisition scenarios through the WorkflowOrchestrator.

Every step runs in its own committed transaction, the way the API layer
drives the workflow.

Scenarios:
- Happy path: REQ-001 with 2 items approved at review
- Partial rejection: REQ-002 with 3 items, item 3 rejected in review
- Resubmission: REQ-002 edited without the rejected item goes back to
  ``en_revision`` and the review decisions are invalidated
- Unauthorized actor at the authorization gate
- Full path from a work-referenced requisition to quotation handoff
"""

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from requisition_kernel.domain.requisition import (
    AuthorizationType,
    Gate,
    ItemDecisionStatus,
    ItemSpec,
    LogAction,
    RequisitionStatus,
)
from requisition_kernel.exceptions import ForbiddenError, GateNotAuthorizedError
from tests.conftest import (
    ARENA,
    CEMENTO,
    VARILLA,
    approve_all,
    decisions_for,
    grant,
    make_header,
    make_items,
)


@pytest.fixture
def with_reviewer(orchestrator, team):
    grant(orchestrator, team.reviewer, team.creator, AuthorizationType.REVISION)


class TestHappyPath:

    def test_review_approves_req_001(self, orchestrator, team, with_reviewer, deterministic_clock):
        req = orchestrator.create_requisition(team.creator, make_header(), make_items(CEMENTO, ARENA))
        assert req.requisition_number == "REQ-001"
        assert req.status == RequisitionStatus.PENDIENTE
        created_deadline = req.sla_deadline

        deterministic_clock.advance_days(1)
        result = orchestrator.review(req.requisition_id, team.reviewer, approve_all(req))

        assert result.new_status == RequisitionStatus.APROBADA_REVISOR
        history = orchestrator.history(req.requisition_id)
        assert [e.action for e in history] == [LogAction.CREAR, LogAction.REVISAR_APROBAR]
        assert history[-1].actor_id == team.reviewer

        refreshed = orchestrator.get_requisition(req.requisition_id)
        assert refreshed.sla_deadline != created_deadline
        assert refreshed.sla_deadline == datetime(2024, 1, 11, 12, 0, tzinfo=timezone.utc)

        approvals = orchestrator.item_approvals(req.requisition_id, Gate.REVIEW)
        assert len(approvals) == 2
        assert all(a.status == ItemDecisionStatus.APPROVED for a in approvals)


class TestPartialRejectionAndResubmission:

    @pytest.fixture
    def req_002(self, orchestrator, team, with_reviewer):
        orchestrator.create_requisition(team.creator, make_header(), make_items(CEMENTO))
        req = orchestrator.create_requisition(
            team.creator, make_header(), make_items(CEMENTO, ARENA, VARILLA),
        )
        assert req.requisition_number == "REQ-002"
        started = orchestrator.start_review(req.requisition_id, team.reviewer)
        assert started.status == RequisitionStatus.EN_REVISION
        return started

    def test_partial_rejection(self, orchestrator, team, req_002):
        result = orchestrator.review(
            req_002.requisition_id, team.reviewer,
            decisions_for(req_002, {3: "precio no coincide"}),
        )

        assert result.new_status == RequisitionStatus.RECHAZADA_REVISOR
        assert result.rejected_items == (3,)

        valid = orchestrator.item_approvals(req_002.requisition_id, Gate.REVIEW)
        assert len(valid) == 3
        assert sorted(a.status.value for a in valid) == ["approved", "approved", "rejected"]
        rejected = [a for a in valid if a.is_rejected]
        assert rejected[0].item_number == 3
        assert rejected[0].comments == "precio no coincide"

        status = orchestrator.get_status(req_002.requisition_id)
        assert status.status == RequisitionStatus.RECHAZADA_REVISOR
        assert status.sla_deadline is None
        assert not status.is_overdue

    def test_resubmission_returns_to_en_revision(self, orchestrator, team, req_002):
        orchestrator.review(
            req_002.requisition_id, team.reviewer,
            decisions_for(req_002, {3: "precio no coincide"}),
        )
        last_round = orchestrator.last_rejection(req_002.requisition_id)
        assert [r.item_number for r in last_round if r.is_rejected] == [3]

        resubmitted = orchestrator.edit_and_resubmit(
            req_002.requisition_id,
            team.creator,
            [
                ItemSpec(CEMENTO, Decimal("10"), item_number=1),
                ItemSpec(ARENA, Decimal("10"), item_number=2),
            ],
        )

        assert resubmitted.status == RequisitionStatus.EN_REVISION
        assert resubmitted.item_numbers == (1, 2)
        assert orchestrator.item_approvals(req_002.requisition_id, Gate.REVIEW) == []
        every_row = orchestrator.item_approvals(
            req_002.requisition_id, Gate.REVIEW, include_invalid=True,
        )
        assert len(every_row) == 3
        assert not any(row.is_valid for row in every_row)
        assert orchestrator.last_rejection(req_002.requisition_id) == []
        assert orchestrator.history(req_002.requisition_id)[-1].action == LogAction.REENVIAR

        # The next review round decides only the remaining items
        result = orchestrator.review(req_002.requisition_id, team.reviewer, approve_all(resubmitted))
        assert result.new_status == RequisitionStatus.APROBADA_REVISOR
        assert len(orchestrator.item_approvals(req_002.requisition_id, Gate.REVIEW)) == 2


class TestUnauthorizedActor:

    def test_authorize_without_edge_is_forbidden(self, orchestrator, team, with_reviewer, users):
        req = orchestrator.create_requisition(team.creator, make_header(), make_items(CEMENTO))
        orchestrator.review(req.requisition_id, team.reviewer, approve_all(req))
        before = orchestrator.get_requisition(req.requisition_id)
        assert before.status == RequisitionStatus.APROBADA_REVISOR

        with pytest.raises(ForbiddenError) as exc_info:
            orchestrator.authorize(req.requisition_id, team.outsider, approve_all(req))
        assert isinstance(exc_info.value, GateNotAuthorizedError)

        after = orchestrator.get_requisition(req.requisition_id)
        assert after == before
        assert len(orchestrator.history(req.requisition_id)) == 2
        assert orchestrator.item_approvals(req.requisition_id, Gate.AUTHORIZE) == []


class TestFullPath:

    def test_work_reference_to_quotation(self, orchestrator, team, handoff):
        grant(orchestrator, team.reviewer, team.creator, AuthorizationType.REVISION)
        grant(orchestrator, team.authorizer, team.creator, AuthorizationType.AUTORIZACION)

        req = orchestrator.create_requisition(
            team.creator, make_header(with_work_reference=True), make_items(CEMENTO, VARILLA),
        )
        rid = req.requisition_id
        assert req.status == RequisitionStatus.PENDIENTE_VALIDACION

        orchestrator.submit_for_validation(rid, team.creator)
        assert orchestrator.validate(rid, team.validator, approve_all(req)).new_status == (
            RequisitionStatus.PENDIENTE
        )
        assert orchestrator.review(rid, team.reviewer, approve_all(req)).new_status == (
            RequisitionStatus.PENDIENTE_AUTORIZACION
        )
        assert orchestrator.authorize(rid, team.authorizer, approve_all(req)).new_status == (
            RequisitionStatus.AUTORIZADO
        )
        assert handoff.ready == []

        result = orchestrator.approve_management(rid, team.manager, approve_all(req))

        assert result.new_status == RequisitionStatus.APROBADA_GERENCIA
        assert [s.requisition_id for s in handoff.ready] == [rid]
        assert handoff.ready[0].ready_for_quotation

        signed = {s.action: s.actor_id for s in orchestrator.signatures(rid)}
        assert signed == {
            LogAction.CREAR: team.creator,
            LogAction.VALIDAR_APROBAR: team.validator,
            LogAction.REVISAR_APROBAR_PENDIENTE_AUTORIZACION: team.reviewer,
            LogAction.AUTORIZAR_APROBAR: team.authorizer,
            LogAction.APROBAR_GERENCIA: team.manager,
        }

        orchestrator.record_downstream_status(rid, RequisitionStatus.EN_COTIZACION, team.outsider)
        assert orchestrator.get_status(rid).status == RequisitionStatus.EN_COTIZACION
