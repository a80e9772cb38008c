"""
Tests for WorkflowOrchestrator -- transactions, retries, inboxes, logging.

Covers:
- Commit on success, rollback on failure (nothing half-applied)
- Stale caller version is surfaced, never retried
- pending_actions(): role-based and edge-based inboxes
- my_requisitions(), get_requisition_by_number()
- Quotation handoff only after management approval
- Delegation administration passthroughs
- Structured log context (operation, requisition_id, correlation_id)
"""

from uuid import uuid4

import pytest

from requisition_kernel.domain.requisition import (
    AuthorizationType,
    Gate,
    ItemDecision,
    RequisitionStatus,
)
from requisition_kernel.exceptions import (
    ConcurrencyConflictError,
    MissingRejectionCommentError,
    RequisitionNotFoundError,
)
from requisition_kernel.selectors.requisition_selector import RequisitionSelector
from requisition_kernel.services.requisition_state_machine import RequisitionStateMachine
from tests.conftest import (
    ARENA,
    CEMENTO,
    approve_all,
    decisions_for,
    grant,
    make_header,
    make_items,
)


@pytest.fixture
def requisition(orchestrator, team):
    grant(orchestrator, team.reviewer, team.creator, AuthorizationType.REVISION)
    return orchestrator.create_requisition(team.creator, make_header(), make_items(CEMENTO, ARENA))


class TestTransactions:

    def test_failure_rolls_back_everything(self, orchestrator, team, requisition, monkeypatch):
        def failing_append(self, *args, **kwargs):
            raise RuntimeError("log store unavailable")

        monkeypatch.setattr(RequisitionStateMachine, "_append_log", failing_append)
        with pytest.raises(RuntimeError):
            orchestrator.review(requisition.requisition_id, team.reviewer, approve_all(requisition))

        after = orchestrator.get_requisition(requisition.requisition_id)
        assert after.status == RequisitionStatus.PENDIENTE
        assert after.version == requisition.version
        assert orchestrator.item_approvals(
            requisition.requisition_id, include_invalid=True,
        ) == []

    def test_validation_error_leaves_no_trace(self, orchestrator, team, requisition):
        with pytest.raises(MissingRejectionCommentError):
            orchestrator.review(
                requisition.requisition_id, team.reviewer,
                [ItemDecision.approve(1), ItemDecision.reject(2, "")],
            )
        assert len(orchestrator.history(requisition.requisition_id)) == 1

    def test_stale_expected_version_not_retried(self, orchestrator, team, requisition):
        orchestrator.start_review(requisition.requisition_id, team.reviewer)

        with pytest.raises(ConcurrencyConflictError) as exc_info:
            orchestrator.review(
                requisition.requisition_id, team.reviewer, approve_all(requisition),
                expected_version=requisition.version,
            )
        assert exc_info.value.expected_version == requisition.version
        assert exc_info.value.actual_version == requisition.version + 1
        assert orchestrator.get_status(requisition.requisition_id).status == (
            RequisitionStatus.EN_REVISION
        )

    def test_matching_expected_version(self, orchestrator, team, requisition):
        result = orchestrator.review(
            requisition.requisition_id, team.reviewer, approve_all(requisition),
            expected_version=requisition.version,
        )
        assert result.new_status == RequisitionStatus.APROBADA_REVISOR

    def test_unknown_requisition(self, orchestrator):
        with pytest.raises(RequisitionNotFoundError):
            orchestrator.get_status(uuid4())
        with pytest.raises(RequisitionNotFoundError):
            orchestrator.history(uuid4())
        with pytest.raises(RequisitionNotFoundError):
            orchestrator.get_requisition_by_number("REQ-404")


class TestInboxes:

    def test_pending_actions_by_role_and_edge(self, orchestrator, team, users):
        other_creator = users.add()
        grant(orchestrator, team.reviewer, team.creator, AuthorizationType.REVISION)

        mine = orchestrator.create_requisition(team.creator, make_header(), make_items(CEMENTO))
        theirs = orchestrator.create_requisition(other_creator, make_header(), make_items(CEMENTO))
        needs_validation = orchestrator.create_requisition(
            other_creator, make_header(with_work_reference=True), make_items(CEMENTO),
        )

        reviewer_inbox = orchestrator.pending_actions(team.reviewer)
        assert [s.requisition_id for s in reviewer_inbox[Gate.REVIEW]] == [mine.requisition_id]
        assert reviewer_inbox[Gate.VALIDATE] == []

        validator_inbox = orchestrator.pending_actions(team.validator)
        assert [s.requisition_id for s in validator_inbox[Gate.VALIDATE]] == [
            needs_validation.requisition_id,
        ]
        assert validator_inbox[Gate.REVIEW] == []

        outsider_inbox = orchestrator.pending_actions(team.outsider)
        assert all(not queue for queue in outsider_inbox.values())
        assert theirs.requisition_id not in {
            s.requisition_id for queue in reviewer_inbox.values() for s in queue
        }

    def test_management_inbox(self, orchestrator, team):
        grant(orchestrator, team.reviewer, team.creator, AuthorizationType.REVISION)
        grant(orchestrator, team.authorizer, team.creator, AuthorizationType.AUTORIZACION)
        req = orchestrator.create_requisition(team.creator, make_header(), make_items(CEMENTO))
        orchestrator.review(req.requisition_id, team.reviewer, approve_all(req))

        assert [
            s.requisition_id for s in orchestrator.pending_actions(team.authorizer)[Gate.AUTHORIZE]
        ] == [req.requisition_id]

        orchestrator.authorize(req.requisition_id, team.authorizer, approve_all(req))

        assert [
            s.requisition_id for s in orchestrator.pending_actions(team.manager)[Gate.MANAGEMENT]
        ] == [req.requisition_id]
        assert orchestrator.pending_actions(team.approver)[Gate.MANAGEMENT] == []

        grant(orchestrator, team.approver, team.creator, AuthorizationType.APROBACION)
        assert len(orchestrator.pending_actions(team.approver)[Gate.MANAGEMENT]) == 1

    def test_my_requisitions_and_lookup_by_number(self, orchestrator, team):
        first = orchestrator.create_requisition(team.creator, make_header(), make_items(CEMENTO))
        assert [s.requisition_id for s in orchestrator.my_requisitions(team.creator)] == [
            first.requisition_id,
        ]
        assert orchestrator.my_requisitions(team.reviewer) == []
        assert orchestrator.get_requisition_by_number("REQ-001").requisition_id == (
            first.requisition_id
        )


class TestHandoff:

    def test_rejection_is_not_handed_off(self, orchestrator, team, handoff):
        grant(orchestrator, team.reviewer, team.creator, AuthorizationType.REVISION)
        grant(orchestrator, team.authorizer, team.creator, AuthorizationType.AUTORIZACION)
        req = orchestrator.create_requisition(team.creator, make_header(), make_items(CEMENTO))
        orchestrator.review(req.requisition_id, team.reviewer, approve_all(req))
        orchestrator.authorize(req.requisition_id, team.authorizer, approve_all(req))

        result = orchestrator.approve_management(
            req.requisition_id, team.manager, decisions_for(req, {1: "no hay presupuesto"}),
        )

        assert result.new_status == RequisitionStatus.RECHAZADA_GERENCIA
        assert handoff.ready == []

    def test_handoff_runs_after_commit(self, orchestrator, team, handoff, session_factory):
        committed = []

        class CheckingHandoff:
            def requisition_ready(self, snapshot):
                with session_factory() as other:
                    committed.append(
                        RequisitionSelector(other).get(snapshot.requisition_id).status
                    )

        orchestrator._handoff = CheckingHandoff()
        grant(orchestrator, team.reviewer, team.creator, AuthorizationType.REVISION)
        grant(orchestrator, team.authorizer, team.creator, AuthorizationType.AUTORIZACION)
        req = orchestrator.create_requisition(team.creator, make_header(), make_items(CEMENTO))
        for gate, actor in (
            (Gate.REVIEW, team.reviewer),
            (Gate.AUTHORIZE, team.authorizer),
            (Gate.MANAGEMENT, team.manager),
        ):
            orchestrator.gate_decision(req.requisition_id, gate, actor, approve_all(req))

        assert committed == [RequisitionStatus.APROBADA_GERENCIA]


class TestDelegationAdmin:

    def test_edges_roundtrip(self, orchestrator, team, users):
        fresh = users.add()
        result = orchestrator.add_authorization_edges_bulk(
            team.authorizer, [team.creator, fresh], AuthorizationType.AUTORIZACION,
        )
        assert set(result.created) == {team.creator, fresh}

        assert {e.subordinate_id for e in orchestrator.subordinates_of(team.authorizer)} == {
            team.creator, fresh,
        }
        assert [e.authorizer_id for e in orchestrator.supervisors_of(fresh)] == [team.authorizer]
        assert orchestrator.authorization_hierarchy()[0].total == 2
        assert fresh not in orchestrator.available_subordinates(team.authorizer)

        assert orchestrator.remove_authorization_edge(team.authorizer, fresh) is True
        assert fresh in orchestrator.available_subordinates(team.authorizer)


class TestLogging:

    def test_operation_context_in_logs(self, orchestrator, team, requisition, captured_logs):
        orchestrator.review(requisition.requisition_id, team.reviewer, approve_all(requisition))

        records = [r for r in captured_logs() if r["message"] == "gate_decision_applied"]
        assert len(records) == 1
        record = records[0]
        assert record["operation"] == "gate_decision"
        assert record["requisition_id"] == str(requisition.requisition_id)
        assert record["actor_id"] == str(team.reviewer)
        assert record["gate"] == "review"
        assert record["correlation_id"]

    def test_rejected_operation_logs_error_code(self, orchestrator, team, requisition, captured_logs):
        with pytest.raises(MissingRejectionCommentError):
            orchestrator.review(
                requisition.requisition_id, team.reviewer,
                [ItemDecision.approve(1), ItemDecision.reject(2, "")],
            )
        rejected = [r for r in captured_logs() if r["message"] == "requisition_operation_rejected"]
        assert rejected[0]["error_code"] == "MISSING_REJECTION_COMMENT"
