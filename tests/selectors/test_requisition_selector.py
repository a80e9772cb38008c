"""
Tests for RequisitionSelector -- read-only requisition queries.

Covers:
- get / get_by_number
- by_creator (newest first)
- awaiting_gate with and without a creator filter
- logs numbered per requisition and the signature block
"""

from uuid import uuid4

import pytest

from requisition_kernel.domain.requisition import (
    AuthorizationType,
    Gate,
    LogAction,
    RequisitionStatus,
)
from tests.conftest import CEMENTO, approve_all, decisions_for, make_header, make_items


@pytest.fixture
def reviewed(state_machine, graph, team):
    """A requisition rejected once at review, resubmitted, then approved."""
    graph.add_edge(team.reviewer, team.creator, AuthorizationType.REVISION)
    snapshot = state_machine.create(team.creator, make_header(), make_items(CEMENTO))
    rid = snapshot.requisition_id
    state_machine.apply_gate_decision(
        rid, Gate.REVIEW, team.reviewer, decisions_for(snapshot, {1: "cantidad"}),
    )
    state_machine.edit_and_resubmit(rid, team.creator, make_items(CEMENTO, quantity="3"))
    state_machine.apply_gate_decision(rid, Gate.REVIEW, team.reviewer, approve_all(snapshot))
    return snapshot


def test_get_and_get_by_number(selector, state_machine, team):
    snapshot = state_machine.create(team.creator, make_header(), make_items(CEMENTO))
    assert selector.get(snapshot.requisition_id).requisition_number == "REQ-001"
    assert selector.get_by_number("REQ-001").requisition_id == snapshot.requisition_id
    assert selector.get(uuid4()) is None
    assert selector.get_by_number("REQ-999") is None


def test_by_creator_newest_first(selector, state_machine, team, users, deterministic_clock):
    other = users.add()
    first = state_machine.create(team.creator, make_header(), make_items(CEMENTO))
    deterministic_clock.advance(60)
    second = state_machine.create(team.creator, make_header(), make_items(CEMENTO))
    state_machine.create(other, make_header(), make_items(CEMENTO))

    mine = selector.by_creator(team.creator)
    assert [s.requisition_id for s in mine] == [second.requisition_id, first.requisition_id]


def test_awaiting_gate(selector, state_machine, team, users):
    other = users.add()
    pending = state_machine.create(team.creator, make_header(), make_items(CEMENTO))
    state_machine.create(team.creator, make_header(with_work_reference=True), make_items(CEMENTO))
    theirs = state_machine.create(other, make_header(), make_items(CEMENTO))

    all_review = {s.requisition_id for s in selector.awaiting_gate(Gate.REVIEW)}
    assert all_review == {pending.requisition_id, theirs.requisition_id}

    mine = selector.awaiting_gate(Gate.REVIEW, [team.creator])
    assert [s.requisition_id for s in mine] == [pending.requisition_id]

    assert selector.awaiting_gate(Gate.REVIEW, []) == []
    assert len(selector.awaiting_gate(Gate.VALIDATE)) == 1


def test_logs_in_order(selector, reviewed):
    assert [e.action for e in selector.logs(reviewed.requisition_id)] == [
        LogAction.CREAR,
        LogAction.RECHAZAR_REVISION,
        LogAction.REENVIAR,
        LogAction.REVISAR_APROBAR,
    ]
    sequences = [e.sequence for e in selector.logs(reviewed.requisition_id)]
    assert sequences == [1, 2, 3, 4]


def test_log_sequences_are_per_requisition(selector, state_machine, team, reviewed):
    other = state_machine.create(team.creator, make_header(), make_items(CEMENTO))
    assert [e.sequence for e in selector.logs(other.requisition_id)] == [1]
    assert [e.sequence for e in selector.logs(reviewed.requisition_id)] == [1, 2, 3, 4]


def test_signatures(selector, reviewed, team):
    signatures = selector.signatures(reviewed.requisition_id)
    assert [s.action for s in signatures] == [LogAction.CREAR, LogAction.REVISAR_APROBAR]
    assert signatures[0].actor_id == team.creator
    assert signatures[1].actor_id == team.reviewer
    assert signatures[1].new_status == RequisitionStatus.APROBADA_REVISOR


def test_routed_review_signs_the_review_stage(selector, state_machine, graph, team):
    graph.add_edge(team.reviewer, team.creator, AuthorizationType.REVISION)
    graph.add_edge(team.authorizer, team.creator, AuthorizationType.AUTORIZACION)
    snapshot = state_machine.create(team.creator, make_header(), make_items(CEMENTO))
    state_machine.apply_gate_decision(
        snapshot.requisition_id, Gate.REVIEW, team.reviewer, approve_all(snapshot),
    )

    signatures = selector.signatures(snapshot.requisition_id)
    assert [s.action for s in signatures] == [
        LogAction.CREAR, LogAction.REVISAR_APROBAR_PENDIENTE_AUTORIZACION,
    ]
    assert signatures[1].new_status == RequisitionStatus.PENDIENTE_AUTORIZACION
