"""
Pytest fixtures for the requisition workflow test suite.

Provides:
- A file-backed SQLite database per test (commits are real, so the
  orchestrator and concurrency tests see what another session sees)
- Kernel services wired to a deterministic clock
- In-memory master data, user directory and quotation handoff
- A WorkflowOrchestrator over the same database

Environment Variables:
- DATABASE_URL: run the suite against another database (e.g. PostgreSQL).
  Tables are dropped and recreated for every test.
"""

import json
import logging
import os
from dataclasses import dataclass
from decimal import Decimal
from io import StringIO
from typing import Sequence
from uuid import UUID, uuid4

import pytest
from sqlalchemy.orm import Session

from requisition_config.bridges import build_roles, build_sla_clock
from requisition_config.loader import parse_configuration
from requisition_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_session,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
)
from requisition_kernel.domain.clock import DeterministicClock
from requisition_kernel.domain.directory import MasterDataRef, MaterialRef
from requisition_kernel.domain.requisition import (
    AuthorizationType,
    ItemDecision,
    ItemSpec,
    RequisitionHeader,
    RequisitionSnapshot,
)
from requisition_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from requisition_kernel.selectors.requisition_selector import RequisitionSelector
from requisition_kernel.services.authorization_graph import AuthorizationGraph
from requisition_kernel.services.item_approval_ledger import ItemApprovalLedger
from requisition_kernel.services.requisition_state_machine import RequisitionStateMachine
from requisition_kernel.services.sequence_service import SequenceService
from requisition_services.workflow_orchestrator import WorkflowOrchestrator

VALIDATOR_ROLE = "validador"
MANAGEMENT_ROLE = "gerencia"

COMPANY_ID = 1
PROJECT_ID = 10
OPERATION_CENTER_ID = 20

CEMENTO = 101
ARENA = 102
VARILLA = 103
LADRILLO = 104

TEST_CONFIG_DATA = {
    "config_id": "requisiciones-test",
    "version": 1,
    "calendar": {"timezone": "UTC", "weekend_days": [5, 6], "holidays": []},
    "sla": {
        "validate": {"normal": 2, "alta": 1},
        "review": {"normal": 2, "alta": 1},
        "authorize": {"normal": 2, "alta": 1},
        "management": {"normal": 3, "alta": 1},
    },
    "roles": {"validator": VALIDATOR_ROLE, "management": MANAGEMENT_ROLE},
    "numbering": {"requisition_format": "REQ-{seq:03d}"},
    "concurrency": {"conflict_retries": 1},
}


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture requisition_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, orchestrator):
            orchestrator.review(...)
            logs = captured_logs()
            assert any(r["message"] == "gate_decision_applied" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("requisition_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Collaborator fakes
# =============================================================================


class InMemoryMasterData:
    """MasterDataDirectory backed by dicts."""

    def __init__(self):
        self.materials: dict[int, MaterialRef] = {
            CEMENTO: MaterialRef(CEMENTO, "MAT-101", "Cemento gris 50kg"),
            ARENA: MaterialRef(ARENA, "MAT-102", "Arena de rio m3"),
            VARILLA: MaterialRef(VARILLA, "MAT-103", "Varilla corrugada 1/2"),
            LADRILLO: MaterialRef(LADRILLO, "MAT-104", "Ladrillo tolete"),
        }
        self.companies = {COMPANY_ID: MasterDataRef("company", COMPANY_ID, "Constructora")}
        self.projects = {PROJECT_ID: MasterDataRef("project", PROJECT_ID, "Torre Norte")}
        self.operation_centers = {
            OPERATION_CENTER_ID: MasterDataRef("operation_center", OPERATION_CENTER_ID, "Bogota"),
        }

    def resolve_material(self, material_id):
        return self.materials.get(material_id)

    def resolve_company(self, company_id):
        return self.companies.get(company_id)

    def resolve_project(self, project_id):
        return self.projects.get(project_id)

    def resolve_operation_center(self, operation_center_id):
        return self.operation_centers.get(operation_center_id)


class InMemoryUserDirectory:
    """UserDirectory backed by a dict of user id -> roles."""

    def __init__(self):
        self._roles: dict[UUID, set[str]] = {}
        self._inactive: set[UUID] = set()

    def add(self, *roles: str, active: bool = True) -> UUID:
        user_id = uuid4()
        self._roles[user_id] = set(roles)
        if not active:
            self._inactive.add(user_id)
        return user_id

    def exists(self, user_id):
        return user_id in self._roles

    def has_role(self, user_id, role):
        return role in self._roles.get(user_id, set())

    def active_user_ids(self):
        return [u for u in self._roles if u not in self._inactive]


class RecordingHandoff:
    """QuotationHandoff that remembers every published snapshot."""

    def __init__(self):
        self.ready: list[RequisitionSnapshot] = []

    def requisition_ready(self, snapshot):
        self.ready.append(snapshot)


@dataclass(frozen=True)
class Team:
    """The people of a typical requisition: one per gate plus an outsider."""

    creator: UUID
    validator: UUID
    reviewer: UUID
    authorizer: UUID
    approver: UUID
    manager: UUID
    outsider: UUID


# =============================================================================
# Database
# =============================================================================


@pytest.fixture
def db_engine(tmp_path):
    """Fresh database per test; tables and sequence counters created."""
    url = os.environ.get("DATABASE_URL") or f"sqlite:///{tmp_path / 'requisitions.db'}"
    eng = init_engine_from_url(url)
    drop_tables()
    create_tables()
    yield eng
    reset_engine()


@pytest.fixture
def session_factory(db_engine):
    return get_session_factory()


@pytest.fixture
def session(db_engine) -> Session:
    """Session for kernel-level tests.  Tests call flush / commit as needed."""
    sess = get_session()
    yield sess
    sess.rollback()
    sess.close()


# =============================================================================
# Configuration and collaborators
# =============================================================================


@pytest.fixture
def workflow_config():
    return parse_configuration(TEST_CONFIG_DATA)


@pytest.fixture
def sla_clock(workflow_config):
    return build_sla_clock(workflow_config)


@pytest.fixture
def deterministic_clock():
    """Deterministic clock at Monday 2024-01-08 12:00 UTC."""
    return DeterministicClock()


@pytest.fixture
def master_data():
    return InMemoryMasterData()


@pytest.fixture
def users():
    return InMemoryUserDirectory()


@pytest.fixture
def handoff():
    return RecordingHandoff()


@pytest.fixture
def team(users) -> Team:
    return Team(
        creator=users.add("residente"),
        validator=users.add(VALIDATOR_ROLE),
        reviewer=users.add("director_obra"),
        authorizer=users.add("director_proyecto"),
        approver=users.add("gerente_regional"),
        manager=users.add(MANAGEMENT_ROLE),
        outsider=users.add("almacenista"),
    )


# =============================================================================
# Kernel services
# =============================================================================


@pytest.fixture
def sequence_service(session):
    return SequenceService(session)


@pytest.fixture
def ledger(session, deterministic_clock):
    return ItemApprovalLedger(session, deterministic_clock)


@pytest.fixture
def graph(session, users, deterministic_clock):
    return AuthorizationGraph(session, users, deterministic_clock)


@pytest.fixture
def state_machine(
    session, ledger, graph, sla_clock, users, master_data, workflow_config,
    sequence_service, deterministic_clock,
):
    return RequisitionStateMachine(
        session,
        ledger=ledger,
        graph=graph,
        sla_clock=sla_clock,
        users=users,
        master_data=master_data,
        roles=build_roles(workflow_config),
        sequences=sequence_service,
        clock=deterministic_clock,
    )


@pytest.fixture
def selector(session):
    return RequisitionSelector(session)


@pytest.fixture
def orchestrator(session_factory, workflow_config, users, master_data, deterministic_clock, handoff):
    return WorkflowOrchestrator(
        session_factory,
        workflow_config,
        users,
        master_data,
        clock=deterministic_clock,
        handoff=handoff,
    )


# =============================================================================
# Builders
# =============================================================================


def make_header(with_work_reference: bool = False, **overrides) -> RequisitionHeader:
    fields = {
        "company_id": COMPANY_ID,
        "project_id": PROJECT_ID,
        "operation_center_id": OPERATION_CENTER_ID,
    }
    if with_work_reference:
        fields.update(obra="Torre Norte", codigo_obra="TN-01")
    fields.update(overrides)
    return RequisitionHeader(**fields)


def make_items(*material_ids: int, quantity: str = "10") -> list[ItemSpec]:
    return [ItemSpec(material_id=m, quantity=Decimal(quantity)) for m in material_ids]


def approve_all(snapshot: RequisitionSnapshot) -> list[ItemDecision]:
    return [ItemDecision.approve(n) for n in snapshot.item_numbers]


def decisions_for(
    snapshot: RequisitionSnapshot, rejected: dict[int, str],
) -> list[ItemDecision]:
    """Approve every item except those in ``rejected`` (number -> comment)."""
    return [
        ItemDecision.reject(n, rejected[n]) if n in rejected else ItemDecision.approve(n)
        for n in snapshot.item_numbers
    ]


def grant(graph_or_orchestrator, authorizer: UUID, subordinate: UUID, gate_type: AuthorizationType):
    """Add a delegation edge through either an AuthorizationGraph or the orchestrator."""
    if isinstance(graph_or_orchestrator, WorkflowOrchestrator):
        return graph_or_orchestrator.add_authorization_edge(authorizer, subordinate, gate_type)
    return graph_or_orchestrator.add_edge(authorizer, subordinate, gate_type)


def item_numbers(records: Sequence) -> list[int]:
    return sorted(r.item_number for r in records)
