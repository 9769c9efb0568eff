"""
Pytest fixtures for the carbon gateway test suite.

Provides:
- SQLite database sessions (in-memory per test; file-backed for threads)
- A seeded tenant with an organization chart and a process chart
- Recording publisher and scriptable calculator collaborators
- Log capture as parsed JSON dicts

Environment Variables:
- DATABASE_URL: optional override for the per-test engine.  Must point at
  an empty database; tables are created and dropped around each test.
"""

import json
import logging
import os
from dataclasses import dataclass, field
from decimal import Decimal
from io import StringIO
from typing import Generator
from uuid import UUID, uuid4

import pytest
from sqlalchemy.orm import Session

from carbon_config.schema import GatewaySettings
from carbon_ingestion.services.collaborators import RecordingEventPublisher
from carbon_ingestion.services.ingestion_orchestrator import IngestionOrchestrator
from carbon_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_session,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
)
from carbon_kernel.domain.clock import DeterministicClock
from carbon_kernel.domain.measurement import (
    CalculationOutcome,
    CalculationStatus,
    MeasurementRecord,
)
from carbon_kernel.domain.org_chart import ChartKind, ChartNode, ScopeChannel, ScopeConfig
from carbon_kernel.domain.roles import Actor, Role
from carbon_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from carbon_kernel.models.org_chart import OrgChartModel, node_to_document
from carbon_kernel.models.tenant import TenantModel
from carbon_kernel.services.cumulative_service import TripleLockRegistry

# Test actor ID for setup writes
TEST_ACTOR_ID = uuid4()


def pytest_configure(config):
    config.addinivalue_line("markers", "slow_locks: threaded tests against a file database")


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
    Capture carbon_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, orchestrator):
            orchestrator.ingest_api(...)
            logs = captured_logs()
            assert any(r["message"] == "record_persisted" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("carbon_kernel")
    root.addHandler(handler)
    previous_level = root.level
    root.setLevel(logging.DEBUG)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Database fixtures
# =============================================================================


def get_database_url() -> str:
    return os.environ.get("DATABASE_URL", "sqlite:///:memory:")


@pytest.fixture(scope="function")
def db_engine():
    """Fresh engine and schema per test."""
    eng = init_engine_from_url(get_database_url())
    create_tables()
    yield eng
    drop_tables()
    reset_engine()


@pytest.fixture(scope="function")
def session(db_engine) -> Generator[Session, None, None]:
    """Session that performs real commits against the per-test database."""
    sess = get_session()
    try:
        yield sess
    finally:
        sess.rollback()
        sess.close()


@pytest.fixture(scope="function")
def file_session_factory(tmp_path):
    """
    Session factory over a file database, one session per thread.

    An in-memory database shares a single connection, which threads
    cannot use concurrently.
    """
    init_engine_from_url(f"sqlite:///{tmp_path / 'gateway.db'}", pool_timeout=30)
    create_tables()
    factory = get_session_factory()
    created: list[Session] = []

    def tracked_factory() -> Session:
        s = factory()
        created.append(s)
        return s

    yield tracked_factory

    for s in created:
        s.close()
    reset_engine()


# =============================================================================
# Clock and collaborators
# =============================================================================


@pytest.fixture
def test_actor_id() -> UUID:
    return TEST_ACTOR_ID


@pytest.fixture
def deterministic_clock():
    """Provide a deterministic clock for testing."""
    return DeterministicClock()


@dataclass
class ScriptedCalculator:
    """Calculator double: sums the record's values, or raises when told to."""

    fail_with: Exception | None = None
    calls: list[MeasurementRecord] = field(default_factory=list)

    def calculate(self, record: MeasurementRecord) -> CalculationOutcome:
        self.calls.append(record)
        if self.fail_with is not None:
            raise self.fail_with
        total = sum(record.values.values(), Decimal("0"))
        return CalculationOutcome(
            status=CalculationStatus.COMPLETE,
            result={"co2e": str(total), "deleted": record.is_deleted},
        )


@pytest.fixture
def calculator() -> ScriptedCalculator:
    return ScriptedCalculator()


@pytest.fixture
def publisher() -> RecordingEventPublisher:
    return RecordingEventPublisher()


@pytest.fixture
def settings() -> GatewaySettings:
    return GatewaySettings(wall_clock_utc_offset_minutes=0)


@pytest.fixture
def lock_registry() -> TripleLockRegistry:
    return TripleLockRegistry()


@pytest.fixture
def orchestrator(session, deterministic_clock, calculator, publisher, settings, lock_registry):
    return IngestionOrchestrator(
        session,
        deterministic_clock,
        calculator,
        publisher,
        settings=settings,
        lock_registry=lock_registry,
    )


# =============================================================================
# Seeded tenant
# =============================================================================

PLANT_A = "plant-a"
PLANT_B = "plant-b"
PROCESS_NODE = "proc-1"

DIESEL = "S1-diesel"  # manual, Scope 1 combustion
GRID = "S2-grid"  # pull-API, Scope 2 electricity
METER = "S1-meter"  # IoT, Scope 1 combustion
TRAVEL = "S3-travel"  # manual, Scope 3 business travel
STEAM = "P-steam"  # process chart only, on plant-a
BOILER = "P-boiler"  # process chart only node


@dataclass
class SeededTenant:
    """Ids and actors of one seeded client with both charts."""

    tenant_id: UUID
    consultant_admin: Actor
    consultant: Actor
    other_consultant: Actor
    client_admin: Actor
    head: Actor
    employee: Actor
    other_employee: Actor
    auditor: Actor
    viewer: Actor
    super_admin: Actor

    def actor(self, role: Role) -> Actor:
        return {
            Role.SUPER_ADMIN: self.super_admin,
            Role.CONSULTANT_ADMIN: self.consultant_admin,
            Role.CONSULTANT: self.consultant,
            Role.CLIENT_ADMIN: self.client_admin,
            Role.EMPLOYEE_HEAD: self.head,
            Role.EMPLOYEE: self.employee,
            Role.AUDITOR: self.auditor,
            Role.VIEWER: self.viewer,
        }[role]


def build_nodes(head_id: UUID, employee_id: UUID) -> tuple[tuple[ChartNode, ...], tuple[ChartNode, ...]]:
    """Organization chart nodes and process chart nodes of the seeded tenant."""
    assigned = frozenset({employee_id})
    organization = (
        ChartNode(
            node_id=PLANT_A,
            label="Plant A",
            head_id=head_id,
            scopes=(
                ScopeConfig(
                    scope_id=DIESEL,
                    scope_tier="Scope 1",
                    category_name="Stationary Combustion",
                    activity="Diesel generators",
                    channel=ScopeChannel.MANUAL,
                    assigned_employee_ids=assigned,
                ),
                ScopeConfig(
                    scope_id=GRID,
                    scope_tier="Scope 2",
                    category_name="Purchased Electricity",
                    channel=ScopeChannel.API,
                    endpoint="https://meters.example.com/grid",
                    assigned_employee_ids=assigned,
                ),
                ScopeConfig(
                    scope_id=METER,
                    scope_tier="Scope 1",
                    category_name="Stationary Combustion",
                    channel=ScopeChannel.IOT,
                    device_id="dev-42",
                ),
            ),
        ),
        ChartNode(
            node_id=PLANT_B,
            label="Plant B",
            scopes=(
                ScopeConfig(
                    scope_id=TRAVEL,
                    scope_tier="Scope 3",
                    category_name="Business Travel",
                    channel=ScopeChannel.MANUAL,
                ),
            ),
        ),
    )
    process = (
        ChartNode(
            node_id=PLANT_A,
            label="Plant A (process)",
            head_id=head_id,
            scopes=(
                ScopeConfig(
                    scope_id=STEAM,
                    scope_tier="Scope 2",
                    category_name="Purchased Steam",
                    channel=ScopeChannel.MANUAL,
                ),
            ),
        ),
        ChartNode(
            node_id=PROCESS_NODE,
            label="Boiler line",
            scopes=(
                ScopeConfig(
                    scope_id=BOILER,
                    scope_tier="Scope 1",
                    category_name="Stationary Combustion",
                    channel=ScopeChannel.MANUAL,
                ),
            ),
        ),
    )
    return organization, process


def seed_tenant(session: Session, with_process_chart: bool = True, is_active: bool = True) -> SeededTenant:
    consultant_admin_id = uuid4()
    consultant_id = uuid4()
    tenant = TenantModel(
        name="Acme Manufacturing",
        is_active=is_active,
        consultant_admin_id=consultant_admin_id,
        assigned_consultant_id=consultant_id,
        created_by_id=consultant_admin_id,
    )
    session.add(tenant)
    session.flush()
    tenant_id = tenant.id

    head_id, employee_id = uuid4(), uuid4()
    organization, process = build_nodes(head_id, employee_id)
    session.add(
        OrgChartModel(
            tenant_id=tenant_id,
            kind=ChartKind.ORGANIZATION.value,
            nodes=[node_to_document(n) for n in organization],
            created_by_id=consultant_admin_id,
        )
    )
    if with_process_chart:
        session.add(
            OrgChartModel(
                tenant_id=tenant_id,
                kind=ChartKind.PROCESS.value,
                nodes=[node_to_document(n) for n in process],
                created_by_id=consultant_admin_id,
            )
        )
    session.commit()

    return SeededTenant(
        tenant_id=tenant_id,
        consultant_admin=Actor(consultant_admin_id, Role.CONSULTANT_ADMIN),
        consultant=Actor(consultant_id, Role.CONSULTANT),
        other_consultant=Actor(uuid4(), Role.CONSULTANT),
        client_admin=Actor(uuid4(), Role.CLIENT_ADMIN, tenant_id),
        head=Actor(head_id, Role.EMPLOYEE_HEAD, tenant_id),
        employee=Actor(employee_id, Role.EMPLOYEE, tenant_id),
        other_employee=Actor(uuid4(), Role.EMPLOYEE, tenant_id),
        auditor=Actor(uuid4(), Role.AUDITOR, tenant_id),
        viewer=Actor(uuid4(), Role.VIEWER, tenant_id),
        super_admin=Actor(uuid4(), Role.SUPER_ADMIN),
    )


@pytest.fixture
def tenant(session) -> SeededTenant:
    return seed_tenant(session)
