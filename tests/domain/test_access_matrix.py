"""
Access Control Evaluator tests.

Pure-domain: every decision is made against an in-memory TenantSnapshot,
no database involved.
"""

from uuid import uuid4

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from carbon_kernel.domain.access import (
    DISPATCH_TABLE,
    DecisionCode,
    can_read,
    evaluate,
)
from carbon_kernel.domain.org_chart import ChartKind, OrgChart, Tenant, TenantSnapshot
from carbon_kernel.domain.roles import Actor, AssignmentEdge, Operation, OperationCategory, Role
from tests.conftest import (
    BOILER,
    DIESEL,
    GRID,
    PLANT_A,
    PLANT_B,
    PROCESS_NODE,
    STEAM,
    TRAVEL,
    build_nodes,
)

TENANT_ID = uuid4()
CONSULTANT_ADMIN_ID = uuid4()
CONSULTANT_ID = uuid4()
HEAD_ID = uuid4()
EMPLOYEE_ID = uuid4()


def _snapshot(is_active: bool = True, with_charts: bool = True) -> TenantSnapshot:
    organization, process = build_nodes(HEAD_ID, EMPLOYEE_ID)
    tenant = Tenant(
        tenant_id=TENANT_ID,
        is_active=is_active,
        created_by_id=CONSULTANT_ADMIN_ID,
        assigned_consultant_id=CONSULTANT_ID,
    )
    if not with_charts:
        return TenantSnapshot(tenant=tenant)
    return TenantSnapshot(
        tenant=tenant,
        primary_chart=OrgChart(uuid4(), TENANT_ID, ChartKind.ORGANIZATION, organization),
        process_chart=OrgChart(uuid4(), TENANT_ID, ChartKind.PROCESS, process),
    )


SNAPSHOT = _snapshot()

ACTORS = {
    Role.SUPER_ADMIN: Actor(uuid4(), Role.SUPER_ADMIN),
    Role.CONSULTANT_ADMIN: Actor(CONSULTANT_ADMIN_ID, Role.CONSULTANT_ADMIN),
    Role.CONSULTANT: Actor(CONSULTANT_ID, Role.CONSULTANT),
    Role.CLIENT_ADMIN: Actor(uuid4(), Role.CLIENT_ADMIN, TENANT_ID),
    Role.EMPLOYEE_HEAD: Actor(HEAD_ID, Role.EMPLOYEE_HEAD, TENANT_ID),
    Role.EMPLOYEE: Actor(EMPLOYEE_ID, Role.EMPLOYEE, TENANT_ID),
    Role.AUDITOR: Actor(uuid4(), Role.AUDITOR, TENANT_ID),
    Role.VIEWER: Actor(uuid4(), Role.VIEWER, TENANT_ID),
}

# Allowed categories for an actor holding every relevant assignment.
ALLOWED = {
    Role.SUPER_ADMIN: set(OperationCategory),
    Role.CONSULTANT_ADMIN: {OperationCategory.CONNECTIVITY, OperationCategory.READ, OperationCategory.ADMINISTRATION},
    Role.CONSULTANT: {OperationCategory.CONNECTIVITY, OperationCategory.READ, OperationCategory.ADMINISTRATION},
    Role.CLIENT_ADMIN: {OperationCategory.CONTENT_WRITE, OperationCategory.READ, OperationCategory.ADMINISTRATION},
    Role.EMPLOYEE_HEAD: {OperationCategory.CONTENT_WRITE, OperationCategory.READ},
    Role.EMPLOYEE: {OperationCategory.CONTENT_WRITE, OperationCategory.READ},
    Role.AUDITOR: {OperationCategory.READ},
    Role.VIEWER: {OperationCategory.READ},
}


def _target(operation: Operation) -> tuple[str, str | None]:
    if operation.category is OperationCategory.CONNECTIVITY:
        return PLANT_A, GRID
    if operation.category is OperationCategory.ADMINISTRATION:
        return PLANT_A, None
    return PLANT_A, DIESEL


class TestDispatchTable:
    def test_every_role_category_pair_has_a_rule(self):
        for role in Role:
            for category in OperationCategory:
                assert (role, category) in DISPATCH_TABLE

    def test_every_operation_has_a_category(self):
        for operation in Operation:
            assert isinstance(operation.category, OperationCategory)


class TestAccessMatrix:
    @pytest.mark.parametrize("role", list(Role), ids=lambda r: r.value)
    @pytest.mark.parametrize("operation", list(Operation), ids=lambda o: o.value)
    def test_role_operation_pair(self, role, operation):
        node_id, scope_id = _target(operation)
        decision = evaluate(ACTORS[role], TENANT_ID, operation, node_id, scope_id, SNAPSHOT)

        expected = operation.category in ALLOWED[role]
        assert decision.allowed is expected, decision.reason
        assert decision.reason
        if expected:
            assert decision.code is DecisionCode.ALLOWED


class TestConnectivityRule:
    def test_assigned_consultant_may_disconnect_but_not_write(self):
        consultant = ACTORS[Role.CONSULTANT]
        disconnect = evaluate(consultant, TENANT_ID, Operation.DISCONNECT, PLANT_A, GRID, SNAPSHOT)
        write = evaluate(consultant, TENANT_ID, Operation.MANUAL_ENTRY, PLANT_A, DIESEL, SNAPSHOT)

        assert disconnect.allowed
        assert not write.allowed
        assert write.reason == "Role consultant cannot write measurement data"

    def test_unassigned_consultant_denied_connectivity(self):
        stranger = Actor(uuid4(), Role.CONSULTANT)
        decision = evaluate(stranger, TENANT_ID, Operation.RECONNECT, PLANT_A, GRID, SNAPSHOT)

        assert not decision.allowed
        assert decision.reason.startswith("Only Super Admin, the Consultant Admin who created the client")
        assert decision.reason.endswith("reconnect")

    def test_consultant_admin_of_other_client_denied(self):
        other_admin = Actor(uuid4(), Role.CONSULTANT_ADMIN)
        decision = evaluate(other_admin, TENANT_ID, Operation.SWITCH_CHANNEL, PLANT_A, GRID, SNAPSHOT)
        assert not decision.allowed

    def test_client_admin_cannot_connect(self):
        decision = evaluate(ACTORS[Role.CLIENT_ADMIN], TENANT_ID, Operation.CONNECT, PLANT_A, GRID, SNAPSHOT)
        assert not decision.allowed


class TestContentWriteRule:
    def test_head_of_other_node_denied(self):
        decision = evaluate(ACTORS[Role.EMPLOYEE_HEAD], TENANT_ID, Operation.MANUAL_ENTRY, PLANT_B, TRAVEL, SNAPSHOT)
        assert not decision.allowed
        assert decision.reason == "Employee head not assigned to this node"

    def test_unassigned_employee_denied(self):
        stranger = Actor(uuid4(), Role.EMPLOYEE, TENANT_ID)
        decision = evaluate(stranger, TENANT_ID, Operation.MANUAL_ENTRY, PLANT_A, DIESEL, SNAPSHOT)
        assert not decision.allowed
        assert decision.reason == "Employee not assigned to this scope"

    def test_employee_needs_a_scope(self):
        decision = evaluate(ACTORS[Role.EMPLOYEE], TENANT_ID, Operation.MANUAL_ENTRY, PLANT_A, None, SNAPSHOT)
        assert not decision.allowed

    def test_employee_assigned_to_api_scope_may_push(self):
        decision = evaluate(ACTORS[Role.EMPLOYEE], TENANT_ID, Operation.API_PUSH, PLANT_A, GRID, SNAPSHOT)
        assert decision.allowed

    def test_head_write_resolves_through_process_chart(self):
        decision = evaluate(ACTORS[Role.EMPLOYEE_HEAD], TENANT_ID, Operation.MANUAL_ENTRY, PLANT_A, STEAM, SNAPSHOT)
        assert decision.allowed

    def test_client_admin_write_to_process_only_node(self):
        decision = evaluate(
            ACTORS[Role.CLIENT_ADMIN], TENANT_ID, Operation.FILE_IMPORT, PROCESS_NODE, BOILER, SNAPSHOT
        )
        assert decision.allowed


class TestNotFound:
    def test_missing_node(self):
        decision = evaluate(ACTORS[Role.CLIENT_ADMIN], TENANT_ID, Operation.MANUAL_ENTRY, "nope", DIESEL, SNAPSHOT)
        assert not decision.allowed
        assert decision.code is DecisionCode.NOT_FOUND
        assert decision.reason == "Node not found in organization or process chart"

    def test_missing_scope(self):
        decision = evaluate(ACTORS[Role.CLIENT_ADMIN], TENANT_ID, Operation.MANUAL_ENTRY, PLANT_A, "nope", SNAPSHOT)
        assert decision.code is DecisionCode.NOT_FOUND
        assert decision.reason == "Scope not found in organization or process chart"

    def test_no_chart(self):
        decision = evaluate(
            ACTORS[Role.CLIENT_ADMIN],
            TENANT_ID,
            Operation.MANUAL_ENTRY,
            PLANT_A,
            DIESEL,
            _snapshot(with_charts=False),
        )
        assert decision.code is DecisionCode.NOT_FOUND
        assert decision.reason == "No active organization chart for this client"

    def test_missing_tenant(self):
        decision = evaluate(ACTORS[Role.CLIENT_ADMIN], TENANT_ID, Operation.READ, snapshot=None)
        assert decision.code is DecisionCode.NOT_FOUND
        assert decision.reason == "Client not found"

    def test_inactive_tenant_denied(self):
        decision = evaluate(
            ACTORS[Role.CLIENT_ADMIN], TENANT_ID, Operation.READ, snapshot=_snapshot(is_active=False)
        )
        assert not decision.allowed
        assert decision.reason == "Client is not active"

    def test_super_admin_bypasses_everything(self):
        decision = evaluate(ACTORS[Role.SUPER_ADMIN], uuid4(), Operation.DELETE_MANUAL, "x", "y", None)
        assert decision.allowed


class TestReadRule:
    def test_employee_list_level_read(self):
        assert can_read(ACTORS[Role.EMPLOYEE], TENANT_ID, snapshot=SNAPSHOT)

    def test_employee_node_read_via_scope_assignment(self):
        assert can_read(ACTORS[Role.EMPLOYEE], TENANT_ID, PLANT_A, snapshot=SNAPSHOT)
        assert not can_read(ACTORS[Role.EMPLOYEE], TENANT_ID, PLANT_B, snapshot=SNAPSHOT)

    def test_head_reads_only_headed_nodes(self):
        assert can_read(ACTORS[Role.EMPLOYEE_HEAD], TENANT_ID, PLANT_A, snapshot=SNAPSHOT)
        assert not can_read(ACTORS[Role.EMPLOYEE_HEAD], TENANT_ID, PLANT_B, TRAVEL, snapshot=SNAPSHOT)

    def test_auditor_reads_anything_in_tenant(self):
        assert can_read(ACTORS[Role.AUDITOR], TENANT_ID, PLANT_B, TRAVEL, snapshot=SNAPSHOT)

    def test_ungoverning_consultant_cannot_read(self):
        stranger = Actor(uuid4(), Role.CONSULTANT)
        decision = evaluate(stranger, TENANT_ID, Operation.READ, snapshot=SNAPSHOT)
        assert decision.reason == "Consultant does not govern this client"


class TestGrantingEdge:
    @pytest.mark.parametrize(
        "role, operation, node_id, scope_id, edge",
        [
            (Role.CONSULTANT_ADMIN, Operation.CONNECT, PLANT_A, GRID, AssignmentEdge.TENANT_CREATOR),
            (Role.CONSULTANT, Operation.DISCONNECT, PLANT_A, GRID, AssignmentEdge.TENANT_CONSULTANT),
            (Role.CONSULTANT, Operation.READ, PLANT_B, TRAVEL, AssignmentEdge.TENANT_CONSULTANT),
            (Role.CONSULTANT_ADMIN, Operation.ASSIGN_HEAD, PLANT_A, None, AssignmentEdge.TENANT_CREATOR),
            (Role.CLIENT_ADMIN, Operation.MANUAL_ENTRY, PLANT_A, DIESEL, AssignmentEdge.TENANT_MEMBER),
            (Role.AUDITOR, Operation.READ, PLANT_B, TRAVEL, AssignmentEdge.TENANT_MEMBER),
            (Role.EMPLOYEE_HEAD, Operation.MANUAL_ENTRY, PLANT_A, STEAM, AssignmentEdge.NODE_HEAD),
            (Role.EMPLOYEE_HEAD, Operation.READ, PLANT_A, None, AssignmentEdge.NODE_HEAD),
            (Role.EMPLOYEE, Operation.MANUAL_ENTRY, PLANT_A, DIESEL, AssignmentEdge.SCOPE_EMPLOYEE),
            (Role.EMPLOYEE, Operation.READ, PLANT_A, None, AssignmentEdge.SCOPE_EMPLOYEE),
            (Role.EMPLOYEE, Operation.READ, None, None, AssignmentEdge.TENANT_MEMBER),
        ],
    )
    def test_allowed_decision_names_its_assignment(self, role, operation, node_id, scope_id, edge):
        decision = evaluate(ACTORS[role], TENANT_ID, operation, node_id, scope_id, SNAPSHOT)
        assert decision.allowed, decision.reason
        assert decision.edge is edge

    def test_super_admin_needs_no_assignment(self):
        decision = evaluate(ACTORS[Role.SUPER_ADMIN], TENANT_ID, Operation.CONNECT, PLANT_A, GRID, SNAPSHOT)
        assert decision.allowed
        assert decision.edge is None

    def test_denial_carries_no_edge(self):
        stranger = Actor(uuid4(), Role.EMPLOYEE, TENANT_ID)
        decision = evaluate(stranger, TENANT_ID, Operation.MANUAL_ENTRY, PLANT_A, DIESEL, SNAPSHOT)
        assert not decision.allowed
        assert decision.edge is None


TENANT_ROLES = [role for role in Role if role.is_tenant_member]


class TestTenantIsolation:
    @given(
        role=st.sampled_from(TENANT_ROLES),
        operation=st.sampled_from(list(Operation)),
        node_id=st.sampled_from([None, PLANT_A, PLANT_B, PROCESS_NODE]),
    )
    @settings(max_examples=200)
    def test_member_of_other_tenant_always_denied(self, role, operation, node_id):
        actor = Actor(uuid4(), role, tenant_id=uuid4())
        decision = evaluate(actor, TENANT_ID, operation, node_id, None, SNAPSHOT)

        assert not decision.allowed
        assert decision.reason == "Tenant isolation: actor belongs to a different tenant"

    @given(role=st.sampled_from(TENANT_ROLES), operation=st.sampled_from(list(Operation)))
    @settings(max_examples=100)
    def test_unbound_member_denied(self, role, operation):
        decision = evaluate(Actor(uuid4(), role), TENANT_ID, operation, PLANT_A, DIESEL, SNAPSHOT)
        assert not decision.allowed
        assert decision.reason.startswith("Tenant isolation")
