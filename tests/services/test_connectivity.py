"""ConnectivityService: channel switching, connect/disconnect, head assignment."""

from uuid import uuid4

import pytest
from sqlalchemy import select

from carbon_ingestion.domain.types import IngestionStatus
from carbon_ingestion.services.collaborators import RecordingEventPublisher
from carbon_kernel.domain.org_chart import ScopeChannel
from carbon_kernel.exceptions import AuthorizationDeniedError, ValidationFailedError
from carbon_kernel.models.collection_config import CollectionConfigModel
from carbon_kernel.services.chart_reader import OrganizationChartReader
from carbon_kernel.services.connectivity_service import ConnectivityService
from tests.conftest import DIESEL, GRID, METER, PLANT_A, PLANT_B, PROCESS_NODE


@pytest.fixture
def events():
    return RecordingEventPublisher()


@pytest.fixture
def connectivity(session, deterministic_clock, events):
    return ConnectivityService(session, deterministic_clock, events)


def _scope(session, tenant_id, node_id, scope_id):
    return OrganizationChartReader(session).load_snapshot(tenant_id).resolve(node_id, scope_id).scope


class TestDisconnect:
    def test_disconnect_and_reconnect(self, connectivity, session, tenant, events, deterministic_clock):
        connectivity.disconnect(tenant.consultant_admin, tenant.tenant_id, PLANT_A, GRID)
        assert _scope(session, tenant.tenant_id, PLANT_A, GRID).channel_active is False

        config = session.execute(select(CollectionConfigModel)).scalar_one()
        assert config.is_active is False
        assert config.disconnected_by_id == tenant.consultant_admin.actor_id
        assert config.disconnected_at == deterministic_clock.now()

        deterministic_clock.advance(hours=1)
        result = connectivity.reconnect(tenant.consultant, tenant.tenant_id, PLANT_A, GRID)

        assert result.scope.channel_active is True
        assert config.reconnected_by_id == tenant.consultant.actor_id
        assert events.names() == ["scope-disconnected", "scope-reconnected"]
        _, payload = events.events[1]
        assert payload["scope_id"] == GRID
        assert "server_time" in payload

    def test_reconnected_scope_accepts_data_again(self, connectivity, orchestrator, tenant):
        connectivity.disconnect(tenant.consultant, tenant.tenant_id, PLANT_A, METER)
        blocked = orchestrator.ingest_iot(tenant.client_admin, tenant.tenant_id, PLANT_A, METER, {"consumption": 1})
        connectivity.connect(tenant.consultant, tenant.tenant_id, PLANT_A, METER)
        accepted = orchestrator.ingest_iot(tenant.client_admin, tenant.tenant_id, PLANT_A, METER, {"consumption": 1})

        assert blocked.status is IngestionStatus.CHANNEL_DISABLED
        assert accepted.is_success

    def test_disconnect_does_not_change_write_rights(self, connectivity, orchestrator, tenant):
        connectivity.disconnect(tenant.consultant, tenant.tenant_id, PLANT_A, GRID)
        result = orchestrator.ingest_api(tenant.auditor, tenant.tenant_id, PLANT_A, GRID, {"electricity": 1})
        assert result.status is IngestionStatus.DENIED

    def test_manual_scope_has_no_connection(self, connectivity, tenant):
        with pytest.raises(ValidationFailedError):
            connectivity.disconnect(tenant.consultant, tenant.tenant_id, PLANT_A, DIESEL)

    def test_client_admin_cannot_disconnect(self, connectivity, session, tenant, events):
        with pytest.raises(AuthorizationDeniedError) as exc_info:
            connectivity.disconnect(tenant.client_admin, tenant.tenant_id, PLANT_A, GRID)

        assert "Only Super Admin" in exc_info.value.reason
        assert _scope(session, tenant.tenant_id, PLANT_A, GRID).channel_active is True
        assert events.events == []


class TestSwitchChannel:
    def test_switch_manual_to_iot(self, connectivity, session, tenant, events):
        result = connectivity.switch_channel(
            tenant.super_admin, tenant.tenant_id, PLANT_A, DIESEL, ScopeChannel.IOT, device_id="dev-7"
        )

        assert result.scope.channel is ScopeChannel.IOT
        assert result.scope.channel_active is True
        assert result.scope.device_id == "dev-7"
        assert result.scope.endpoint is None
        # Assignments survive a channel switch.
        assert result.scope.assigned_employee_ids == frozenset({tenant.employee.actor_id})

        config = session.execute(select(CollectionConfigModel)).scalar_one()
        assert config.channel == "IOT"
        assert config.device_id == "dev-7"
        assert events.names() == ["scope-channel-switched"]

    def test_switch_to_manual_clears_wiring(self, connectivity, tenant):
        result = connectivity.switch_channel(tenant.consultant, tenant.tenant_id, PLANT_A, GRID, ScopeChannel.MANUAL)
        assert result.scope.endpoint is None
        assert result.scope.channel_active is False

    def test_switched_scope_accepts_new_channel(self, connectivity, orchestrator, tenant):
        connectivity.switch_channel(tenant.consultant, tenant.tenant_id, PLANT_A, DIESEL, ScopeChannel.API)
        result = orchestrator.ingest_api(tenant.employee, tenant.tenant_id, PLANT_A, DIESEL, {"fuelConsumption": 2})
        assert result.is_success


class TestAssignHead:
    def test_client_admin_assigns_head(self, connectivity, session, tenant, events):
        new_head = uuid4()
        node = connectivity.assign_head(tenant.client_admin, tenant.tenant_id, PLANT_B, new_head)

        assert node.head_id == new_head
        snapshot = OrganizationChartReader(session).load_snapshot(tenant.tenant_id)
        assert snapshot.nodes_headed_by(new_head) == {PLANT_B}
        assert events.names() == ["node-head-assigned"]

    def test_assigns_in_process_chart_too(self, connectivity, session, tenant):
        new_head = uuid4()
        connectivity.assign_head(tenant.client_admin, tenant.tenant_id, PROCESS_NODE, new_head)
        assert OrganizationChartReader(session).load_snapshot(tenant.tenant_id).nodes_headed_by(new_head) == {PROCESS_NODE}

    def test_head_cannot_assign_heads(self, connectivity, tenant):
        with pytest.raises(AuthorizationDeniedError):
            connectivity.assign_head(tenant.head, tenant.tenant_id, PLANT_B, uuid4())
