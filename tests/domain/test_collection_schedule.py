"""Tests for collection cadence and chart resolution helpers."""

from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest

from carbon_kernel.domain.collection import CollectionFrequency, is_overdue, next_due
from carbon_kernel.domain.org_chart import (
    ChartKind,
    IngestionChannel,
    OrgChart,
    ScopeChannel,
    Tenant,
    TenantSnapshot,
)
from carbon_kernel.domain.roles import Operation
from tests.conftest import BOILER, DIESEL, PLANT_A, PROCESS_NODE, STEAM, build_nodes

JAN_31 = datetime(2024, 1, 31, 9, 0, tzinfo=timezone.utc)


class TestNextDue:
    def test_real_time_has_no_due_date(self):
        assert next_due(CollectionFrequency.REAL_TIME, JAN_31) is None

    @pytest.mark.parametrize(
        "frequency,expected",
        [
            (CollectionFrequency.DAILY, datetime(2024, 2, 1, 9, 0, tzinfo=timezone.utc)),
            (CollectionFrequency.WEEKLY, datetime(2024, 2, 7, 9, 0, tzinfo=timezone.utc)),
            # Clamped to the last day of February (leap year).
            (CollectionFrequency.MONTHLY, datetime(2024, 2, 29, 9, 0, tzinfo=timezone.utc)),
            (CollectionFrequency.QUARTERLY, datetime(2024, 4, 30, 9, 0, tzinfo=timezone.utc)),
            (CollectionFrequency.ANNUALLY, datetime(2025, 1, 31, 9, 0, tzinfo=timezone.utc)),
        ],
    )
    def test_next_due(self, frequency, expected):
        assert next_due(frequency, JAN_31) == expected

    def test_monthly_across_year_end(self):
        dec = datetime(2024, 12, 15, tzinfo=timezone.utc)
        assert next_due(CollectionFrequency.MONTHLY, dec) == datetime(2025, 1, 15, tzinfo=timezone.utc)


class TestIsOverdue:
    def test_no_due_date_never_overdue(self):
        assert not is_overdue(None, JAN_31)

    def test_past_due(self):
        assert is_overdue(JAN_31, JAN_31 + timedelta(seconds=1))

    def test_exactly_due_is_not_overdue(self):
        assert not is_overdue(JAN_31, JAN_31)

    def test_grace_period(self):
        assert not is_overdue(JAN_31, JAN_31 + timedelta(hours=2), grace_hours=3)
        assert is_overdue(JAN_31, JAN_31 + timedelta(hours=4), grace_hours=3)


class TestChannels:
    def test_file_import_lands_on_manual_scopes(self):
        assert IngestionChannel.FILE_IMPORT.scope_channel is ScopeChannel.MANUAL
        assert IngestionChannel.FILE_IMPORT.operation is Operation.FILE_IMPORT

    def test_only_api_and_iot_are_gated(self):
        gated = {c for c in IngestionChannel if c.is_gated}
        assert gated == {IngestionChannel.API, IngestionChannel.IOT}

    def test_connectable_channels(self):
        assert ScopeChannel.API.is_connectable
        assert not ScopeChannel.MANUAL.is_connectable
        assert not ScopeChannel.DISABLED.is_connectable


class TestTenantSnapshotResolve:
    def setup_method(self):
        self.head_id, self.employee_id = uuid4(), uuid4()
        organization, process = build_nodes(self.head_id, self.employee_id)
        tenant_id = uuid4()
        self.snapshot = TenantSnapshot(
            tenant=Tenant(tenant_id),
            primary_chart=OrgChart(uuid4(), tenant_id, ChartKind.ORGANIZATION, organization),
            process_chart=OrgChart(uuid4(), tenant_id, ChartKind.PROCESS, process),
        )

    def test_primary_chart_wins(self):
        target = self.snapshot.resolve(PLANT_A, DIESEL)
        assert target.chart_kind is ChartKind.ORGANIZATION
        assert target.scope.scope_id == DIESEL

    def test_falls_back_to_process_chart_for_scope(self):
        target = self.snapshot.resolve(PLANT_A, STEAM)
        assert target.chart_kind is ChartKind.PROCESS

    def test_falls_back_to_process_chart_for_node(self):
        target = self.snapshot.resolve(PROCESS_NODE, BOILER)
        assert target.chart_kind is ChartKind.PROCESS

    def test_unknown_scope(self):
        assert self.snapshot.resolve(PLANT_A, "missing") is None

    def test_assignments_read_from_chart(self):
        assert self.snapshot.nodes_headed_by(self.head_id) == {PLANT_A}
        assert (PLANT_A, DIESEL) in self.snapshot.scopes_assigned_to(self.employee_id)
