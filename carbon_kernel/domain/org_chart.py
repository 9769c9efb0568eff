"""
Organization chart domain types.

A tenant has one active organization chart and optionally one process chart.
Both are ordered node lists; every node holds an ordered list of scopes.
``TenantSnapshot`` bundles a tenant with its charts so the access evaluator
and the orchestrator can decide against already-loaded state.
"""

from dataclasses import dataclass, field
from enum import Enum
from uuid import UUID

from carbon_kernel.domain.roles import Operation


class ScopeChannel(str, Enum):
    """Input channel a scope is wired to."""

    API = "API"
    IOT = "IOT"
    MANUAL = "manual"
    DISABLED = "disabled"

    @property
    def is_connectable(self) -> bool:
        return self in (ScopeChannel.API, ScopeChannel.IOT)


class IngestionChannel(str, Enum):
    """The four paths a measurement can arrive through."""

    API = "API"
    IOT = "IOT"
    MANUAL = "MANUAL"
    FILE_IMPORT = "FILE_IMPORT"

    @property
    def scope_channel(self) -> ScopeChannel:
        # File imports land on manual scopes.
        return _SCOPE_CHANNELS[self]

    @property
    def operation(self) -> Operation:
        return _CHANNEL_OPERATIONS[self]

    @property
    def is_gated(self) -> bool:
        """Pull-API and IoT pushes are refused while the connection is off."""
        return self in (IngestionChannel.API, IngestionChannel.IOT)


_SCOPE_CHANNELS = {
    IngestionChannel.API: ScopeChannel.API,
    IngestionChannel.IOT: ScopeChannel.IOT,
    IngestionChannel.MANUAL: ScopeChannel.MANUAL,
    IngestionChannel.FILE_IMPORT: ScopeChannel.MANUAL,
}

_CHANNEL_OPERATIONS = {
    IngestionChannel.API: Operation.API_PUSH,
    IngestionChannel.IOT: Operation.IOT_PUSH,
    IngestionChannel.MANUAL: Operation.MANUAL_ENTRY,
    IngestionChannel.FILE_IMPORT: Operation.FILE_IMPORT,
}


class ChartKind(str, Enum):
    ORGANIZATION = "organization"
    PROCESS = "process"


@dataclass(frozen=True)
class ScopeConfig:
    scope_id: str
    scope_tier: str
    category_name: str
    activity: str = ""
    calculation_model: str = "tier 1"
    channel: ScopeChannel = ScopeChannel.MANUAL
    channel_active: bool = True
    assigned_employee_ids: frozenset[UUID] = field(default_factory=frozenset)
    endpoint: str | None = None
    device_id: str | None = None


@dataclass(frozen=True)
class ChartNode:
    node_id: str
    label: str
    head_id: UUID | None = None
    scopes: tuple[ScopeConfig, ...] = ()

    def scope(self, scope_id: str) -> ScopeConfig | None:
        for scope in self.scopes:
            if scope.scope_id == scope_id:
                return scope
        return None


@dataclass(frozen=True)
class OrgChart:
    chart_id: UUID
    tenant_id: UUID
    kind: ChartKind
    nodes: tuple[ChartNode, ...] = ()

    def node(self, node_id: str) -> ChartNode | None:
        for node in self.nodes:
            if node.node_id == node_id:
                return node
        return None


@dataclass(frozen=True)
class Tenant:
    """
    A client organization.

    ``created_by_id`` is the consultant admin who created the tenant and
    ``assigned_consultant_id`` the consultant currently working it; each is
    independently authorized for connectivity operations.
    """

    tenant_id: UUID
    is_active: bool = True
    created_by_id: UUID | None = None
    assigned_consultant_id: UUID | None = None


@dataclass(frozen=True)
class ResolvedTarget:
    node: ChartNode
    scope: ScopeConfig | None
    chart_kind: ChartKind


@dataclass(frozen=True)
class TenantSnapshot:
    tenant: Tenant
    primary_chart: OrgChart | None = None
    process_chart: OrgChart | None = None

    @property
    def has_chart(self) -> bool:
        return self.primary_chart is not None or self.process_chart is not None

    def resolve(self, node_id: str, scope_id: str | None = None) -> ResolvedTarget | None:
        """
        Locate a node (and scope) in the primary chart, then the process chart.

        The process chart is consulted when the primary chart lacks the node,
        or has the node but not the requested scope.
        """
        for chart in (self.primary_chart, self.process_chart):
            if chart is None:
                continue
            node = chart.node(node_id)
            if node is None:
                continue
            if scope_id is None:
                return ResolvedTarget(node=node, scope=None, chart_kind=chart.kind)
            scope = node.scope(scope_id)
            if scope is not None:
                return ResolvedTarget(node=node, scope=scope, chart_kind=chart.kind)
        return None

    def nodes_headed_by(self, actor_id: UUID) -> set[str]:
        return {
            node.node_id
            for chart in (self.primary_chart, self.process_chart)
            if chart is not None
            for node in chart.nodes
            if node.head_id == actor_id
        }

    def scopes_assigned_to(self, actor_id: UUID) -> set[tuple[str, str]]:
        return {
            (node.node_id, scope.scope_id)
            for chart in (self.primary_chart, self.process_chart)
            if chart is not None
            for node in chart.nodes
            for scope in node.scopes
            if actor_id in scope.assigned_employee_ids
        }
