"""
Organization / process chart ORM model.

A chart is stored as one JSON document of nodes (each with its scopes), the
shape the chart store hands out.  ``to_domain`` converts it into the frozen
``OrgChart`` value the evaluator works on; ``replace_nodes`` writes back
after a head assignment or a channel change.
"""

from typing import Any
from uuid import UUID

from sqlalchemy import JSON, Boolean, ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from carbon_kernel.db.base import TrackedBase, UUIDString
from carbon_kernel.domain.org_chart import (
    ChartKind,
    ChartNode,
    OrgChart,
    ScopeChannel,
    ScopeConfig,
)


def scope_to_document(scope: ScopeConfig) -> dict[str, Any]:
    return {
        "scopeIdentifier": scope.scope_id,
        "scopeType": scope.scope_tier,
        "categoryName": scope.category_name,
        "activity": scope.activity,
        "calculationModel": scope.calculation_model,
        "inputType": scope.channel.value,
        "channelActive": scope.channel_active,
        "assignedEmployees": sorted(str(e) for e in scope.assigned_employee_ids),
        "apiEndpoint": scope.endpoint,
        "iotDeviceId": scope.device_id,
    }


def document_to_scope(doc: dict[str, Any]) -> ScopeConfig:
    return ScopeConfig(
        scope_id=doc["scopeIdentifier"],
        scope_tier=doc.get("scopeType", ""),
        category_name=doc.get("categoryName", ""),
        activity=doc.get("activity") or "",
        calculation_model=doc.get("calculationModel") or "tier 1",
        channel=ScopeChannel(doc.get("inputType", ScopeChannel.MANUAL.value)),
        channel_active=bool(doc.get("channelActive", True)),
        assigned_employee_ids=frozenset(UUID(e) for e in doc.get("assignedEmployees", [])),
        endpoint=doc.get("apiEndpoint"),
        device_id=doc.get("iotDeviceId"),
    )


def node_to_document(node: ChartNode) -> dict[str, Any]:
    return {
        "id": node.node_id,
        "label": node.label,
        "employeeHeadId": str(node.head_id) if node.head_id else None,
        "scopeDetails": [scope_to_document(s) for s in node.scopes],
    }


def document_to_node(doc: dict[str, Any]) -> ChartNode:
    head = doc.get("employeeHeadId")
    return ChartNode(
        node_id=doc["id"],
        label=doc.get("label", doc["id"]),
        head_id=UUID(head) if head else None,
        scopes=tuple(document_to_scope(s) for s in doc.get("scopeDetails", [])),
    )


class OrgChartModel(TrackedBase):
    __tablename__ = "carbon_org_charts"
    __table_args__ = (
        UniqueConstraint("tenant_id", "kind", name="uq_carbon_chart_tenant_kind"),
    )

    tenant_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("carbon_tenants.id"), nullable=False, index=True
    )
    kind: Mapped[str] = mapped_column(String(20), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    nodes: Mapped[list] = mapped_column(JSON, nullable=False, default=list)

    def to_domain(self) -> OrgChart:
        return OrgChart(
            chart_id=self.id,
            tenant_id=self.tenant_id,
            kind=ChartKind(self.kind),
            nodes=tuple(document_to_node(n) for n in self.nodes or []),
        )

    def replace_nodes(self, nodes: tuple[ChartNode, ...], actor_id: UUID) -> None:
        # Assign a new list so the JSON column is flagged dirty.
        self.nodes = [node_to_document(n) for n in nodes]
        self.updated_by_id = actor_id
