"""
OrganizationChartReader -- tenant and chart lookup with scoped write-back.

Responsibility:
    Load a tenant with its active organization chart and its process chart
    as a ``TenantSnapshot``, and apply the only chart mutations this core
    performs: scope channel fields (switch / connect / disconnect) and node
    head assignment.

Architecture position:
    Kernel > Services.  Called by AccessService, the connectivity and
    collection services, and the ingestion orchestrator.

Invariants enforced:
    - A scope update is applied to every chart that contains the scope, so
      the organization chart and the process chart never disagree about a
      scope's channel.
    - Head assignment only touches ``head_id``; channel updates only touch
      the channel designator, active flag, endpoint and device id.

Failure modes:
    - ``load_snapshot`` returns ``None`` for an unknown tenant (the access
      evaluator turns that into a denial).
    - ``NodeNotFoundError`` / ``ScopeNotFoundError`` from the write-back
      operations when neither chart holds the target.
"""

from dataclasses import replace
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from carbon_kernel.domain.org_chart import (
    ChartKind,
    ChartNode,
    OrgChart,
    ScopeChannel,
    ScopeConfig,
    TenantSnapshot,
)
from carbon_kernel.exceptions import NodeNotFoundError, ScopeNotFoundError
from carbon_kernel.logging_config import get_logger
from carbon_kernel.models.org_chart import OrgChartModel
from carbon_kernel.models.tenant import TenantModel

logger = get_logger("services.chart_reader")

_UNSET = object()


class OrganizationChartReader:
    def __init__(self, session: Session):
        self._session = session

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def _chart_model(self, tenant_id: UUID, kind: ChartKind, for_update: bool = False) -> OrgChartModel | None:
        stmt = select(OrgChartModel).where(
            OrgChartModel.tenant_id == tenant_id,
            OrgChartModel.kind == kind.value,
            OrgChartModel.is_active.is_(True),
        )
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        return self._session.execute(stmt).scalar_one_or_none()

    def get_active_chart(self, tenant_id: UUID) -> OrgChart | None:
        model = self._chart_model(tenant_id, ChartKind.ORGANIZATION)
        return model.to_domain() if model is not None else None

    def get_process_chart(self, tenant_id: UUID) -> OrgChart | None:
        model = self._chart_model(tenant_id, ChartKind.PROCESS)
        return model.to_domain() if model is not None else None

    def load_snapshot(self, tenant_id: UUID) -> TenantSnapshot | None:
        tenant = self._session.get(TenantModel, tenant_id)
        if tenant is None:
            logger.info("tenant_not_found", extra={"tenant_id": str(tenant_id)})
            return None
        return TenantSnapshot(
            tenant=tenant.to_domain(),
            primary_chart=self.get_active_chart(tenant_id),
            process_chart=self.get_process_chart(tenant_id),
        )

    # ------------------------------------------------------------------
    # Write-back
    # ------------------------------------------------------------------

    def _locked_charts(self, tenant_id: UUID) -> list[OrgChartModel]:
        return [
            model
            for kind in (ChartKind.ORGANIZATION, ChartKind.PROCESS)
            if (model := self._chart_model(tenant_id, kind, for_update=True)) is not None
        ]

    def update_scope(
        self,
        tenant_id: UUID,
        node_id: str,
        scope_id: str,
        actor_id: UUID,
        *,
        channel: ScopeChannel | None = None,
        channel_active: bool | None = None,
        endpoint: str | None | object = _UNSET,
        device_id: str | None | object = _UNSET,
    ) -> ScopeConfig:
        """Apply channel changes to the scope in every chart that holds it."""
        changes: dict = {}
        if channel is not None:
            changes["channel"] = channel
        if channel_active is not None:
            changes["channel_active"] = channel_active
        if endpoint is not _UNSET:
            changes["endpoint"] = endpoint
        if device_id is not _UNSET:
            changes["device_id"] = device_id

        updated: ScopeConfig | None = None
        for model in self._locked_charts(tenant_id):
            chart = model.to_domain()
            node = chart.node(node_id)
            if node is None or node.scope(scope_id) is None:
                continue
            new_scopes = tuple(
                replace(s, **changes) if s.scope_id == scope_id else s for s in node.scopes
            )
            new_node = replace(node, scopes=new_scopes)
            model.replace_nodes(_swap_node(chart, new_node), actor_id)
            updated = updated or new_node.scope(scope_id)

        if updated is None:
            raise ScopeNotFoundError(node_id, scope_id)
        self._session.flush()
        logger.info(
            "scope_updated",
            extra={
                "tenant_id": str(tenant_id),
                "node_id": node_id,
                "scope_id": scope_id,
                "changes": sorted(changes),
            },
        )
        return updated

    def assign_node_head(
        self,
        tenant_id: UUID,
        node_id: str,
        head_id: UUID | None,
        actor_id: UUID,
    ) -> ChartNode:
        updated: ChartNode | None = None
        for model in self._locked_charts(tenant_id):
            chart = model.to_domain()
            node = chart.node(node_id)
            if node is None:
                continue
            new_node = replace(node, head_id=head_id)
            model.replace_nodes(_swap_node(chart, new_node), actor_id)
            updated = updated or new_node

        if updated is None:
            raise NodeNotFoundError(node_id)
        self._session.flush()
        logger.info(
            "node_head_assigned",
            extra={"tenant_id": str(tenant_id), "node_id": node_id, "head_id": head_id},
        )
        return updated


def _swap_node(chart: OrgChart, new_node: ChartNode) -> tuple[ChartNode, ...]:
    return tuple(new_node if n.node_id == new_node.node_id else n for n in chart.nodes)
