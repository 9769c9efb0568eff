"""
AccessService -- loads tenant state and runs the access evaluator.

Thin imperative shell around ``carbon_kernel.domain.access``: the
evaluator stays pure, this service does the chart read and the logging,
and ``require`` converts a denial into a typed exception for callers that
want to short-circuit.
"""

from uuid import UUID

from sqlalchemy.orm import Session

from carbon_kernel.domain.access import AccessDecision, DecisionCode, evaluate
from carbon_kernel.domain.org_chart import TenantSnapshot
from carbon_kernel.domain.roles import Actor, Operation
from carbon_kernel.exceptions import (
    AuthorizationDeniedError,
    ChartNotFoundError,
    NodeNotFoundError,
    NotFoundError,
    ScopeNotFoundError,
    TenantNotFoundError,
)
from carbon_kernel.logging_config import get_logger
from carbon_kernel.services.chart_reader import OrganizationChartReader

logger = get_logger("services.access")


def raise_for_decision(
    decision: AccessDecision,
    snapshot: TenantSnapshot | None,
    tenant_id: UUID,
    node_id: str | None = None,
    scope_id: str | None = None,
) -> None:
    """Raise the typed gateway error for a denied decision.

    NOT_FOUND denials are narrowed to the missing thing: tenant, chart,
    node or scope.  Every other denial is an ``AuthorizationDeniedError``.
    """
    if decision.allowed:
        return
    if decision.code is not DecisionCode.NOT_FOUND:
        raise AuthorizationDeniedError(decision.reason)
    if snapshot is None:
        raise TenantNotFoundError(str(tenant_id))
    if not snapshot.has_chart:
        raise ChartNotFoundError(str(tenant_id))
    if node_id is not None:
        if snapshot.resolve(node_id) is None:
            raise NodeNotFoundError(node_id)
        if scope_id is not None:
            raise ScopeNotFoundError(node_id, scope_id)
    raise NotFoundError(decision.reason)


class AccessService:
    def __init__(self, session: Session, chart_reader: OrganizationChartReader | None = None):
        self._session = session
        self._charts = chart_reader or OrganizationChartReader(session)

    def check(
        self,
        actor: Actor,
        tenant_id: UUID,
        operation: Operation,
        node_id: str | None = None,
        scope_id: str | None = None,
        snapshot: TenantSnapshot | None = None,
    ) -> tuple[AccessDecision, TenantSnapshot | None]:
        """Evaluate, loading the snapshot first when the caller has none."""
        if snapshot is None:
            snapshot = self._charts.load_snapshot(tenant_id)
        decision = evaluate(actor, tenant_id, operation, node_id, scope_id, snapshot)
        if not decision.allowed:
            logger.warning(
                "access_denied",
                extra={
                    "operation": operation.value,
                    "role": actor.role.value,
                    "node_id": node_id,
                    "scope_id": scope_id,
                    "reason": decision.reason,
                    "decision_code": decision.code.value,
                },
            )
        return decision, snapshot

    def require(
        self,
        actor: Actor,
        tenant_id: UUID,
        operation: Operation,
        node_id: str | None = None,
        scope_id: str | None = None,
    ) -> TenantSnapshot:
        """Return the loaded snapshot, or raise for a denial."""
        decision, snapshot = self.check(actor, tenant_id, operation, node_id, scope_id)
        raise_for_decision(decision, snapshot, tenant_id, node_id, scope_id)
        if snapshot is None:
            raise TenantNotFoundError(str(tenant_id))
        return snapshot
