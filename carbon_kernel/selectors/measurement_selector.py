"""
MeasurementSelector -- role-filtered reads of measurement records and
cumulative state.

List-level reads are allowed for heads and employees, but their results are
narrowed here to the nodes they head / scopes they are assigned to.
"""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from carbon_kernel.domain.cumulative import CumulativeState
from carbon_kernel.domain.measurement import MeasurementRecord
from carbon_kernel.domain.roles import Actor, Operation, Role
from carbon_kernel.models.measurement import MeasurementRecordModel
from carbon_kernel.services.access_service import AccessService
from carbon_kernel.services.cumulative_service import CumulativeService, triple_of


class MeasurementSelector:
    def __init__(self, session: Session, access: AccessService | None = None):
        self._session = session
        self._access = access or AccessService(session)

    def list_records(
        self,
        actor: Actor,
        tenant_id: UUID,
        node_id: str | None = None,
        scope_id: str | None = None,
        include_deleted: bool = False,
    ) -> list[MeasurementRecord]:
        snapshot = self._access.require(actor, tenant_id, Operation.READ, node_id, scope_id)

        stmt = select(MeasurementRecordModel).where(MeasurementRecordModel.tenant_id == tenant_id)
        if node_id is not None:
            stmt = stmt.where(MeasurementRecordModel.node_id == node_id)
        if scope_id is not None:
            stmt = stmt.where(MeasurementRecordModel.scope_id == scope_id)
        if not include_deleted:
            stmt = stmt.where(MeasurementRecordModel.is_deleted.is_(False))
        stmt = stmt.order_by(MeasurementRecordModel.recorded_at, MeasurementRecordModel.created_at)

        records = [m.to_domain() for m in self._session.execute(stmt).scalars()]

        if actor.role is Role.EMPLOYEE_HEAD:
            headed = snapshot.nodes_headed_by(actor.actor_id)
            records = [r for r in records if r.node_id in headed]
        elif actor.role is Role.EMPLOYEE:
            assigned = snapshot.scopes_assigned_to(actor.actor_id)
            records = [r for r in records if (r.node_id, r.scope_id) in assigned]
        return records

    def get_record(self, actor: Actor, record_id: UUID) -> MeasurementRecord | None:
        model = self._session.get(MeasurementRecordModel, record_id)
        if model is None:
            return None
        self._access.require(actor, model.tenant_id, Operation.READ, model.node_id, model.scope_id)
        return model.to_domain()

    def get_cumulative(
        self, actor: Actor, tenant_id: UUID, node_id: str, scope_id: str
    ) -> CumulativeState:
        self._access.require(actor, tenant_id, Operation.READ, node_id, scope_id)
        return CumulativeService(self._session).current(triple_of(tenant_id, node_id, scope_id))
