"""
CollectionConfigService -- per-triple collection metadata and status.

Responsibility:
    Upsert the collection configuration of a (tenant, node, scope) after
    each accepted record (last-record pointer, point count, next due date)
    and after channel changes, and report per-triple collection status with
    a derived overdue flag.

Architecture position:
    Kernel > Services.  Written by the ingestion orchestrator and the
    connectivity service; read by the collection status surface.

Invariants enforced:
    - Last writer wins: concurrent upserts for one triple converge on the
      write that lands last.  Creation races are resolved with a savepoint
      and re-select, never by raising to the caller.
    - ``next_due_at`` is maintained for manual channels only; API and IoT
      feeds are marked active when data arrives.
"""

from collections import Counter
from dataclasses import dataclass
from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from carbon_kernel.domain.clock import Clock
from carbon_kernel.domain.collection import CollectionFrequency, is_overdue, next_due
from carbon_kernel.domain.cumulative import TripleKey
from carbon_kernel.domain.org_chart import ScopeChannel
from carbon_kernel.domain.roles import Actor, Operation, Role
from carbon_kernel.logging_config import get_logger
from carbon_kernel.models.collection_config import CollectionConfigModel
from carbon_kernel.services.access_service import AccessService

logger = get_logger("services.collection")


@dataclass(frozen=True)
class CollectionStatus:
    node_id: str
    scope_id: str
    channel: ScopeChannel
    is_active: bool
    collection_frequency: CollectionFrequency
    last_record_id: UUID | None
    last_recorded_at: datetime | None
    next_due_at: datetime | None
    total_points: int
    is_overdue: bool


@dataclass(frozen=True)
class CollectionSummary:
    statuses: tuple[CollectionStatus, ...]
    total: int
    overdue: int
    active: int
    by_channel: dict[str, int]

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "overdue": self.overdue,
            "active": self.active,
            "by_channel": dict(self.by_channel),
        }


class CollectionConfigService:
    def __init__(
        self,
        session: Session,
        clock: Clock,
        default_frequency: CollectionFrequency = CollectionFrequency.MONTHLY,
        overdue_grace_hours: int = 0,
    ):
        self._session = session
        self._clock = clock
        self._default_frequency = default_frequency
        self._grace_hours = overdue_grace_hours

    def _select(self, triple: TripleKey) -> CollectionConfigModel | None:
        tenant_id, node_id, scope_id = triple
        return self._session.execute(
            select(CollectionConfigModel)
            .where(
                CollectionConfigModel.tenant_id == tenant_id,
                CollectionConfigModel.node_id == node_id,
                CollectionConfigModel.scope_id == scope_id,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def get_or_create(
        self, triple: TripleKey, channel: ScopeChannel, actor_id: UUID
    ) -> CollectionConfigModel:
        config = self._select(triple)
        if config is not None:
            return config

        tenant_id, node_id, scope_id = triple
        savepoint = self._session.begin_nested()
        try:
            config = CollectionConfigModel(
                tenant_id=tenant_id,
                node_id=node_id,
                scope_id=scope_id,
                channel=channel.value,
                is_active=True,
                collection_frequency=self._default_frequency.value,
                total_points=0,
                created_by_id=actor_id,
            )
            self._session.add(config)
            self._session.flush()
            savepoint.commit()
            return config
        except IntegrityError:
            logger.debug("collection_config_race_retry", extra={"scope_id": scope_id})
            savepoint.rollback()
            config = self._select(triple)
            if config is None:
                raise
            return config

    def record_collection(
        self,
        triple: TripleKey,
        channel: ScopeChannel,
        record_id: UUID,
        recorded_at: datetime,
        actor_id: UUID,
    ) -> CollectionConfigModel:
        config = self.get_or_create(triple, channel, actor_id)
        now = self._clock.now()
        config.channel = channel.value
        config.last_record_id = record_id
        config.last_recorded_at = recorded_at
        config.last_collected_at = now
        config.total_points = (config.total_points or 0) + 1
        config.updated_by_id = actor_id
        if channel is ScopeChannel.MANUAL:
            config.next_due_at = next_due(CollectionFrequency(config.collection_frequency), now)
        elif channel.is_connectable:
            config.is_active = True
        self._session.flush()
        return config

    def set_frequency(
        self, triple: TripleKey, channel: ScopeChannel, frequency: CollectionFrequency, actor_id: UUID
    ) -> CollectionConfigModel:
        config = self.get_or_create(triple, channel, actor_id)
        config.collection_frequency = frequency.value
        base = config.last_collected_at or self._clock.now()
        config.next_due_at = next_due(frequency, base) if channel is ScopeChannel.MANUAL else None
        config.updated_by_id = actor_id
        self._session.flush()
        return config

    # ------------------------------------------------------------------
    # Status surface
    # ------------------------------------------------------------------

    def _to_status(self, config: CollectionConfigModel, now: datetime) -> CollectionStatus:
        channel = ScopeChannel(config.channel)
        return CollectionStatus(
            node_id=config.node_id,
            scope_id=config.scope_id,
            channel=channel,
            is_active=config.is_active,
            collection_frequency=CollectionFrequency(config.collection_frequency),
            last_record_id=config.last_record_id,
            last_recorded_at=config.last_recorded_at,
            next_due_at=config.next_due_at,
            total_points=config.total_points,
            is_overdue=channel is ScopeChannel.MANUAL
            and is_overdue(config.next_due_at, now, self._grace_hours),
        )

    def collection_status(
        self,
        actor: Actor,
        tenant_id: UUID,
        access: AccessService | None = None,
    ) -> CollectionSummary:
        """Per-triple status visible to ``actor``, plus summary counts."""
        access = access or AccessService(self._session)
        snapshot = access.require(actor, tenant_id, Operation.READ)

        configs = self._session.execute(
            select(CollectionConfigModel)
            .where(CollectionConfigModel.tenant_id == tenant_id)
            .order_by(CollectionConfigModel.node_id, CollectionConfigModel.scope_id)
        ).scalars().all()

        if actor.role is Role.EMPLOYEE_HEAD:
            headed = snapshot.nodes_headed_by(actor.actor_id)
            configs = [c for c in configs if c.node_id in headed]
        elif actor.role is Role.EMPLOYEE:
            assigned = snapshot.scopes_assigned_to(actor.actor_id)
            configs = [c for c in configs if (c.node_id, c.scope_id) in assigned]

        now = self._clock.now()
        statuses = tuple(self._to_status(c, now) for c in configs)
        by_channel = Counter(s.channel.value for s in statuses)
        return CollectionSummary(
            statuses=statuses,
            total=len(statuses),
            overdue=sum(1 for s in statuses if s.is_overdue),
            active=sum(1 for s in statuses if s.is_active),
            by_channel=dict(by_channel),
        )
