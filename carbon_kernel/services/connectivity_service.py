"""
ConnectivityService -- channel wiring and node-head assignment.

Responsibility:
    Switch a scope between manual, API and IoT input; connect, reconnect
    and disconnect API/IoT feeds; assign employee heads to nodes.  Each
    operation writes back to the chart(s), mirrors the change into the
    collection configuration, commits, and publishes an event.

Architecture position:
    Kernel > Services.  Authorization uses the connectivity rule
    (super admin, creating consultant admin, assigned consultant) for
    channel operations and the administration rule for head assignment.

Invariants enforced:
    - Only API/IoT scopes can be connected or disconnected; a manual or
      disabled scope is rejected with ``ValidationFailedError``.
    - Disconnection is an operational state: it flips ``channel_active``
      and never changes who is authorized to write.
"""

from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Protocol
from uuid import UUID

from sqlalchemy.orm import Session

from carbon_kernel.domain.clock import Clock
from carbon_kernel.domain.collection import CollectionFrequency
from carbon_kernel.domain.org_chart import ChartNode, ScopeChannel, ScopeConfig
from carbon_kernel.domain.roles import Actor, Operation
from carbon_kernel.exceptions import ScopeNotFoundError, ValidationFailedError
from carbon_kernel.logging_config import LogContext, get_logger
from carbon_kernel.services.access_service import AccessService
from carbon_kernel.services.chart_reader import OrganizationChartReader
from carbon_kernel.services.collection_service import CollectionConfigService
from carbon_kernel.services.cumulative_service import triple_of

logger = get_logger("services.connectivity")


class EventSink(Protocol):
    def publish(self, event_name: str, payload: dict[str, Any]) -> None:
        ...


@dataclass(frozen=True)
class ConnectivityResult:
    tenant_id: UUID
    node_id: str
    scope: ScopeConfig

    def to_dict(self) -> dict[str, Any]:
        return {
            "tenant_id": str(self.tenant_id),
            "node_id": self.node_id,
            "scope_id": self.scope.scope_id,
            "channel": self.scope.channel.value,
            "channel_active": self.scope.channel_active,
            "endpoint": self.scope.endpoint,
            "device_id": self.scope.device_id,
        }


class ConnectivityService:
    def __init__(
        self,
        session: Session,
        clock: Clock,
        publisher: EventSink,
        default_frequency: CollectionFrequency = CollectionFrequency.MONTHLY,
        auto_commit: bool = True,
    ):
        self._session = session
        self._clock = clock
        self._publisher = publisher
        self._auto_commit = auto_commit
        self._charts = OrganizationChartReader(session)
        self._access = AccessService(session, self._charts)
        self._collection = CollectionConfigService(session, clock, default_frequency)

    @contextmanager
    def _unit_of_work(self) -> Iterator[None]:
        try:
            yield
        except Exception:
            if self._auto_commit:
                self._session.rollback()
            raise
        if self._auto_commit:
            self._session.commit()

    def _publish(self, event_name: str, payload: dict[str, Any]) -> None:
        payload = {**payload, "server_time": self._clock.now().isoformat()}
        try:
            self._publisher.publish(event_name, payload)
        except Exception:
            logger.exception("event_publish_failed", extra={"event_name": event_name})

    def _require_scope(
        self, actor: Actor, tenant_id: UUID, node_id: str, scope_id: str, operation: Operation
    ) -> ScopeConfig:
        snapshot = self._access.require(actor, tenant_id, operation, node_id, scope_id)
        target = snapshot.resolve(node_id, scope_id)
        if target is None or target.scope is None:
            raise ScopeNotFoundError(node_id, scope_id)
        return target.scope

    # ------------------------------------------------------------------
    # Channel operations
    # ------------------------------------------------------------------

    def switch_channel(
        self,
        actor: Actor,
        tenant_id: UUID,
        node_id: str,
        scope_id: str,
        channel: ScopeChannel,
        endpoint: str | None = None,
        device_id: str | None = None,
    ) -> ConnectivityResult:
        with LogContext.bind(tenant_id=tenant_id, actor_id=actor.actor_id, channel=channel.value):
            with self._unit_of_work():
                self._require_scope(actor, tenant_id, node_id, scope_id, Operation.SWITCH_CHANNEL)
                scope = self._charts.update_scope(
                    tenant_id,
                    node_id,
                    scope_id,
                    actor.actor_id,
                    channel=channel,
                    channel_active=channel.is_connectable,
                    endpoint=endpoint if channel is ScopeChannel.API else None,
                    device_id=device_id if channel is ScopeChannel.IOT else None,
                )
                config = self._collection.get_or_create(
                    triple_of(tenant_id, node_id, scope_id), channel, actor.actor_id
                )
                config.channel = channel.value
                config.is_active = channel is not ScopeChannel.DISABLED
                config.endpoint = scope.endpoint
                config.device_id = scope.device_id
                config.updated_by_id = actor.actor_id
                self._session.flush()

            result = ConnectivityResult(tenant_id, node_id, scope)
            logger.info("scope_channel_switched", extra=result.to_dict())
            self._publish("scope-channel-switched", result.to_dict())
            return result

    def disconnect(
        self, actor: Actor, tenant_id: UUID, node_id: str, scope_id: str
    ) -> ConnectivityResult:
        return self._set_connection(actor, tenant_id, node_id, scope_id, Operation.DISCONNECT, False)

    def connect(
        self, actor: Actor, tenant_id: UUID, node_id: str, scope_id: str
    ) -> ConnectivityResult:
        return self._set_connection(actor, tenant_id, node_id, scope_id, Operation.CONNECT, True)

    def reconnect(
        self, actor: Actor, tenant_id: UUID, node_id: str, scope_id: str
    ) -> ConnectivityResult:
        return self._set_connection(actor, tenant_id, node_id, scope_id, Operation.RECONNECT, True)

    def _set_connection(
        self,
        actor: Actor,
        tenant_id: UUID,
        node_id: str,
        scope_id: str,
        operation: Operation,
        active: bool,
    ) -> ConnectivityResult:
        with LogContext.bind(tenant_id=tenant_id, actor_id=actor.actor_id):
            with self._unit_of_work():
                current = self._require_scope(actor, tenant_id, node_id, scope_id, operation)
                if not current.channel.is_connectable:
                    raise ValidationFailedError(
                        f"Cannot {operation.value} a {current.channel.value} scope; "
                        "only API and IOT inputs have a connection"
                    )

                scope = self._charts.update_scope(
                    tenant_id, node_id, scope_id, actor.actor_id, channel_active=active
                )
                now = self._clock.now()
                config = self._collection.get_or_create(
                    triple_of(tenant_id, node_id, scope_id), scope.channel, actor.actor_id
                )
                config.is_active = active
                config.endpoint = scope.endpoint
                config.device_id = scope.device_id
                config.updated_by_id = actor.actor_id
                if active:
                    config.reconnected_at = now
                    config.reconnected_by_id = actor.actor_id
                else:
                    config.disconnected_at = now
                    config.disconnected_by_id = actor.actor_id
                self._session.flush()

            result = ConnectivityResult(tenant_id, node_id, scope)
            event = "scope-reconnected" if active else "scope-disconnected"
            logger.info(
                "scope_reconnected" if active else "scope_disconnected",
                extra={**result.to_dict(), "operation": operation.value},
            )
            self._publish(event, result.to_dict())
            return result

    # ------------------------------------------------------------------
    # Chart structure
    # ------------------------------------------------------------------

    def assign_head(
        self, actor: Actor, tenant_id: UUID, node_id: str, head_id: UUID | None
    ) -> ChartNode:
        with LogContext.bind(tenant_id=tenant_id, actor_id=actor.actor_id):
            with self._unit_of_work():
                self._access.require(actor, tenant_id, Operation.ASSIGN_HEAD, node_id)
                node = self._charts.assign_node_head(tenant_id, node_id, head_id, actor.actor_id)

            self._publish(
                "node-head-assigned",
                {
                    "tenant_id": str(tenant_id),
                    "node_id": node_id,
                    "head_id": str(head_id) if head_id else None,
                },
            )
            return node
