"""
IngestionOrchestrator -- the four-channel measurement pipeline.

Responsibility:
    Take a measurement from pull-API, IoT push, manual entry or file import
    through every stage, in order:

        received -> authorized -> chart-resolved -> [API/IoT: channel-active gate]
        -> normalized -> persisted -> cumulative-updated
        -> calculation-dispatched -> event-published -> responded

    Manual edits and deletes re-enter at "persisted" and always recompute
    the triple's cumulative state from history.

Architecture position:
    Ingestion > Services.  Owns its transaction boundary: every accepted
    record commits its insert, cumulative update and collection-config
    upsert together.  Set ``auto_commit=False`` to leave commits to the
    caller (savepoints still isolate failing rows).

Invariants enforced:
    - Authorization and the channel gate run before any state mutation.
    - A scope wired to another channel is a hard failure; the record never
      reaches normalization.
    - Persist and cumulative update for one (tenant, node, scope) run inside
      that triple's critical section; no two requests interleave there.
    - Batches are sorted by timestamp before any row is applied; rows that
      share a timestamp are rejected, the rest continue.
    - Calculation failure is recorded on the record and never rolls back
      the accepted measurement.

Failure modes:
    - Gateway errors (``CarbonKernelError``) become structured results:
      single operations return a failed ``IngestionResult``; batch rows are
      reported per index.
    - Anything else (database outage, programming error) rolls back the
      current unit of work and propagates.
"""

from __future__ import annotations

import time
from collections.abc import Iterator, Mapping, Sequence
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from carbon_config.schema import GatewaySettings
from carbon_kernel.db.types import to_json_safe
from carbon_kernel.domain.clock import Clock
from carbon_kernel.domain.cumulative import CumulativeState, order_batch
from carbon_kernel.domain.measurement import (
    CalculationOutcome,
    CalculationStatus,
    EditSnapshot,
)
from carbon_kernel.domain.org_chart import (
    IngestionChannel,
    ResolvedTarget,
    ScopeChannel,
    TenantSnapshot,
)
from carbon_kernel.domain.roles import Actor, Operation
from carbon_kernel.exceptions import (
    CarbonKernelError,
    ChannelDisabledError,
    ChannelMismatchError,
    DownstreamCalculationError,
    EmptyPayloadError,
    MissingScopeConfigurationError,
    NodeNotFoundError,
    RecordNotEditableError,
    RecordNotFoundError,
    ScopeNotFoundError,
    TenantNotFoundError,
)
from carbon_kernel.logging_config import LogContext, get_logger
from carbon_kernel.models.measurement import MeasurementRecordModel
from carbon_kernel.services.access_service import AccessService, raise_for_decision
from carbon_kernel.services.chart_reader import OrganizationChartReader
from carbon_kernel.services.collection_service import CollectionConfigService
from carbon_kernel.services.cumulative_service import (
    DEFAULT_LOCK_REGISTRY,
    CumulativeService,
    TripleLockRegistry,
    triple_of,
)

from carbon_ingestion.domain.types import (
    BatchReport,
    ErrorDetail,
    IngestionResult,
    IngestionStatus,
    ItemOutcome,
)
from carbon_ingestion.mapping.engine import NormalizedPayload, normalize, unwrap
from carbon_ingestion.mapping.recorded_at import parse_recorded_at
from carbon_ingestion.services.collaborators import (
    EmissionCalculator,
    EventPublisher,
    LoggingEventPublisher,
)

logger = get_logger("ingestion.orchestrator")

# Payload keys that describe when, not what.
_TIMING_KEYS = frozenset({"date", "time", "timestamp"})

_SAVED_EVENTS = {
    IngestionChannel.API: "api-data-saved",
    IngestionChannel.IOT: "iot-data-saved",
    IngestionChannel.MANUAL: "manual-data-saved",
}
FILE_IMPORTED_EVENT = "file-data-imported"
MANUAL_EDITED_EVENT = "manual-data-edited"
MANUAL_DELETED_EVENT = "manual-data-deleted"


@dataclass(frozen=True)
class _Accepted:
    """Internal result of one accepted record, before the response is built."""

    model: MeasurementRecordModel
    normalized: NormalizedPayload
    cumulative: CumulativeState
    calculation: CalculationOutcome


def _blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _has_data(raw: Mapping[str, Any]) -> bool:
    source = unwrap(raw)
    return any(key not in _TIMING_KEYS for key in source)


class IngestionOrchestrator:
    """
    Coordinates access control, normalization, persistence, cumulative
    tracking, calculation hand-off and event publication.

    The calculator and publisher are injected and held for the
    orchestrator's lifetime.  Without a publisher, events go to the
    structured log through ``LoggingEventPublisher``.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock,
        calculator: EmissionCalculator,
        publisher: EventPublisher | None = None,
        settings: GatewaySettings | None = None,
        lock_registry: TripleLockRegistry | None = None,
        auto_commit: bool = True,
    ):
        self._session = session
        self._clock = clock
        self._calculator = calculator
        self._publisher = LoggingEventPublisher() if publisher is None else publisher
        self._settings = settings or GatewaySettings()
        self._locks = DEFAULT_LOCK_REGISTRY if lock_registry is None else lock_registry
        self._auto_commit = auto_commit

        self._charts = OrganizationChartReader(session)
        self._access = AccessService(session, self._charts)
        self._cumulative = CumulativeService(session)
        self._collection = CollectionConfigService(
            session,
            clock,
            default_frequency=self._settings.default_collection_frequency,
            overdue_grace_hours=self._settings.overdue_grace_hours,
        )

    # =========================================================================
    # Public API -- single records
    # =========================================================================

    def ingest_api(
        self, actor: Actor, tenant_id: UUID, node_id: str, scope_id: str, payload: Mapping[str, Any]
    ) -> IngestionResult:
        return self._ingest_single(IngestionChannel.API, actor, tenant_id, node_id, scope_id, payload)

    def ingest_iot(
        self, actor: Actor, tenant_id: UUID, node_id: str, scope_id: str, payload: Mapping[str, Any]
    ) -> IngestionResult:
        return self._ingest_single(IngestionChannel.IOT, actor, tenant_id, node_id, scope_id, payload)

    # =========================================================================
    # Public API -- batches
    # =========================================================================

    def submit_manual(
        self,
        actor: Actor,
        tenant_id: UUID,
        node_id: str,
        scope_id: str,
        entries: Sequence[Mapping[str, Any]],
    ) -> BatchReport:
        """Persist manual entries in timestamp order; one report item per entry."""
        return self._ingest_batch(
            IngestionChannel.MANUAL, actor, tenant_id, node_id, scope_id, entries, file_name=None
        )

    def import_file(
        self,
        actor: Actor,
        tenant_id: UUID,
        node_id: str,
        scope_id: str,
        rows: Sequence[Mapping[str, Any]],
        file_name: str | None = None,
    ) -> BatchReport:
        """Persist already-tokenized file rows; cell values are coerced to numbers."""
        return self._ingest_batch(
            IngestionChannel.FILE_IMPORT, actor, tenant_id, node_id, scope_id, rows, file_name=file_name
        )

    # =========================================================================
    # Public API -- manual record maintenance
    # =========================================================================

    def edit_manual(
        self,
        actor: Actor,
        record_id: UUID,
        payload: Mapping[str, Any],
        reason: str | None = None,
    ) -> IngestionResult:
        with LogContext.bind(actor_id=actor.actor_id, record_id=record_id, channel="MANUAL"):
            try:
                model, target = self._load_editable(actor, record_id, Operation.EDIT_MANUAL)
                return self._apply_edit(actor, model, target, payload, reason)
            except CarbonKernelError as exc:
                return self._fail(exc, "edit_rejected")

    def delete_manual(self, actor: Actor, record_id: UUID) -> IngestionResult:
        with LogContext.bind(actor_id=actor.actor_id, record_id=record_id, channel="MANUAL"):
            try:
                model, _ = self._load_editable(actor, record_id, Operation.DELETE_MANUAL)
                return self._apply_delete(actor, model)
            except CarbonKernelError as exc:
                return self._fail(exc, "delete_rejected")

    # =========================================================================
    # Stage: authorized / channel gate / chart-resolved
    # =========================================================================

    def _preflight(
        self,
        channel: IngestionChannel,
        actor: Actor,
        tenant_id: UUID,
        node_id: str,
        scope_id: str,
    ) -> ResolvedTarget:
        decision, snapshot = self._access.check(
            actor, tenant_id, channel.operation, node_id, scope_id
        )
        raise_for_decision(decision, snapshot, tenant_id, node_id, scope_id)
        if snapshot is None:
            raise TenantNotFoundError(str(tenant_id))
        logger.debug("stage_authorized", extra={"reason": decision.reason})

        target = snapshot.resolve(node_id, scope_id)
        if target is None:
            if snapshot.resolve(node_id) is None:
                raise NodeNotFoundError(node_id)
            raise ScopeNotFoundError(node_id, scope_id)
        scope = target.scope
        if scope is None:
            raise ScopeNotFoundError(node_id, scope_id)
        # Mismatch wins over the active flag.
        if scope.channel is not channel.scope_channel:
            raise ChannelMismatchError(scope_id, scope.channel.value, channel.value)
        if channel.is_gated and not scope.channel_active:
            logger.warning(
                "channel_disabled",
                extra={"node_id": node_id, "scope_id": scope_id},
            )
            raise ChannelDisabledError(scope_id, channel.value)
        if not scope.scope_tier:
            raise MissingScopeConfigurationError(scope_id, "scope type")
        if not scope.category_name:
            raise MissingScopeConfigurationError(scope_id, "category")

        logger.debug(
            "stage_chart_resolved",
            extra={"chart_kind": target.chart_kind.value, "category_name": scope.category_name},
        )
        return target

    def _load_editable(
        self, actor: Actor, record_id: UUID, operation: Operation
    ) -> tuple[MeasurementRecordModel, ResolvedTarget | None]:
        model = self._session.get(MeasurementRecordModel, record_id)
        if model is None or model.is_deleted:
            raise RecordNotFoundError(str(record_id))
        channel = IngestionChannel(model.channel)
        if channel.scope_channel is not ScopeChannel.MANUAL:
            raise RecordNotEditableError(str(record_id), channel.value)

        decision, snapshot = self._access.check(
            actor, model.tenant_id, operation, model.node_id, model.scope_id
        )
        raise_for_decision(
            decision, snapshot, model.tenant_id, model.node_id, model.scope_id
        )
        target = snapshot.resolve(model.node_id, model.scope_id) if snapshot else None
        return model, target

    # =========================================================================
    # Pipeline drivers
    # =========================================================================

    def _ingest_single(
        self,
        channel: IngestionChannel,
        actor: Actor,
        tenant_id: UUID,
        node_id: str,
        scope_id: str,
        payload: Mapping[str, Any],
    ) -> IngestionResult:
        with LogContext.bind(tenant_id=tenant_id, actor_id=actor.actor_id, channel=channel.value):
            logger.info("ingestion_received", extra={"node_id": node_id, "scope_id": scope_id})
            try:
                target = self._preflight(channel, actor, tenant_id, node_id, scope_id)
                recorded_at = self._recorded_at(payload, channel)
                accepted = self._accept(channel, actor, tenant_id, target, payload, recorded_at)
            except CarbonKernelError as exc:
                return self._fail(exc, "ingestion_rejected")

            result = self._to_result(accepted)
            self._publish(
                _SAVED_EVENTS[channel],
                self._event_payload(tenant_id, target, channel, accepted),
            )
            return result

    def _ingest_batch(
        self,
        channel: IngestionChannel,
        actor: Actor,
        tenant_id: UUID,
        node_id: str,
        scope_id: str,
        items: Sequence[Mapping[str, Any]],
        file_name: str | None,
    ) -> BatchReport:
        with LogContext.bind(tenant_id=tenant_id, actor_id=actor.actor_id, channel=channel.value):
            start = time.monotonic()
            logger.info(
                "batch_received",
                extra={"node_id": node_id, "scope_id": scope_id, "item_count": len(items)},
            )
            try:
                target = self._preflight(channel, actor, tenant_id, node_id, scope_id)
                if not items:
                    raise EmptyPayloadError("No entries submitted")
            except CarbonKernelError as exc:
                self._rollback()
                logger.warning("batch_rejected", extra={"code": exc.code, "reason": str(exc)})
                return BatchReport.rejected(ErrorDetail.from_exception(exc), file_name)

            outcomes: list[ItemOutcome] = []
            candidates: list[tuple[int, datetime, Mapping[str, Any]]] = []
            for index, raw in enumerate(items):
                try:
                    candidates.append((index, self._recorded_at(raw, channel), raw))
                except CarbonKernelError as exc:
                    outcomes.append(ItemOutcome(index, IngestionResult.failure(ErrorDetail.from_exception(exc))))

            batch = order_batch(candidates)
            for index, exc in batch.rejected:
                outcomes.append(ItemOutcome(index, IngestionResult.failure(ErrorDetail.from_exception(exc))))

            accepted_items: list[_Accepted] = []
            for index, recorded_at, raw in batch.ordered:
                with LogContext.bind(trace_id=f"item-{index}"):
                    try:
                        accepted = self._accept(
                            channel,
                            actor,
                            tenant_id,
                            target,
                            raw,
                            recorded_at,
                            file_name=file_name,
                            row_index=index if channel is IngestionChannel.FILE_IMPORT else None,
                        )
                    except CarbonKernelError as exc:
                        outcomes.append(ItemOutcome(index, IngestionResult.failure(ErrorDetail.from_exception(exc))))
                        logger.info("batch_item_failed", extra={"index": index, "code": exc.code})
                        continue
                accepted_items.append(accepted)
                outcomes.append(ItemOutcome(index, self._to_result(accepted)))
                if channel is IngestionChannel.MANUAL:
                    self._publish(
                        _SAVED_EVENTS[channel],
                        self._event_payload(tenant_id, target, channel, accepted),
                    )

            report = BatchReport.from_items(outcomes, file_name)
            if channel is IngestionChannel.FILE_IMPORT and accepted_items:
                self._publish(
                    FILE_IMPORTED_EVENT,
                    self._file_event_payload(tenant_id, target, accepted_items, report),
                )

            logger.info(
                "batch_completed",
                extra={
                    "status": report.status.value,
                    "succeeded": report.succeeded,
                    "failed": report.failed,
                    "duration_ms": round((time.monotonic() - start) * 1000, 2),
                },
            )
            return report

    # =========================================================================
    # Stages: normalized / persisted / cumulative-updated / calculation
    # =========================================================================

    def _recorded_at(self, raw: Mapping[str, Any], channel: IngestionChannel) -> datetime:
        offset = (
            self._settings.device_utc_offset_minutes
            if channel.is_gated
            else self._settings.wall_clock_utc_offset_minutes
        )
        return parse_recorded_at(
            raw,
            self._clock,
            utc_offset_minutes=offset,
            date_formats=self._settings.date_formats,
            time_format=self._settings.time_format,
        )

    def _fill_edit_timing(
        self, payload: Mapping[str, Any], previous_recorded_at: datetime
    ) -> Mapping[str, Any]:
        """Complete a date-only or time-only edit from the record's current instant."""
        if not _blank(payload.get("timestamp")):
            return payload
        has_date = not _blank(payload.get("date"))
        has_time = not _blank(payload.get("time"))
        if has_date == has_time:
            return payload
        wall_zone = timezone(timedelta(minutes=self._settings.wall_clock_utc_offset_minutes))
        wall = previous_recorded_at.astimezone(wall_zone)
        if has_date:
            return {**payload, "time": wall.time()}
        return {**payload, "date": wall.date()}

    @contextmanager
    def _critical_section(self, triple) -> Iterator[None]:
        """Per-triple lock around a savepoint; commits when the block succeeds."""
        # End the preflight read transaction so the triple lock is always
        # taken before any database write lock.
        self._commit()
        with self._locks.hold(triple):
            savepoint = self._session.begin_nested()
            try:
                yield
            except Exception:
                savepoint.rollback()
                self._rollback()
                raise
            savepoint.commit()
            self._commit()

    def _accept(
        self,
        channel: IngestionChannel,
        actor: Actor,
        tenant_id: UUID,
        target: ResolvedTarget,
        raw: Mapping[str, Any],
        recorded_at: datetime,
        file_name: str | None = None,
        row_index: int | None = None,
    ) -> _Accepted:
        scope = target.scope
        assert scope is not None

        if not _has_data(raw):
            raise EmptyPayloadError()
        normalized = normalize(raw, scope, channel)
        logger.debug(
            "stage_normalized",
            extra={"fields": sorted(normalized.values), "category_known": normalized.category_known},
        )

        triple = triple_of(tenant_id, target.node.node_id, scope.scope_id)
        with self._critical_section(triple):
            model = MeasurementRecordModel(
                tenant_id=tenant_id,
                node_id=target.node.node_id,
                scope_id=scope.scope_id,
                scope_tier=scope.scope_tier,
                category_name=scope.category_name,
                recorded_at=recorded_at,
                channel=channel.value,
                raw_payload=to_json_safe(dict(raw)),
                source_file=file_name,
                source_row=row_index,
                edit_history=[],
                created_by_id=actor.actor_id,
            )
            model.set_values(normalized.values, normalized.attributes)
            self._session.add(model)
            self._session.flush()
            logger.info(
                "record_persisted",
                extra={"record_id": str(model.id), "recorded_at": recorded_at.isoformat()},
            )

            state = self._cumulative.apply_record(model)
            self._collection.record_collection(
                triple, scope.channel, model.id, recorded_at, actor.actor_id
            )
            logger.info(
                "cumulative_updated",
                extra={"record_id": str(model.id), "entry_count": state.entry_count},
            )

        calculation = self._dispatch_calculation(model)
        return _Accepted(model=model, normalized=normalized, cumulative=state, calculation=calculation)

    def _dispatch_calculation(self, model: MeasurementRecordModel) -> CalculationOutcome:
        record = model.to_domain()
        try:
            outcome = self._calculator.calculate(record)
        except Exception as exc:
            error = DownstreamCalculationError(str(model.id), str(exc))
            logger.warning("calculation_failed", exc_info=error)
            outcome = CalculationOutcome(status=CalculationStatus.FAILED, error=error.detail)
        else:
            logger.info(
                "calculation_dispatched",
                extra={"record_id": str(model.id), "calculation_status": outcome.status.value},
            )

        model.record_calculation(outcome)
        self._session.flush()
        self._commit()
        return outcome

    # =========================================================================
    # Edit / delete (re-enter at "persisted")
    # =========================================================================

    def _apply_edit(
        self,
        actor: Actor,
        model: MeasurementRecordModel,
        target: ResolvedTarget | None,
        payload: Mapping[str, Any],
        reason: str | None,
    ) -> IngestionResult:
        previous = model.to_domain()
        has_timing = any(not _blank(payload.get(key)) for key in _TIMING_KEYS)
        if has_timing:
            timing = self._fill_edit_timing(payload, previous.recorded_at)
            recorded_at = self._recorded_at(timing, IngestionChannel.MANUAL)
        else:
            recorded_at = previous.recorded_at

        if _has_data(payload):
            if target is None or target.scope is None:
                raise ScopeNotFoundError(model.node_id, model.scope_id)
            normalized = normalize(payload, target.scope, IngestionChannel.MANUAL)
        elif has_timing:
            normalized = NormalizedPayload(values=previous.values, attributes=previous.attributes)
        else:
            raise EmptyPayloadError("Edit carries neither values nor a new date/time")

        triple = triple_of(model.tenant_id, model.node_id, model.scope_id)
        with self._critical_section(triple):
            model.append_edit(
                EditSnapshot(
                    edited_by=actor.actor_id,
                    edited_at=self._clock.now(),
                    reason=reason,
                    previous_values=previous.values,
                    previous_attributes=previous.attributes,
                    previous_recorded_at=previous.recorded_at,
                )
            )
            model.set_values(normalized.values, normalized.attributes)
            model.recorded_at = recorded_at
            model.updated_by_id = actor.actor_id
            self._session.flush()
            state = self._cumulative.recompute(triple)

        logger.info("record_edited", extra={"edit_count": len(model.edit_history)})
        calculation = self._dispatch_calculation(model)
        accepted = _Accepted(model=model, normalized=normalized, cumulative=state, calculation=calculation)
        self._publish(
            MANUAL_EDITED_EVENT,
            {
                **self._record_event_base(model),
                "record_id": str(model.id),
                "edited_by": str(actor.actor_id),
                "reason": reason,
                "cumulative": state.snapshot(),
                "calculation": calculation.to_dict(),
            },
        )
        return self._to_result(accepted)

    def _apply_delete(self, actor: Actor, model: MeasurementRecordModel) -> IngestionResult:
        triple = triple_of(model.tenant_id, model.node_id, model.scope_id)
        with self._critical_section(triple):
            model.is_deleted = True
            model.deleted_at = self._clock.now()
            model.deleted_by_id = actor.actor_id
            model.updated_by_id = actor.actor_id
            self._session.flush()
            state = self._cumulative.recompute(triple)

        logger.info("record_deleted", extra={"entry_count": state.entry_count})
        calculation = self._dispatch_calculation(model)
        self._publish(
            MANUAL_DELETED_EVENT,
            {
                **self._record_event_base(model),
                "record_id": str(model.id),
                "deleted_by": str(actor.actor_id),
                "cumulative": state.snapshot(),
                "calculation": calculation.to_dict(),
            },
        )
        return IngestionResult(
            status=IngestionStatus.ACCEPTED,
            record_id=model.id,
            recorded_at=model.recorded_at,
            cumulative=state.snapshot(),
            calculation=calculation.to_dict(),
        )

    # =========================================================================
    # Responses and events
    # =========================================================================

    def _to_result(self, accepted: _Accepted) -> IngestionResult:
        return IngestionResult(
            status=IngestionStatus.ACCEPTED,
            record_id=accepted.model.id,
            recorded_at=accepted.model.recorded_at,
            values=dict(accepted.normalized.values),
            attributes=dict(accepted.normalized.attributes),
            cumulative=accepted.cumulative.snapshot(),
            calculation=accepted.calculation.to_dict(),
        )

    def _record_event_base(self, model: MeasurementRecordModel) -> dict[str, Any]:
        return {
            "tenant_id": str(model.tenant_id),
            "node_id": model.node_id,
            "scope_id": model.scope_id,
            "channel": model.channel,
        }

    def _event_payload(
        self,
        tenant_id: UUID,
        target: ResolvedTarget,
        channel: IngestionChannel,
        accepted: _Accepted,
    ) -> dict[str, Any]:
        return {
            "tenant_id": str(tenant_id),
            "node_id": target.node.node_id,
            "scope_id": accepted.model.scope_id,
            "channel": channel.value,
            "record_id": str(accepted.model.id),
            "recorded_at": accepted.model.recorded_at.isoformat(),
            "values": {k: str(v) for k, v in accepted.normalized.values.items()},
            "cumulative": accepted.cumulative.snapshot(),
            "calculation": accepted.calculation.to_dict(),
        }

    def _file_event_payload(
        self,
        tenant_id: UUID,
        target: ResolvedTarget,
        accepted_items: list[_Accepted],
        report: BatchReport,
    ) -> dict[str, Any]:
        return {
            "tenant_id": str(tenant_id),
            "node_id": target.node.node_id,
            "scope_id": target.scope.scope_id if target.scope else None,
            "channel": IngestionChannel.FILE_IMPORT.value,
            "file_name": report.file_name,
            "record_ids": [str(a.model.id) for a in accepted_items],
            "succeeded": report.succeeded,
            "failed": report.failed,
            "cumulative": accepted_items[-1].cumulative.snapshot(),
            "calculations": [a.calculation.to_dict() for a in accepted_items],
        }

    def _publish(self, event_name: str, payload: dict[str, Any]) -> None:
        payload = {**payload, "server_time": self._clock.now().isoformat()}
        try:
            self._publisher.publish(event_name, payload)
        except Exception:
            logger.exception("event_publish_failed", extra={"event_name": event_name})
            return
        logger.info("event_published", extra={"event_name": event_name})

    # =========================================================================
    # Transaction helpers
    # =========================================================================

    def _commit(self) -> None:
        if self._auto_commit:
            self._session.commit()

    def _rollback(self) -> None:
        if self._auto_commit:
            self._session.rollback()

    def _fail(self, exc: CarbonKernelError, event: str) -> IngestionResult:
        self._rollback()
        logger.warning(event, extra={"code": exc.code, "outcome": exc.outcome, "reason": str(exc)})
        return IngestionResult.failure(ErrorDetail.from_exception(exc))
