"""
CumulativeService -- persisted running totals per (tenant, node, scope).

Responsibility:
    Keep ``carbon_cumulative_states`` equal to the fold of every live
    measurement record of a triple, applied in timestamp order.

Architecture position:
    Kernel > Services.  Called by the ingestion orchestrator inside the
    per-triple critical section, after the record has been flushed and
    before the transaction commits.

Invariants enforced:
    - One writer per triple: ``TripleLockRegistry`` serializes in-process
      callers, and the state row is read ``FOR UPDATE`` so a second process
      blocks on PostgreSQL.
    - No partial updates: a record older than the watermark triggers a
      full recompute from history; edits and deletes always recompute.
    - Atomic with persistence: the state row is written in the caller's
      transaction, so a failed record insert leaves no visible change.

Failure modes:
    - IntegrityError while creating the first state row for a triple is
      handled with a savepoint rollback and a re-select.
"""

import threading
from collections.abc import Iterator
from contextlib import contextmanager
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from carbon_kernel.db.types import decimals_from_json
from carbon_kernel.domain.cumulative import (
    EMPTY_STATE,
    CumulativeState,
    TripleKey,
    apply,
    fold,
)
from carbon_kernel.exceptions import OutOfOrderRecordError
from carbon_kernel.logging_config import get_logger
from carbon_kernel.models.cumulative import CumulativeStateModel
from carbon_kernel.models.measurement import MeasurementRecordModel

logger = get_logger("services.cumulative")


class TripleLockRegistry:
    """One mutex per (tenant, node, scope); unrelated triples never contend.

    Entries are reference counted and dropped once the last holder or
    waiter leaves, so the registry only ever holds triples in flight.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        # triple -> [lock, holders and waiters]
        self._locks: dict[TripleKey, list] = {}

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)

    def _acquire_entry(self, triple: TripleKey) -> threading.Lock:
        with self._guard:
            entry = self._locks.get(triple)
            if entry is None:
                entry = self._locks[triple] = [threading.Lock(), 0]
            entry[1] += 1
            return entry[0]

    def _release_entry(self, triple: TripleKey) -> None:
        with self._guard:
            entry = self._locks[triple]
            entry[1] -= 1
            if entry[1] == 0:
                del self._locks[triple]

    @contextmanager
    def hold(self, triple: TripleKey) -> Iterator[None]:
        lock = self._acquire_entry(triple)
        try:
            with lock:
                yield
        finally:
            self._release_entry(triple)


# Shared by every orchestrator in the process unless one is injected.
DEFAULT_LOCK_REGISTRY = TripleLockRegistry()


class CumulativeService:
    def __init__(self, session: Session):
        self._session = session

    def _select(self, triple: TripleKey, for_update: bool):
        tenant_id, node_id, scope_id = triple
        stmt = select(CumulativeStateModel).where(
            CumulativeStateModel.tenant_id == tenant_id,
            CumulativeStateModel.node_id == node_id,
            CumulativeStateModel.scope_id == scope_id,
        )
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        return self._session.execute(stmt).scalar_one_or_none()

    def _locked_row(self, triple: TripleKey) -> CumulativeStateModel:
        row = self._select(triple, for_update=True)
        if row is not None:
            return row

        tenant_id, node_id, scope_id = triple
        savepoint = self._session.begin_nested()
        try:
            row = CumulativeStateModel(tenant_id=tenant_id, node_id=node_id, scope_id=scope_id)
            row.store(EMPTY_STATE)
            self._session.add(row)
            self._session.flush()
            savepoint.commit()
            return row
        except IntegrityError:
            logger.debug("cumulative_row_race_retry", extra={"node_id": node_id, "scope_id": scope_id})
            savepoint.rollback()
            return self._select(triple, for_update=True)

    def current(self, triple: TripleKey) -> CumulativeState:
        row = self._select(triple, for_update=False)
        return row.to_domain() if row is not None else EMPTY_STATE

    def apply_record(self, record: MeasurementRecordModel) -> CumulativeState:
        """Fold a freshly flushed record into its triple's state."""
        triple = (record.tenant_id, record.node_id, record.scope_id)
        row = self._locked_row(triple)
        try:
            state = apply(
                row.to_domain(),
                record.id,
                record.recorded_at,
                decimals_from_json(record.measured_values),
            )
        except OutOfOrderRecordError as exc:
            logger.info(
                "cumulative_out_of_order_recompute",
                extra={
                    "record_id": str(record.id),
                    "recorded_at": exc.recorded_at,
                    "watermark": exc.watermark,
                },
            )
            return self._recompute_into(row, triple)

        row.store(state)
        self._session.flush()
        logger.debug(
            "cumulative_applied",
            extra={"record_id": str(record.id), "entry_count": state.entry_count},
        )
        return state

    def recompute(self, triple: TripleKey) -> CumulativeState:
        """Rebuild a triple's state from every non-deleted record."""
        return self._recompute_into(self._locked_row(triple), triple)

    def _recompute_into(self, row: CumulativeStateModel, triple: TripleKey) -> CumulativeState:
        tenant_id, node_id, scope_id = triple
        records = self._session.execute(
            select(MeasurementRecordModel)
            .where(
                MeasurementRecordModel.tenant_id == tenant_id,
                MeasurementRecordModel.node_id == node_id,
                MeasurementRecordModel.scope_id == scope_id,
                MeasurementRecordModel.is_deleted.is_(False),
            )
            .order_by(
                MeasurementRecordModel.recorded_at,
                MeasurementRecordModel.created_at,
                MeasurementRecordModel.id,
            )
        ).scalars().all()

        state = fold(
            (r.id, r.recorded_at, decimals_from_json(r.measured_values)) for r in records
        )
        row.store(state)
        self._session.flush()
        logger.info(
            "cumulative_recomputed",
            extra={
                "tenant_id": str(tenant_id),
                "node_id": node_id,
                "scope_id": scope_id,
                "entry_count": state.entry_count,
            },
        )
        return state


def triple_of(tenant_id: UUID, node_id: str, scope_id: str) -> TripleKey:
    return (tenant_id, node_id, scope_id)
