"""
Cumulative Tracker -- running totals per (tenant, node, scope).

Responsibility:
    Fold measurement records into a ``CumulativeState``: per canonical field
    a running total, the highest and lowest values ever observed, and the
    most recent value.

Architecture position:
    Kernel > Domain -- pure functions, no I/O.  Persistence and the
    per-triple critical section live in
    ``carbon_kernel.services.cumulative_service``.

Invariants enforced:
    - Records are applied in non-decreasing ``recorded_at`` order.  A record
      older than the state's watermark raises ``OutOfOrderRecordError``;
      the caller must recompute from history instead.
    - ``high`` and ``low`` start at the first value seen, not zero.
    - ``last`` is always overwritten by the newest record.
    - Fields absent from a record leave that field's tally unchanged.
    - Within one batch, records sharing a timestamp are all rejected.
"""

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal
from typing import Any, Generic, TypeVar
from uuid import UUID

from carbon_kernel.exceptions import DuplicateTimestampError, OutOfOrderRecordError

TripleKey = tuple[UUID, str, str]


@dataclass(frozen=True)
class FieldTally:
    total: Decimal
    high: Decimal
    low: Decimal
    last: Decimal

    @classmethod
    def first(cls, value: Decimal) -> "FieldTally":
        return cls(total=value, high=value, low=value, last=value)

    def add(self, value: Decimal) -> "FieldTally":
        return FieldTally(
            total=self.total + value,
            high=max(self.high, value),
            low=min(self.low, value),
            last=value,
        )

    def to_dict(self) -> dict[str, str]:
        return {
            "total": str(self.total),
            "high": str(self.high),
            "low": str(self.low),
            "last": str(self.last),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "FieldTally":
        return cls(
            total=Decimal(data["total"]),
            high=Decimal(data["high"]),
            low=Decimal(data["low"]),
            last=Decimal(data["last"]),
        )


@dataclass(frozen=True)
class CumulativeState:
    fields: dict[str, FieldTally] = field(default_factory=dict)
    entry_count: int = 0
    watermark: datetime | None = None
    last_record_id: UUID | None = None

    def snapshot(self) -> dict[str, Any]:
        """Response/event shape: totals per field plus bookkeeping."""
        return {
            "fields": {name: tally.to_dict() for name, tally in self.fields.items()},
            "entry_count": self.entry_count,
            "watermark": self.watermark.isoformat() if self.watermark else None,
            "last_record_id": str(self.last_record_id) if self.last_record_id else None,
        }


EMPTY_STATE = CumulativeState()


def apply(
    state: CumulativeState,
    record_id: UUID,
    recorded_at: datetime,
    values: dict[str, Decimal],
) -> CumulativeState:
    """Fold one record into ``state``. Equal timestamps are accepted."""
    if state.watermark is not None and recorded_at < state.watermark:
        raise OutOfOrderRecordError(recorded_at.isoformat(), state.watermark.isoformat())

    fields = dict(state.fields)
    for name, value in values.items():
        current = fields.get(name)
        fields[name] = FieldTally.first(value) if current is None else current.add(value)

    return replace(
        state,
        fields=fields,
        entry_count=state.entry_count + 1,
        watermark=recorded_at,
        last_record_id=record_id,
    )


def fold(records: Iterable[tuple[UUID, datetime, dict[str, Decimal]]]) -> CumulativeState:
    """Recompute state from scratch. Input order does not matter."""
    state = EMPTY_STATE
    for record_id, recorded_at, values in sorted(records, key=lambda r: r[1]):
        state = apply(state, record_id, recorded_at, values)
    return state


T = TypeVar("T")


@dataclass(frozen=True)
class OrderedBatch(Generic[T]):
    """Batch items split into the apply order and the duplicate rejections."""

    ordered: list[tuple[int, datetime, T]]
    rejected: list[tuple[int, DuplicateTimestampError]]


def order_batch(items: Sequence[tuple[int, datetime, T]]) -> OrderedBatch[T]:
    """
    Sort ``(index, recorded_at, item)`` ascending by timestamp.

    Every item whose timestamp is shared with another item of the batch is
    rejected, none of them is silently kept.  Ties in the surviving order
    cannot occur; the sort is stable on the original index otherwise.
    """
    by_time: dict[datetime, list[int]] = {}
    for index, recorded_at, _ in items:
        by_time.setdefault(recorded_at, []).append(index)

    ordered: list[tuple[int, datetime, T]] = []
    rejected: list[tuple[int, DuplicateTimestampError]] = []
    for index, recorded_at, item in items:
        clashes = by_time[recorded_at]
        if len(clashes) > 1:
            rejected.append((index, DuplicateTimestampError(recorded_at.isoformat(), clashes)))
        else:
            ordered.append((index, recorded_at, item))

    ordered.sort(key=lambda entry: (entry[1], entry[0]))
    return OrderedBatch(ordered=ordered, rejected=rejected)
