"""Measurement record value objects shared by the kernel and ingestion layers."""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from carbon_kernel.domain.org_chart import IngestionChannel


class CalculationStatus(str, Enum):
    PENDING = "pending"
    COMPLETE = "complete"
    FAILED = "failed"


@dataclass(frozen=True)
class CalculationOutcome:
    """What the emission calculator returned for one record."""

    status: CalculationStatus
    result: dict[str, Any] | None = None
    error: str | None = None

    @classmethod
    def pending(cls) -> "CalculationOutcome":
        return cls(status=CalculationStatus.PENDING)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"status": self.status.value}
        if self.result is not None:
            data["result"] = self.result
        if self.error is not None:
            data["error"] = self.error
        return data


@dataclass(frozen=True)
class EditSnapshot:
    """Prior state of a manual record, appended on every edit."""

    edited_by: UUID
    edited_at: datetime
    reason: str | None
    previous_values: dict[str, Decimal]
    previous_recorded_at: datetime
    previous_attributes: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "edited_by": str(self.edited_by),
            "edited_at": self.edited_at.isoformat(),
            "reason": self.reason,
            "previous_values": {k: str(v) for k, v in self.previous_values.items()},
            "previous_recorded_at": self.previous_recorded_at.isoformat(),
            "previous_attributes": dict(self.previous_attributes),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "EditSnapshot":
        return cls(
            edited_by=UUID(data["edited_by"]),
            edited_at=datetime.fromisoformat(data["edited_at"]),
            reason=data.get("reason"),
            previous_values={k: Decimal(v) for k, v in data["previous_values"].items()},
            previous_recorded_at=datetime.fromisoformat(data["previous_recorded_at"]),
            previous_attributes=dict(data.get("previous_attributes", {})),
        )


@dataclass(frozen=True)
class MeasurementRecord:
    """Immutable view of a persisted measurement, handed to collaborators."""

    record_id: UUID
    tenant_id: UUID
    node_id: str
    scope_id: str
    scope_tier: str
    category_name: str
    recorded_at: datetime
    channel: IngestionChannel
    values: dict[str, Decimal]
    attributes: dict[str, str] = field(default_factory=dict)
    edit_history: tuple[EditSnapshot, ...] = ()
    calculation: CalculationOutcome = field(default_factory=CalculationOutcome.pending)
    is_deleted: bool = False
    source_file: str | None = None
    source_row: int | None = None

    @property
    def triple(self) -> tuple[UUID, str, str]:
        return (self.tenant_id, self.node_id, self.scope_id)
