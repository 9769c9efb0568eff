"""
carbon_ingestion.domain.types -- result types for the ingestion pipeline.

ZERO I/O.  Imports only from carbon_kernel.exceptions.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from carbon_kernel.exceptions import CarbonKernelError


# =============================================================================
# Status enums
# =============================================================================


class IngestionStatus(str, Enum):
    """Outcome of a single-record operation."""

    ACCEPTED = "accepted"
    DENIED = "denied"
    VALIDATION_FAILED = "validation_failed"
    CHANNEL_DISABLED = "channel_disabled"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"


class BatchStatus(str, Enum):
    SUCCESS = "success"  # every item accepted
    PARTIAL = "partial"  # some accepted, some failed
    FAILED = "failed"  # every item failed
    REJECTED = "rejected"  # stopped before any item was processed


_HTTP_STATUS = {
    IngestionStatus.ACCEPTED: 201,
    IngestionStatus.DENIED: 403,
    IngestionStatus.VALIDATION_FAILED: 400,
    IngestionStatus.CHANNEL_DISABLED: 409,
    IngestionStatus.NOT_FOUND: 404,
    IngestionStatus.CONFLICT: 409,
}

_OUTCOME_STATUS = {
    "denied": IngestionStatus.DENIED,
    "validation_failed": IngestionStatus.VALIDATION_FAILED,
    "channel_disabled": IngestionStatus.CHANNEL_DISABLED,
    "not_found": IngestionStatus.NOT_FOUND,
    "conflict": IngestionStatus.CONFLICT,
}


# =============================================================================
# Errors as data
# =============================================================================


@dataclass(frozen=True)
class ErrorDetail:
    """Client-safe description of a failure. Never carries a traceback."""

    code: str
    outcome: str
    reason: str

    @property
    def status(self) -> IngestionStatus:
        return _OUTCOME_STATUS.get(self.outcome, IngestionStatus.VALIDATION_FAILED)

    @classmethod
    def from_exception(cls, exc: CarbonKernelError) -> ErrorDetail:
        return cls(code=exc.code, outcome=exc.outcome, reason=str(exc))

    def to_dict(self) -> dict[str, str]:
        return {"code": self.code, "outcome": self.outcome, "reason": self.reason}


# =============================================================================
# Results
# =============================================================================


@dataclass(frozen=True)
class IngestionResult:
    """Response envelope for one record."""

    status: IngestionStatus
    record_id: UUID | None = None
    recorded_at: datetime | None = None
    values: dict[str, Decimal] = field(default_factory=dict)
    attributes: dict[str, str] = field(default_factory=dict)
    cumulative: dict[str, Any] | None = None
    calculation: dict[str, Any] | None = None
    error: ErrorDetail | None = None

    @property
    def is_success(self) -> bool:
        return self.status is IngestionStatus.ACCEPTED

    @property
    def http_status(self) -> int:
        return _HTTP_STATUS[self.status]

    @classmethod
    def failure(cls, error: ErrorDetail) -> IngestionResult:
        return cls(status=error.status, error=error)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"status": self.status.value}
        if self.record_id is not None:
            data["record_id"] = str(self.record_id)
        if self.recorded_at is not None:
            data["recorded_at"] = self.recorded_at.isoformat()
        if self.is_success:
            data["values"] = {k: str(v) for k, v in self.values.items()}
            data["attributes"] = dict(self.attributes)
            data["cumulative"] = self.cumulative
            data["calculation"] = self.calculation
        if self.error is not None:
            data["error"] = self.error.to_dict()
        return data


@dataclass(frozen=True)
class ItemOutcome:
    """Per-entry (manual) or per-row (file import) result within a batch."""

    index: int
    result: IngestionResult

    @property
    def succeeded(self) -> bool:
        return self.result.is_success


@dataclass(frozen=True)
class BatchReport:
    status: BatchStatus
    items: tuple[ItemOutcome, ...] = ()
    error: ErrorDetail | None = None
    file_name: str | None = None

    @property
    def succeeded(self) -> int:
        return sum(1 for item in self.items if item.succeeded)

    @property
    def failed(self) -> int:
        return sum(1 for item in self.items if not item.succeeded)

    @property
    def http_status(self) -> int:
        if self.status is BatchStatus.SUCCESS:
            return 201
        if self.status is BatchStatus.PARTIAL:
            return 207
        if self.status is BatchStatus.REJECTED and self.error is not None:
            return _HTTP_STATUS[self.error.status]
        return 400

    @classmethod
    def from_items(cls, items: list[ItemOutcome], file_name: str | None = None) -> BatchReport:
        ordered = tuple(sorted(items, key=lambda item: item.index))
        ok = sum(1 for item in ordered if item.succeeded)
        if ok == len(ordered) and ordered:
            status = BatchStatus.SUCCESS
        elif ok:
            status = BatchStatus.PARTIAL
        else:
            status = BatchStatus.FAILED
        return cls(status=status, items=ordered, file_name=file_name)

    @classmethod
    def rejected(cls, error: ErrorDetail, file_name: str | None = None) -> BatchReport:
        return cls(status=BatchStatus.REJECTED, error=error, file_name=file_name)

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "items": [{"index": item.index, **item.result.to_dict()} for item in self.items],
            "error": self.error.to_dict() if self.error else None,
            "file_name": self.file_name,
        }
