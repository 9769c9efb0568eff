"""
Measurement record ORM model.

One row per ingested data point.  Values are a JSON map of canonical field
name to decimal string; edits append to ``edit_history`` and deletes only
set ``is_deleted``.
"""

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import JSON, Boolean, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from carbon_kernel.db.base import TrackedBase, UTCDateTime, UUIDString
from carbon_kernel.db.types import decimals_from_json, to_json_safe
from carbon_kernel.domain.measurement import (
    CalculationOutcome,
    CalculationStatus,
    EditSnapshot,
    MeasurementRecord,
)
from carbon_kernel.domain.org_chart import IngestionChannel


class MeasurementRecordModel(TrackedBase):
    __tablename__ = "carbon_measurement_records"
    __table_args__ = (
        Index(
            "ix_carbon_measurement_triple_time",
            "tenant_id",
            "node_id",
            "scope_id",
            "recorded_at",
        ),
    )

    tenant_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("carbon_tenants.id"), nullable=False
    )
    node_id: Mapped[str] = mapped_column(String(100), nullable=False)
    scope_id: Mapped[str] = mapped_column(String(100), nullable=False)
    scope_tier: Mapped[str] = mapped_column(String(20), nullable=False)
    category_name: Mapped[str] = mapped_column(String(200), nullable=False)
    recorded_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    channel: Mapped[str] = mapped_column(String(20), nullable=False)

    measured_values: Mapped[dict] = mapped_column(JSON, nullable=False)
    attributes: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    raw_payload: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    source_file: Mapped[str | None] = mapped_column(String(500), nullable=True)
    source_row: Mapped[int | None] = mapped_column(Integer, nullable=True)

    edit_history: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    is_edited: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    is_deleted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    deleted_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    deleted_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    calculation_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=CalculationStatus.PENDING.value
    )
    calculation_result: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    calculation_error: Mapped[str | None] = mapped_column(Text, nullable=True)

    def set_values(self, values: dict[str, Any], attributes: dict[str, str]) -> None:
        self.measured_values = to_json_safe(values)
        self.attributes = dict(attributes)

    def append_edit(self, snapshot: EditSnapshot) -> None:
        self.edit_history = [*(self.edit_history or []), snapshot.to_dict()]
        self.is_edited = True

    def record_calculation(self, outcome: CalculationOutcome) -> None:
        self.calculation_status = outcome.status.value
        self.calculation_result = to_json_safe(outcome.result) if outcome.result is not None else None
        self.calculation_error = outcome.error

    def to_domain(self) -> MeasurementRecord:
        return MeasurementRecord(
            record_id=self.id,
            tenant_id=self.tenant_id,
            node_id=self.node_id,
            scope_id=self.scope_id,
            scope_tier=self.scope_tier,
            category_name=self.category_name,
            recorded_at=self.recorded_at,
            channel=IngestionChannel(self.channel),
            values=decimals_from_json(self.measured_values),
            attributes=dict(self.attributes or {}),
            edit_history=tuple(EditSnapshot.from_dict(e) for e in self.edit_history or []),
            calculation=CalculationOutcome(
                status=CalculationStatus(self.calculation_status),
                result=self.calculation_result,
                error=self.calculation_error,
            ),
            is_deleted=self.is_deleted,
            source_file=self.source_file,
            source_row=self.source_row,
        )
