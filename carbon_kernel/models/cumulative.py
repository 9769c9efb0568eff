"""Persisted cumulative state, one row per (tenant, node, scope)."""

from datetime import datetime
from uuid import UUID

from sqlalchemy import JSON, BigInteger, ForeignKey, String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from carbon_kernel.db.base import Base, UTCDateTime, UUIDString
from carbon_kernel.domain.cumulative import CumulativeState, FieldTally


class CumulativeStateModel(Base):
    __tablename__ = "carbon_cumulative_states"
    __table_args__ = (
        UniqueConstraint("tenant_id", "node_id", "scope_id", name="uq_carbon_cumulative_triple"),
    )

    tenant_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("carbon_tenants.id"), nullable=False
    )
    node_id: Mapped[str] = mapped_column(String(100), nullable=False)
    scope_id: Mapped[str] = mapped_column(String(100), nullable=False)

    tallies: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    entry_count: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    watermark: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    last_record_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    # Bumped on every write; lets readers detect a concurrent recompute.
    version: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    def to_domain(self) -> CumulativeState:
        return CumulativeState(
            fields={name: FieldTally.from_dict(t) for name, t in (self.tallies or {}).items()},
            entry_count=self.entry_count,
            watermark=self.watermark,
            last_record_id=self.last_record_id,
        )

    def store(self, state: CumulativeState) -> None:
        self.tallies = {name: tally.to_dict() for name, tally in state.fields.items()}
        self.entry_count = state.entry_count
        self.watermark = state.watermark
        self.last_record_id = state.last_record_id
        self.version = (self.version or 0) + 1
