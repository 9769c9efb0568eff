"""Per-triple collection configuration and last-record pointer."""

from datetime import datetime
from uuid import UUID

from sqlalchemy import BigInteger, Boolean, ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from carbon_kernel.db.base import TrackedBase, UTCDateTime, UUIDString


class CollectionConfigModel(TrackedBase):
    __tablename__ = "carbon_collection_configs"
    __table_args__ = (
        UniqueConstraint("tenant_id", "node_id", "scope_id", name="uq_carbon_collection_triple"),
    )

    tenant_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("carbon_tenants.id"), nullable=False
    )
    node_id: Mapped[str] = mapped_column(String(100), nullable=False)
    scope_id: Mapped[str] = mapped_column(String(100), nullable=False)

    channel: Mapped[str] = mapped_column(String(20), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    collection_frequency: Mapped[str] = mapped_column(String(20), nullable=False)
    endpoint: Mapped[str | None] = mapped_column(String(500), nullable=True)
    device_id: Mapped[str | None] = mapped_column(String(200), nullable=True)

    last_record_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    last_recorded_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    last_collected_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    next_due_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    total_points: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)

    disconnected_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    disconnected_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    reconnected_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    reconnected_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
