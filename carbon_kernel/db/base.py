"""
Module: carbon_kernel.db.base
Responsibility: Declarative base classes for the gateway's ORM models: UUID
    primary keys, UTC-normalized timestamps, and the TrackedBase audit columns.
Architecture position: Kernel > DB.  Lowest import target in the kernel; all
    model files import from here and nothing here imports from models/,
    services/ or domain/.

Invariants enforced:
    - UUID primary keys generated with uuid4, stored as 36-char strings.
    - Timestamps are returned timezone-aware in UTC on every backend
      (SQLite drops tzinfo; ``UTCDateTime`` restores it).
"""

from datetime import datetime, timezone
from typing import ClassVar
from uuid import UUID, uuid4

from sqlalchemy import BigInteger, DateTime, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


class UUIDString(TypeDecorator):
    """UUID stored as String(36)."""

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is not None:
            return str(value)
        return None

    def process_result_value(self, value, dialect):
        if value is not None:
            return UUID(value)
        return None


class UTCDateTime(TypeDecorator):
    """Timezone-aware datetime, stored and returned in UTC."""

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            raise ValueError(f"Naive datetime not allowed: {value!r}")
        value = value.astimezone(timezone.utc)
        if dialect.name == "sqlite":
            return value.replace(tzinfo=None)
        return value

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class Base(DeclarativeBase):
    """Declarative base; every model gets a uuid4 ``id`` primary key."""

    type_annotation_map: ClassVar[dict] = {
        datetime: UTCDateTime(),
        UUID: UUIDString(),
        int: BigInteger,
    }

    id: Mapped[UUID] = mapped_column(
        UUIDString(),
        primary_key=True,
        default=uuid4,
    )


class TrackedBase(Base):
    """
    Abstract base with audit timestamps and actor tracking.

    ``created_by_id`` is required; ``updated_by_id`` is set by the service
    that performs each later mutation.
    """

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        server_default=func.now(),
        nullable=False,
    )

    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    created_by_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    updated_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
