"""Tenant (client organization) ORM model."""

from uuid import UUID

from sqlalchemy import Boolean, String
from sqlalchemy.orm import Mapped, mapped_column

from carbon_kernel.db.base import TrackedBase, UUIDString
from carbon_kernel.domain.org_chart import Tenant


class TenantModel(TrackedBase):
    __tablename__ = "carbon_tenants"

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    # Consultant admin who created the client.
    consultant_admin_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    # Consultant currently working the client.
    assigned_consultant_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    def to_domain(self) -> Tenant:
        return Tenant(
            tenant_id=self.id,
            is_active=self.is_active,
            created_by_id=self.consultant_admin_id,
            assigned_consultant_id=self.assigned_consultant_id,
        )
