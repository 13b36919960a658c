"""
Module: recurrence_kernel.models.lease
Responsibility:
    Persistence for leases, the owning entity whose termination drives the
    lifecycle cascade and whose end date drives lease-end reminders.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Date, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from recurrence_kernel.db.base import TrackedBase
from recurrence_kernel.domain.recurring import Lease, LeaseStatus


class LeaseModel(TrackedBase):
    """
    A lease on a unit held by a tenant group.

    Guarantees:
        - ``status`` is one of: pending, active, expired, terminated.
        - ``end_date`` is never moved later by a termination.
    """

    __tablename__ = "leases"

    __table_args__ = (
        Index("idx_lease_tenant_group", "tenant_group_id"),
        Index("idx_lease_status", "status"),
        Index("idx_lease_end", "end_date"),
    )

    org_id: Mapped[str] = mapped_column(String(100), nullable=False)
    unit_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    tenant_group_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    rent: Mapped[Decimal | None] = mapped_column(nullable=True)
    status: Mapped[str] = mapped_column(
        String(50), nullable=False, default=LeaseStatus.ACTIVE.value,
    )

    def to_dto(self) -> Lease:
        return Lease(
            id=self.id,
            org_id=self.org_id,
            start_date=self.start_date,
            end_date=self.end_date,
            status=self.status,
            unit_id=self.unit_id,
            tenant_group_id=self.tenant_group_id,
            rent=self.rent,
        )

    @classmethod
    def from_dto(cls, dto: Lease, created_by_id: UUID) -> LeaseModel:
        return cls(
            id=dto.id,
            org_id=dto.org_id,
            unit_id=dto.unit_id,
            tenant_group_id=dto.tenant_group_id,
            start_date=dto.start_date,
            end_date=dto.end_date,
            rent=dto.rent,
            status=dto.status,
            created_by_id=created_by_id,
            updated_by_id=None,
        )
