"""Read access to leases."""

from __future__ import annotations

from datetime import date
from uuid import UUID

from sqlalchemy import select

from recurrence_kernel.domain.recurring import Lease, LeaseStatus
from recurrence_kernel.models.lease import LeaseModel
from recurrence_kernel.selectors.base import BaseSelector


class LeaseSelector(BaseSelector[LeaseModel]):

    def get(self, lease_id: UUID) -> Lease | None:
        model = self.session.get(LeaseModel, lease_id)
        return model.to_dto() if model is not None else None

    def list_active_by_tenant_group(self, tenant_group_id: str) -> list[Lease]:
        stmt = (
            select(LeaseModel)
            .where(
                LeaseModel.tenant_group_id == tenant_group_id,
                LeaseModel.status == LeaseStatus.ACTIVE.value,
            )
            .order_by(LeaseModel.id)
        )
        return [m.to_dto() for m in self.session.execute(stmt).scalars()]

    def list_active_ending_between(self, start: date, end: date) -> list[Lease]:
        """Active leases whose end date falls in ``[start, end]``."""
        stmt = (
            select(LeaseModel)
            .where(
                LeaseModel.status == LeaseStatus.ACTIVE.value,
                LeaseModel.end_date >= start,
                LeaseModel.end_date <= end,
            )
            .order_by(LeaseModel.end_date, LeaseModel.id)
        )
        return [m.to_dto() for m in self.session.execute(stmt).scalars()]
