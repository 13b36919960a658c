"""
LeaseService -- flush-only writes for leases.

Contract:
    ``add_lease()`` registers a lease; ``mark_terminated()`` sets status
    TERMINATED and pulls ``end_date`` back to the termination date when the
    lease would otherwise have run longer.  Re-marking a terminated lease is
    a no-op so that cascades stay idempotent.
"""

from __future__ import annotations

from datetime import date
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from recurrence_kernel.domain.recurring import Lease, LeaseStatus
from recurrence_kernel.logging_config import get_logger
from recurrence_kernel.models.lease import LeaseModel
from recurrence_kernel.services.base import BaseService

logger = get_logger("services.lease")


class LeaseService(BaseService[LeaseModel]):

    def __init__(self, session: Session, actor_id: UUID):
        super().__init__(session)
        self._actor_id = actor_id

    def add_lease(self, lease: Lease) -> Lease:
        if lease.end_date < lease.start_date:
            raise ValueError(
                f"Lease end {lease.end_date} is before start {lease.start_date}"
            )
        model = LeaseModel.from_dto(lease, created_by_id=self._actor_id)
        self.session.add(model)
        self.session.flush()
        logger.info(
            "lease_registered",
            extra={"lease_id": str(model.id), "end_date": model.end_date},
        )
        return model.to_dto()

    def lock_lease(self, lease_id: UUID) -> LeaseModel | None:
        return self.session.execute(
            select(LeaseModel)
            .where(LeaseModel.id == lease_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def mark_terminated(self, lease_id: UUID, termination_date: date) -> bool:
        """Terminate a lease; False if missing or already terminated."""
        model = self.lock_lease(lease_id)
        if model is None or model.status == LeaseStatus.TERMINATED.value:
            return False

        model.status = LeaseStatus.TERMINATED.value
        model.end_date = min(model.end_date, termination_date)
        model.updated_by_id = self._actor_id
        self.session.flush()

        logger.info(
            "lease_terminated",
            extra={
                "lease_id": str(lease_id),
                "termination_date": termination_date,
                "end_date": model.end_date,
            },
        )
        return True
