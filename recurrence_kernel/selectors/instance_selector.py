"""
Read access to instances and reminders.

``InstanceSelector`` answers series questions (which dates exist for a
rule); ``ReminderSelector`` answers owner questions (which reminders are
still open for a lease).
"""

from __future__ import annotations

from datetime import date
from uuid import UUID

from sqlalchemy import select

from recurrence_kernel.domain.recurring import (
    OPEN_REMINDER_STATUSES,
    Instance,
    OwnerRef,
    OwnerScopeType,
    ReminderStatus,
    RuleKind,
)
from recurrence_kernel.models.recurring import InstanceModel
from recurrence_kernel.selectors.base import BaseSelector


class InstanceSelector(BaseSelector[InstanceModel]):
    """Queries over ``series_instances``."""

    def get(self, instance_id: UUID) -> Instance | None:
        model = self.session.get(InstanceModel, instance_id)
        return model.to_dto() if model is not None else None

    def list_by_parent(
        self,
        parent_id: UUID,
        from_date: date | None = None,
    ) -> list[Instance]:
        """Instances of a rule ordered by date, optionally from ``from_date``."""
        stmt = select(InstanceModel).where(
            InstanceModel.parent_recurring_id == parent_id,
        )
        if from_date is not None:
            stmt = stmt.where(InstanceModel.occurrence_date >= from_date)
        stmt = stmt.order_by(InstanceModel.occurrence_date)
        return [m.to_dto() for m in self.session.execute(stmt).scalars()]

    def existing_dates(self, parent_id: UUID) -> list[date]:
        stmt = select(InstanceModel.occurrence_date).where(
            InstanceModel.parent_recurring_id == parent_id,
        )
        return list(self.session.execute(stmt).scalars())

    def list_by_owner(
        self,
        owner: OwnerRef,
        kind: RuleKind | None = None,
    ) -> list[Instance]:
        stmt = select(InstanceModel).where(
            InstanceModel.owner_scope_type == owner.scope_type.value,
            InstanceModel.owner_scope_id == owner.scope_id,
        )
        if kind is not None:
            stmt = stmt.where(InstanceModel.kind == RuleKind(kind).value)
        stmt = stmt.order_by(InstanceModel.occurrence_date)
        return [m.to_dto() for m in self.session.execute(stmt).scalars()]


class ReminderSelector(BaseSelector[InstanceModel]):
    """Queries over reminder rows in ``series_instances``."""

    def list_pending_by_scope(
        self,
        scope_type: OwnerScopeType | str,
        scope_id: str,
    ) -> list[Instance]:
        """Pending or overdue reminders scoped to one owner."""
        stmt = (
            select(InstanceModel)
            .where(
                InstanceModel.kind == RuleKind.REMINDER.value,
                InstanceModel.owner_scope_type == OwnerScopeType(scope_type).value,
                InstanceModel.owner_scope_id == str(scope_id),
                InstanceModel.status.in_(sorted(OPEN_REMINDER_STATUSES)),
            )
            .order_by(InstanceModel.occurrence_date)
        )
        return [m.to_dto() for m in self.session.execute(stmt).scalars()]

    def find_lease_end_reminder(self, lease_id: UUID, lead_days: int) -> Instance | None:
        """The lease-end reminder for ``lead_days``, in any status."""
        stmt = select(InstanceModel).where(
            InstanceModel.kind == RuleKind.REMINDER.value,
            InstanceModel.owner_scope_type == OwnerScopeType.LEASE.value,
            InstanceModel.owner_scope_id == str(lease_id),
            InstanceModel.parent_recurring_id.is_(None),
            InstanceModel.lead_days == lead_days,
        )
        model = self.session.execute(stmt).scalars().first()
        return model.to_dto() if model is not None else None
