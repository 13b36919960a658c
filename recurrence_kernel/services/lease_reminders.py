"""
LeaseReminderService -- pending reminders ahead of a lease's end date.

Contract:
    ``create_lease_end_reminders()`` looks at every active lease ending
    within the longest lead interval and, for each lead interval already
    reached, creates one pending one-off reminder due ``end_date - lead``.

Architecture: recurrence_kernel/services.  Flush-only.

Invariants enforced:
    - At most one reminder per (lease, lead_days), whatever its status, so
      daily runs never duplicate and completed reminders are not recreated.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import date, timedelta
from uuid import uuid4

from sqlalchemy.orm import Session

from recurrence_kernel.domain.clock import Clock
from recurrence_kernel.domain.recurring import (
    Instance,
    Lease,
    ReminderStatus,
    RuleKind,
)
from recurrence_kernel.logging_config import get_logger
from recurrence_kernel.models.recurring import InstanceModel
from recurrence_kernel.selectors.instance_selector import ReminderSelector
from recurrence_kernel.selectors.lease_selector import LeaseSelector
from recurrence_kernel.services.base import BaseService
from recurrence_kernel.services.series_store import SeriesStore

logger = get_logger("services.lease_reminders")

DEFAULT_LEAD_DAYS: tuple[int, ...] = (120, 90, 60, 30)


class LeaseReminderService(BaseService[InstanceModel]):

    def __init__(
        self,
        session: Session,
        store: SeriesStore,
        clock: Clock,
        lead_days: Iterable[int] = DEFAULT_LEAD_DAYS,
    ):
        super().__init__(session)
        self._store = store
        self._clock = clock
        self._lead_days = tuple(sorted(set(lead_days), reverse=True))
        if not self._lead_days or min(self._lead_days) < 1:
            raise ValueError(f"lead_days must be positive: {lead_days!r}")
        self._leases = LeaseSelector(session)
        self._reminders = ReminderSelector(session)

    @property
    def lead_days(self) -> tuple[int, ...]:
        return self._lead_days

    def create_lease_end_reminders(self) -> int:
        today = self._clock.today()
        window_end = today + timedelta(days=max(self._lead_days))
        created = 0
        for lease in self._leases.list_active_ending_between(today, window_end):
            created += self.create_for_lease(lease, today)
        logger.info(
            "lease_end_reminders_created",
            extra={"as_of": today, "reminders_created": created},
        )
        return created

    def create_for_lease(self, lease: Lease, today: date | None = None) -> int:
        today = today or self._clock.today()
        created = 0
        for lead in self._lead_days:
            due = lease.end_date - timedelta(days=lead)
            if today < due:
                continue
            if self._reminders.find_lease_end_reminder(lease.id, lead) is not None:
                continue
            self._store.add_entry(
                Instance(
                    id=uuid4(),
                    parent_recurring_id=None,
                    kind=RuleKind.REMINDER,
                    org_id=lease.org_id,
                    owner=lease.owner_ref,
                    occurrence_date=due,
                    status=ReminderStatus.PENDING.value,
                    title=f"Lease ends in {lead} days",
                    notes=f"Lease ends on {lease.end_date.isoformat()}",
                    lead_days=lead,
                )
            )
            created += 1
            logger.debug(
                "lease_end_reminder_created",
                extra={"lease_id": str(lease.id), "lead_days": lead, "due_date": due},
            )
        return created
