"""Services for the recurrence kernel (write side)."""

from recurrence_kernel.services.backfill import InstanceBackfill
from recurrence_kernel.services.lease_reminders import LeaseReminderService
from recurrence_kernel.services.lease_service import LeaseService
from recurrence_kernel.services.lifecycle_cascade import LifecycleCascade
from recurrence_kernel.services.recurring_service import (
    SYSTEM_ACTOR_ID,
    RecurringSeriesService,
)
from recurrence_kernel.services.rule_locks import RuleLockRegistry, get_rule_lock_registry
from recurrence_kernel.services.series_mutator import SeriesMutator
from recurrence_kernel.services.series_store import SeriesStore

__all__ = [
    "InstanceBackfill",
    "LeaseReminderService",
    "LeaseService",
    "LifecycleCascade",
    "RecurringSeriesService",
    "RuleLockRegistry",
    "SYSTEM_ACTOR_ID",
    "SeriesMutator",
    "SeriesStore",
    "get_rule_lock_registry",
]
