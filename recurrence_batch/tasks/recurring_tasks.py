"""
Batch tasks: recurring series sweep and lease-end reminders.

Each task builds the kernel's flush-only services on the executor's
session.  The sweep commits one transaction per rule, before releasing that
rule's lock; lease reminders run inside the executor's SAVEPOINT and commit
with the job.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime, timedelta
from typing import Any
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from recurrence_batch.tasks.base import BatchItemInput, BatchTaskResult, TaskRegistry
from recurrence_kernel.domain.clock import Clock
from recurrence_kernel.domain.expander import ExpansionLimits, SeriesExpander
from recurrence_kernel.domain.reconciler import InstanceReconciler
from recurrence_kernel.domain.recurring import LeaseStatus
from recurrence_kernel.domain.results import BackfillStatus
from recurrence_kernel.exceptions import MalformedRuleError, RecurrenceKernelError
from recurrence_kernel.logging_config import get_logger
from recurrence_kernel.selectors.lease_selector import LeaseSelector
from recurrence_kernel.selectors.rule_selector import RecurringRuleSelector
from recurrence_kernel.services.backfill import InstanceBackfill
from recurrence_kernel.services.lease_reminders import (
    DEFAULT_LEAD_DAYS,
    LeaseReminderService,
)
from recurrence_kernel.services.recurring_service import SYSTEM_ACTOR_ID
from recurrence_kernel.services.rule_locks import (
    RuleLockRegistry,
    get_rule_lock_registry,
)
from recurrence_kernel.services.series_store import SeriesStore

logger = get_logger("batch.tasks.recurring")


class GenerateMissingInstancesTask:
    """Nightly sweep: one item per active rule, one commit per rule."""

    commits_per_item = True

    def __init__(
        self,
        clock: Clock,
        limits: ExpansionLimits | None = None,
        lock_registry: RuleLockRegistry | None = None,
        actor_id: UUID = SYSTEM_ACTOR_ID,
    ):
        self._clock = clock
        self._reconciler = InstanceReconciler(expander=SeriesExpander(limits))
        self._locks = lock_registry or get_rule_lock_registry()
        self._actor_id = actor_id

    @property
    def task_type(self) -> str:
        return "recurring.generate_missing_instances"

    @property
    def description(self) -> str:
        return "Backfill missing instances for every active recurring rule"

    def prepare_items(
        self,
        parameters: dict[str, Any],
        session: Session,
        as_of: datetime,
    ) -> tuple[BatchItemInput, ...]:
        rule_ids = RecurringRuleSelector(session).list_active_ids(
            org_id=parameters.get("org_id"),
        )
        return tuple(
            BatchItemInput(
                item_index=i,
                item_key=str(rule_id),
                payload={"rule_id": str(rule_id)},
            )
            for i, rule_id in enumerate(rule_ids)
        )

    def execute_item(
        self,
        item: BatchItemInput,
        parameters: dict[str, Any],
        session: Session,
        as_of: datetime,
    ) -> BatchTaskResult:
        rule_id = UUID(item.payload["rule_id"])
        store = SeriesStore(session, self._actor_id)
        backfill = InstanceBackfill(session, store, self._reconciler, self._clock)
        try:
            with self._locks.hold(rule_id):
                result = backfill.backfill_rule(rule_id)
                session.commit()
        except IntegrityError as exc:
            # Another writer inserted the same occurrence first.
            logger.warning(
                "rule_backfill_conflict",
                extra={"rule_id": str(rule_id), "error": str(exc.orig)},
            )
            return BatchTaskResult.skipped(backfill_status="conflict")
        except MalformedRuleError as exc:
            logger.warning(
                "rule_skipped_malformed",
                extra={"rule_id": str(rule_id), "error_code": exc.code, "error": str(exc)},
            )
            return BatchTaskResult.failed(exc.code, str(exc))
        except RecurrenceKernelError as exc:
            return BatchTaskResult.failed(exc.code, str(exc))

        if result.status in (BackfillStatus.RULE_MISSING, BackfillStatus.RULE_INACTIVE):
            return BatchTaskResult.skipped(backfill_status=result.status.value)
        return BatchTaskResult.succeeded(
            backfill_status=result.status.value,
            instances_created=result.instances_created,
        )


class LeaseEndReminderTask:
    """Daily lease-end reminders: one item per active lease ending soon."""

    def __init__(
        self,
        clock: Clock,
        lead_days: Iterable[int] = DEFAULT_LEAD_DAYS,
        actor_id: UUID = SYSTEM_ACTOR_ID,
    ):
        self._clock = clock
        self._lead_days = tuple(lead_days)
        self._actor_id = actor_id

    @property
    def task_type(self) -> str:
        return "leases.end_reminders"

    @property
    def description(self) -> str:
        return "Create pending reminders ahead of lease end dates"

    def prepare_items(
        self,
        parameters: dict[str, Any],
        session: Session,
        as_of: datetime,
    ) -> tuple[BatchItemInput, ...]:
        today = as_of.date()
        window_end = today + timedelta(days=max(self._lead_days))
        leases = LeaseSelector(session).list_active_ending_between(today, window_end)
        return tuple(
            BatchItemInput(
                item_index=i,
                item_key=str(lease.id),
                payload={"lease_id": str(lease.id)},
            )
            for i, lease in enumerate(leases)
        )

    def execute_item(
        self,
        item: BatchItemInput,
        parameters: dict[str, Any],
        session: Session,
        as_of: datetime,
    ) -> BatchTaskResult:
        lease = LeaseSelector(session).get(UUID(item.payload["lease_id"]))
        if lease is None or lease.status != LeaseStatus.ACTIVE.value:
            return BatchTaskResult.skipped()

        service = LeaseReminderService(
            session,
            SeriesStore(session, self._actor_id),
            self._clock,
            self._lead_days,
        )
        created = service.create_for_lease(lease, as_of.date())
        return BatchTaskResult.succeeded(reminders_created=created)


def register_recurring_tasks(
    registry: TaskRegistry,
    clock: Clock,
    limits: ExpansionLimits | None = None,
    lead_days: Iterable[int] = DEFAULT_LEAD_DAYS,
    lock_registry: RuleLockRegistry | None = None,
) -> TaskRegistry:
    """Register the sweep and lease-reminder tasks on ``registry``."""
    registry.register(
        GenerateMissingInstancesTask(clock, limits=limits, lock_registry=lock_registry)
    )
    registry.register(LeaseEndReminderTask(clock, lead_days=lead_days))
    return registry
