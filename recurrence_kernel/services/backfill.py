"""
InstanceBackfill -- reconcile one rule and persist the missing instances.

Contract:
    ``backfill_rule(rule_id)`` row-locks the rule, asks the pure
    ``InstanceReconciler`` which occurrence dates are missing, and inserts
    one instance per date with the rule's payload copied onto it.

Architecture: recurrence_kernel/services.  Flush-only; the caller owns the
    transaction (one per rule during a sweep).

Invariants enforced:
    - Idempotent once caught up: a second call with no clock movement
      inserts nothing.
    - At most ``max_instances`` rows per call; a series further behind is
      caught up by later sweeps, earliest dates first.
    - A rule deleted or stopped concurrently is reported as RULE_MISSING /
      RULE_INACTIVE, never as an error.

Failure modes:
    - MalformedRuleError subclasses propagate to the caller, which decides
      whether to skip (sweep) or surface (creation).
    - IntegrityError from the (parent, date) unique constraint if another
      process inserted the same occurrence first.
"""

from __future__ import annotations

from datetime import date
from uuid import UUID

from sqlalchemy.orm import Session

from recurrence_kernel.domain.clock import Clock
from recurrence_kernel.domain.reconciler import InstanceReconciler
from recurrence_kernel.domain.recurring import RecurringRule
from recurrence_kernel.domain.results import BackfillResult, BackfillStatus
from recurrence_kernel.logging_config import get_logger
from recurrence_kernel.models.recurring import RecurringRuleModel
from recurrence_kernel.selectors.instance_selector import InstanceSelector
from recurrence_kernel.services.base import BaseService
from recurrence_kernel.services.series_store import SeriesStore

logger = get_logger("services.backfill")


class InstanceBackfill(BaseService[RecurringRuleModel]):

    def __init__(
        self,
        session: Session,
        store: SeriesStore,
        reconciler: InstanceReconciler,
        clock: Clock,
    ):
        super().__init__(session)
        self._store = store
        self._reconciler = reconciler
        self._clock = clock
        self._instances = InstanceSelector(session)

    def backfill_rule(self, rule_id: UUID) -> BackfillResult:
        model = self._store.lock_rule(rule_id)
        if model is None:
            logger.debug("backfill_rule_missing", extra={"rule_id": str(rule_id)})
            return BackfillResult(rule_id=rule_id, status=BackfillStatus.RULE_MISSING)
        return self.backfill_locked(model)

    def backfill_locked(self, model: RecurringRuleModel) -> BackfillResult:
        """Backfill a rule whose row the caller has already locked."""
        rule = model.to_dto()
        if not rule.is_active:
            return BackfillResult(rule_id=rule.id, status=BackfillStatus.RULE_INACTIVE)

        existing = self._instances.existing_dates(rule.id)
        missing = self._reconciler.reconcile(rule, existing, self._clock.today())
        if not missing:
            return BackfillResult(rule_id=rule.id, status=BackfillStatus.UP_TO_DATE)

        created = self._store.add_instances(rule, missing)
        logger.info(
            "instances_backfilled",
            extra={
                "rule_id": str(rule.id),
                "instances_created": created,
                "first_date": missing[0],
                "last_date": missing[-1],
            },
        )
        if created >= self._reconciler.limits.max_instances:
            self._log_deferred(rule, [*existing, *missing])
        return BackfillResult(
            rule_id=rule.id,
            status=BackfillStatus.CREATED,
            instances_created=created,
            created_dates=missing,
        )

    def _log_deferred(self, rule: RecurringRule, persisted: list[date]) -> None:
        remaining = self._reconciler.reconcile(rule, persisted, self._clock.today())
        if remaining:
            logger.info(
                "backfill_deferred",
                extra={"rule_id": str(rule.id), "next_date": remaining[0]},
            )
