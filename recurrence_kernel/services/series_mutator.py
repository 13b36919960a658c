"""
SeriesMutator -- scoped edits and deletes of recurring series.

Contract:
    ``delete_series(target, scope)`` and ``update_series(target, patch,
    scope)`` where ``target`` is a ``RecurringRule`` or an ``Instance``:

    scope=all
        The rule and every instance referencing it are deleted (or patched).
    scope=future on the rule
        Instances dated on or after the cutoff (default: today) are deleted
        and the series is stopped: ``explicit_end_date = cutoff - 1 day``,
        status ENDED.  The rule row is kept so that past instances keep a
        valid parent reference.
    scope=future on an instance
        That instance and every later sibling are deleted, and the parent's
        ``explicit_end_date`` becomes ``occurrence_date - 1 day`` so later
        sweeps never regenerate them.  The rule stays ACTIVE.
    one-off instance (no parent)
        Plain single-record delete/update; scope is ignored.

Architecture: recurrence_kernel/services.  Flush-only.  The caller holds
    the per-rule lock; this service additionally row-locks the rule.

Invariants enforced:
    - A split never persists an end date before the anchor.  When the pivot
      is at or before the first occurrence the operation reduces to a full
      delete, unless instances dated before the pivot remain, in which case
      the rule is ended at its anchor.
    - A ``future`` delete removes every instance on or after the pivot,
      settled ones included; everything before the pivot is untouched.
    - A ``future`` update from an instance patches that instance and its
      later siblings only; the rule keeps its payload, so occurrences
      generated later still copy the rule.
    - Schedule changes (unit, interval, end date) apply to the rule only.
      Unsettled instances that no longer fall on the new schedule are
      removed and the gap is backfilled in the same transaction.

Failure modes:
    - InvalidSeriesPatchError for schedule fields on an instance-level
      ``future`` update or on a one-off record.
    - InvalidFrequencyError / InvalidIntervalError / InvalidSeriesBoundaryError
      for a malformed schedule patch.
"""

from __future__ import annotations

from datetime import date, timedelta
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from recurrence_kernel.domain.clock import Clock
from recurrence_kernel.domain.reconciler import InstanceReconciler
from recurrence_kernel.domain.recurrence import normalize_frequency, validate_interval
from recurrence_kernel.domain.recurring import (
    Instance,
    RecurringRule,
    ReminderStatus,
    RuleStatus,
    SeriesPatch,
    SeriesScope,
)
from recurrence_kernel.domain.results import MutationStatus, SeriesMutationResult
from recurrence_kernel.exceptions import (
    InvalidSeriesBoundaryError,
    InvalidSeriesPatchError,
)
from recurrence_kernel.logging_config import get_logger
from recurrence_kernel.models.recurring import RecurringRuleModel
from recurrence_kernel.services.backfill import InstanceBackfill
from recurrence_kernel.services.base import BaseService
from recurrence_kernel.services.series_store import SeriesStore

logger = get_logger("services.series_mutator")

SeriesTarget = RecurringRule | Instance


class SeriesMutator(BaseService[RecurringRuleModel]):

    def __init__(
        self,
        session: Session,
        store: SeriesStore,
        backfill: InstanceBackfill,
        reconciler: InstanceReconciler,
        clock: Clock,
    ):
        super().__init__(session)
        self._store = store
        self._backfill = backfill
        self._reconciler = reconciler
        self._clock = clock

    # -------------------------------------------------------------------------
    # Delete
    # -------------------------------------------------------------------------

    def delete_series(
        self,
        target: SeriesTarget,
        scope: SeriesScope | str,
        cutoff: date | None = None,
        stopped_status: RuleStatus = RuleStatus.ENDED,
    ) -> SeriesMutationResult:
        """Delete a series (or part of it) starting from ``target``.

        Args:
            target: The rule, or one of its instances, or a one-off record.
            scope: ``future`` or ``all``.
            cutoff: Pivot for rule-level ``future`` deletes (default today).
                Every instance on or after it goes, settled or not.
            stopped_status: Status given to a rule stopped at the cutoff.
        """
        scope = SeriesScope(scope)
        if isinstance(target, Instance):
            return self._delete_from_instance(target, scope)

        model = self._store.lock_rule(target.id)
        if model is None:
            return SeriesMutationResult.not_found(target.id, scope)
        if scope == SeriesScope.ALL:
            return self._delete_all(model, target.id, scope)

        pivot = cutoff or self._clock.today()
        return self._split(
            model, pivot, target.id, scope, stopped_status=stopped_status,
        )

    def _delete_from_instance(
        self,
        target: Instance,
        scope: SeriesScope,
    ) -> SeriesMutationResult:
        instance = self._store.get_instance(target.id)
        if instance is None:
            return SeriesMutationResult.not_found(target.id, scope)

        rule_model = None
        if instance.parent_recurring_id is not None:
            rule_model = self._store.lock_rule(instance.parent_recurring_id)

        if rule_model is None:
            self._store.delete_instance(instance)
            logger.info(
                "instance_deleted",
                extra={"instance_id": str(target.id)},
            )
            return SeriesMutationResult(
                status=MutationStatus.PASSTHROUGH,
                target_id=target.id,
                scope=scope,
                instances_deleted=1,
            )

        if scope == SeriesScope.ALL:
            return self._delete_all(rule_model, target.id, scope)
        return self._split(
            rule_model, instance.occurrence_date, target.id, scope, stopped_status=None,
        )

    def _delete_all(
        self,
        model: RecurringRuleModel,
        target_id: UUID,
        scope: SeriesScope,
    ) -> SeriesMutationResult:
        rule_id = model.id
        deleted = self._store.delete_rule(model)
        logger.info(
            "series_deleted",
            extra={"rule_id": str(rule_id), "instances_deleted": deleted},
        )
        return SeriesMutationResult(
            status=MutationStatus.APPLIED,
            target_id=target_id,
            scope=scope,
            rule_id=rule_id,
            instances_deleted=deleted,
            rule_deleted=True,
        )

    def _split(
        self,
        model: RecurringRuleModel,
        pivot: date,
        target_id: UUID,
        scope: SeriesScope,
        stopped_status: RuleStatus | None,
    ) -> SeriesMutationResult:
        """Remove occurrences from ``pivot`` on and end the rule before it."""
        rule_id = model.id
        new_end = pivot - timedelta(days=1)
        if model.explicit_end_date is not None:
            new_end = min(new_end, model.explicit_end_date)

        deleted = self._store.delete_instances(rule_id, from_date=pivot)

        if new_end < model.anchor_date:
            if not self._store.instances_of(rule_id):
                self._store.delete_rule(model)
                logger.info(
                    "series_split_collapsed",
                    extra={"rule_id": str(rule_id), "pivot": pivot},
                )
                return SeriesMutationResult(
                    status=MutationStatus.APPLIED,
                    target_id=target_id,
                    scope=scope,
                    rule_id=rule_id,
                    instances_deleted=deleted,
                    rule_deleted=True,
                )
            new_end = model.anchor_date
            stopped_status = stopped_status or RuleStatus.ENDED

        model.explicit_end_date = new_end
        if stopped_status is not None:
            model.status = stopped_status.value
        self._store.touch(model)
        self.session.flush()

        logger.info(
            "series_split",
            extra={
                "rule_id": str(rule_id),
                "pivot": pivot,
                "new_end_date": new_end,
                "instances_deleted": deleted,
                "rule_status": model.status,
            },
        )
        return SeriesMutationResult(
            status=MutationStatus.APPLIED,
            target_id=target_id,
            scope=scope,
            rule_id=rule_id,
            instances_deleted=deleted,
            rule_end_date=new_end,
        )

    # -------------------------------------------------------------------------
    # Update
    # -------------------------------------------------------------------------

    def update_series(
        self,
        target: SeriesTarget,
        patch: SeriesPatch,
        scope: SeriesScope | str,
    ) -> SeriesMutationResult:
        """Apply ``patch`` to the rule and to the instances in scope.

        A new ``frequency_unit`` without an ``interval`` resets the interval
        to 1 (legacy synonyms still contribute their multiplier).
        """
        scope = SeriesScope(scope)

        if isinstance(target, Instance):
            instance = self._store.get_instance(target.id)
            if instance is None:
                return SeriesMutationResult.not_found(target.id, scope)

            rule_model = None
            if instance.parent_recurring_id is not None:
                rule_model = self._store.lock_rule(instance.parent_recurring_id)

            if rule_model is None:
                if patch.has_schedule_change:
                    raise InvalidSeriesPatchError(
                        str(target.id), "schedule fields require a recurring series",
                    )
                updated = self._store.update_instances(
                    [instance], self._instance_changes(patch),
                )
                return SeriesMutationResult(
                    status=MutationStatus.PASSTHROUGH,
                    target_id=target.id,
                    scope=scope,
                    instances_updated=updated,
                )

            pivot: date | None = None
            if scope == SeriesScope.FUTURE:
                if patch.has_schedule_change:
                    raise InvalidSeriesPatchError(
                        str(target.id),
                        "schedule fields apply to the whole rule; "
                        "target the rule instead of an instance",
                    )
                pivot = instance.occurrence_date
            return self._patch_series(
                rule_model, patch, pivot, target.id, scope, patch_rule=pivot is None,
            )

        model = self._store.lock_rule(target.id)
        if model is None:
            return SeriesMutationResult.not_found(target.id, scope)
        pivot = self._clock.today() if scope == SeriesScope.FUTURE else None
        return self._patch_series(model, patch, pivot, target.id, scope)

    def _patch_series(
        self,
        model: RecurringRuleModel,
        patch: SeriesPatch,
        pivot: date | None,
        target_id: UUID,
        scope: SeriesScope,
        patch_rule: bool = True,
    ) -> SeriesMutationResult:
        if patch_rule:
            for name, value in self._payload_columns(patch).items():
                setattr(model, name, value)

        instance_changes = self._instance_changes(patch)
        updated = 0
        if instance_changes:
            updated = self._store.update_instances(
                self._store.instances_of(model.id, pivot), instance_changes,
            )

        deleted = 0
        created = 0
        if patch.has_schedule_change:
            self._apply_schedule(model, patch)
            self._store.touch(model)
            self.session.flush()

            expected = self._reconciler.expected_dates(
                model.to_dto(), self._clock.today(),
            )
            deleted = self._store.delete_instances(
                model.id,
                from_date=pivot,
                keep_settled=True,
                keep_dates=frozenset(expected),
            )
            created = self._backfill.backfill_locked(model).instances_created
        else:
            if patch_rule:
                self._store.touch(model)
            self.session.flush()

        logger.info(
            "series_updated",
            extra={
                "rule_id": str(model.id),
                "scope": scope.value,
                "pivot": pivot,
                "instances_updated": updated,
                "instances_deleted": deleted,
                "instances_created": created,
                "schedule_changed": patch.has_schedule_change,
            },
        )
        return SeriesMutationResult(
            status=MutationStatus.APPLIED,
            target_id=target_id,
            scope=scope,
            rule_id=model.id,
            instances_updated=updated,
            instances_deleted=deleted,
            instances_created=created,
            rule_end_date=model.explicit_end_date,
        )

    def _apply_schedule(self, model: RecurringRuleModel, patch: SeriesPatch) -> None:
        rule_id = str(model.id)
        if patch.frequency_unit is not None or patch.interval is not None:
            unit = patch.frequency_unit if patch.frequency_unit is not None else model.frequency_unit
            if patch.interval is not None:
                interval = patch.interval
            elif patch.frequency_unit is not None:
                interval = 1
            else:
                interval = model.interval
            validate_interval(interval, rule_id)
            canonical, step = normalize_frequency(unit, interval, rule_id)
            model.frequency_unit = canonical.value
            model.interval = step

        if patch.clear_end_date:
            model.explicit_end_date = None
        elif patch.explicit_end_date is not None:
            if patch.explicit_end_date < model.anchor_date:
                raise InvalidSeriesBoundaryError(model.anchor_date, patch.explicit_end_date)
            model.explicit_end_date = patch.explicit_end_date

    @staticmethod
    def _payload_columns(patch: SeriesPatch) -> dict[str, Any]:
        changes = patch.payload_changes()
        if "payload" in changes:
            changes["payload"] = dict(changes["payload"]) or None
        return changes

    def _instance_changes(self, patch: SeriesPatch) -> dict[str, Any]:
        changes = self._payload_columns(patch)
        if patch.status is not None:
            status = str(getattr(patch.status, "value", patch.status))
            changes["status"] = status
            if status == ReminderStatus.COMPLETED.value:
                changes["completed_at"] = self._clock.now()
        return changes
