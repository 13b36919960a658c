"""
LifecycleCascade -- stop everything an owning entity drives when it ends.

Contract:
    ``on_entity_terminated(owner, termination_date)`` runs a fixed, ordered
    list of steps inside the caller's transaction:

        1. cancel_pending_reminders  -- open reminders scoped to the owner
                                        are marked COMPLETED (never deleted).
        2. stop_recurring_series     -- every active rule owned by the owner
                                        gets a ``future`` delete at the
                                        termination date (every instance on
                                        or after it goes, paid or not); the
                                        rule becomes TERMINATED with a notes
                                        marker.
        3. mark_owner_terminated     -- a lease owner is marked TERMINATED
                                        and its end date clamped.

Architecture: recurrence_kernel/services.  Flush-only.  The facade
    (``RecurringSeriesService.cascade_terminate``) owns the transaction and
    retries the whole list from step 1 on storage failure.

Invariants enforced:
    - Each step is idempotent: re-running after a rollback or a completed
      run changes nothing further.
    - Future occurrences of a series being stopped are left to step 2, so
      no future instance of a stopped rule remains (pending or completed).
    - Past instances are never touched.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import date
from uuid import UUID

from sqlalchemy.orm import Session

from recurrence_kernel.domain.clock import Clock
from recurrence_kernel.domain.recurring import (
    OwnerRef,
    OwnerScopeType,
    ReminderStatus,
    RuleStatus,
    SeriesScope,
)
from recurrence_kernel.domain.results import CascadeResult
from recurrence_kernel.logging_config import LogContext, get_logger
from recurrence_kernel.models.recurring import RecurringRuleModel
from recurrence_kernel.selectors.instance_selector import ReminderSelector
from recurrence_kernel.selectors.rule_selector import RecurringRuleSelector
from recurrence_kernel.services.base import BaseService
from recurrence_kernel.services.lease_service import LeaseService
from recurrence_kernel.services.series_mutator import SeriesMutator
from recurrence_kernel.services.series_store import SeriesStore

logger = get_logger("services.lifecycle_cascade")

CascadeStep = Callable[[OwnerRef, date], dict[str, int]]


def termination_marker(owner: OwnerRef, termination_date: date) -> str:
    label = owner.scope_type.value.replace("_", " ").capitalize()
    return f"[TERMINATED: {label} ended on {termination_date.isoformat()}]"


class LifecycleCascade(BaseService[RecurringRuleModel]):

    def __init__(
        self,
        session: Session,
        store: SeriesStore,
        mutator: SeriesMutator,
        leases: LeaseService,
        clock: Clock,
    ):
        super().__init__(session)
        self._store = store
        self._mutator = mutator
        self._leases = leases
        self._clock = clock
        self._rules = RecurringRuleSelector(session)
        self._reminders = ReminderSelector(session)
        self._steps: tuple[tuple[str, CascadeStep], ...] = (
            ("cancel_pending_reminders", self._cancel_pending_reminders),
            ("stop_recurring_series", self._stop_recurring_series),
            ("mark_owner_terminated", self._mark_owner_terminated),
        )

    @property
    def step_names(self) -> tuple[str, ...]:
        return tuple(name for name, _ in self._steps)

    def on_entity_terminated(
        self,
        owner: OwnerRef,
        termination_date: date,
    ) -> CascadeResult:
        totals: dict[str, int] = {}
        with LogContext.bind(owner_ref=str(owner)):
            for name, step in self._steps:
                counts = step(owner, termination_date)
                for key, value in counts.items():
                    totals[key] = totals.get(key, 0) + value
                logger.debug("cascade_step_completed", extra={"step": name, **counts})

            result = CascadeResult(
                owner=owner,
                termination_date=termination_date,
                reminders_completed=totals.get("reminders_completed", 0),
                rules_stopped=totals.get("rules_stopped", 0),
                instances_deleted=totals.get("instances_deleted", 0),
                owners_marked=totals.get("owners_marked", 0),
                steps=self.step_names,
            )
            logger.info(
                "cascade_completed",
                extra={
                    "termination_date": termination_date,
                    "reminders_completed": result.reminders_completed,
                    "rules_stopped": result.rules_stopped,
                    "instances_deleted": result.instances_deleted,
                    "owners_marked": result.owners_marked,
                },
            )
        return result

    # -------------------------------------------------------------------------
    # Steps
    # -------------------------------------------------------------------------

    def _cancel_pending_reminders(
        self,
        owner: OwnerRef,
        termination_date: date,
    ) -> dict[str, int]:
        stopping = set(self._rules.list_active_ids(owner=owner))
        now = self._clock.now()
        completed = 0
        for reminder in self._reminders.list_pending_by_scope(
            owner.scope_type, owner.scope_id,
        ):
            if (
                reminder.parent_recurring_id in stopping
                and reminder.occurrence_date >= termination_date
            ):
                continue
            model = self._store.get_instance(reminder.id)
            if model is None:
                continue
            model.status = ReminderStatus.COMPLETED.value
            model.completed_at = now
            self._store.touch(model)
            completed += 1
        self.session.flush()
        return {"reminders_completed": completed}

    def _stop_recurring_series(
        self,
        owner: OwnerRef,
        termination_date: date,
    ) -> dict[str, int]:
        marker = termination_marker(owner, termination_date)
        stopped = 0
        deleted = 0
        for rule in sorted(self._rules.list_active(owner=owner), key=lambda r: str(r.id)):
            result = self._mutator.delete_series(
                rule,
                SeriesScope.FUTURE,
                cutoff=termination_date,
                stopped_status=RuleStatus.TERMINATED,
            )
            if not result.is_success:
                continue
            stopped += 1
            deleted += result.instances_deleted
            if result.rule_deleted:
                continue

            model = self._store.lock_rule(rule.id)
            if model is None:
                continue
            model.status = RuleStatus.TERMINATED.value
            model.terminated_on = termination_date
            if marker not in (model.notes or ""):
                model.notes = f"{model.notes} {marker}" if model.notes else marker
            self._store.touch(model)
        self.session.flush()
        return {"rules_stopped": stopped, "instances_deleted": deleted}

    def _mark_owner_terminated(
        self,
        owner: OwnerRef,
        termination_date: date,
    ) -> dict[str, int]:
        if owner.scope_type != OwnerScopeType.LEASE:
            return {"owners_marked": 0}
        try:
            lease_id = UUID(owner.scope_id)
        except ValueError:
            return {"owners_marked": 0}
        marked = self._leases.mark_terminated(lease_id, termination_date)
        return {"owners_marked": int(marked)}
