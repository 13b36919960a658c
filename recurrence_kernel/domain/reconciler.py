"""
InstanceReconciler -- expected vs. persisted occurrence dates.

Contract:
    ``reconcile(rule, existing_dates, today)`` returns the earliest occurrence
    dates the rule should have but does not, at most ``max_instances`` of
    them.  Pure: persisting the returned dates is the caller's job
    (``InstanceBackfill``).  Each call after persisting picks up where the
    last stopped, so a long-neglected series closes over several sweeps and
    an up-to-date one returns an empty tuple.

Architecture: recurrence_kernel/domain.  ZERO I/O.  ``today`` is passed
    in by the caller from its injected Clock.

Invariants enforced:
    - Dates are compared by calendar date; datetimes are truncated so that
      hour-level timezone jitter never produces a duplicate.
    - Boundary = min(explicit_end_date, today + horizon_years).
    - Only ACTIVE rules produce expected dates.
    - One call never returns more than ``max_instances`` dates.

Failure modes:
    - MalformedRuleError subclasses (InvalidFrequencyError,
      InvalidIntervalError, NonAdvancingRecurrenceError,
      ExpansionLimitExceededError).  Sweeps catch these per rule.  A stored
      end date on or before the anchor yields no dates rather than an error.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import date, datetime
from itertools import islice
from typing import Any

from dateutil.relativedelta import relativedelta

from recurrence_kernel.domain.expander import (
    ExpansionLimits,
    SeriesExpander,
    series_boundary,
)
from recurrence_kernel.domain.recurrence import validate_interval
from recurrence_kernel.domain.recurring import (
    RecurringRule,
    RuleKind,
    default_instance_status,
)

RENT_CATEGORY = "rent"


def as_calendar_date(value: date | datetime) -> date:
    """Truncate a datetime to its calendar date; dates pass through."""
    if isinstance(value, datetime):
        return value.date()
    return value


def instance_title(rule: RecurringRule, occurrence: date) -> str:
    """Title copied onto a generated instance.

    Rent revenue is labelled by period ("January 2025 Rent"); everything
    else inherits the rule title.
    """
    if rule.kind == RuleKind.REVENUE and (rule.category or "").lower() == RENT_CATEGORY:
        return f"{occurrence:%B %Y} Rent"
    return rule.title


class InstanceReconciler:
    """Computes the missing occurrence dates for a rule."""

    def __init__(
        self,
        expander: SeriesExpander | None = None,
        limits: ExpansionLimits | None = None,
    ):
        self._expander = expander or SeriesExpander(limits)

    @property
    def limits(self) -> ExpansionLimits:
        return self._expander.limits

    def horizon_cap(self, today: date) -> date:
        return today + relativedelta(years=self.limits.horizon_years)

    def expected_dates(self, rule: RecurringRule, today: date) -> tuple[date, ...]:
        """All occurrence dates the rule should currently have."""
        if not rule.is_active:
            return ()

        rule_id = str(rule.id)
        validate_interval(rule.interval, rule_id)

        boundary = series_boundary(rule.explicit_end_date, self.horizon_cap(today))
        if boundary <= rule.anchor_date:
            return ()

        return self._expander.expand(
            rule.anchor_date,
            rule.frequency_unit,
            rule.interval,
            boundary,
            count_from=today,
            rule_id=rule_id,
        )

    def reconcile(
        self,
        rule: RecurringRule,
        existing_dates: Iterable[date | datetime],
        today: date,
    ) -> tuple[date, ...]:
        """The earliest expected dates not yet persisted, capped per call."""
        existing = {as_calendar_date(d) for d in existing_dates}
        missing = (d for d in self.expected_dates(rule, today) if d not in existing)
        return tuple(islice(missing, self.limits.max_instances))


def build_instance_values(
    rule: RecurringRule,
    dates: Iterable[date],
) -> list[dict[str, Any]]:
    """Column values for new instances, payload copied from the rule."""
    status = default_instance_status(rule.kind)
    return [
        {
            "parent_recurring_id": rule.id,
            "kind": rule.kind.value,
            "org_id": rule.org_id,
            "owner_scope_type": rule.owner.scope_type.value,
            "owner_scope_id": rule.owner.scope_id,
            "occurrence_date": occurrence,
            "title": instance_title(rule, occurrence),
            "amount": rule.amount,
            "category": rule.category,
            "notes": rule.notes,
            "payload": dict(rule.payload) or None,
            "status": status,
        }
        for occurrence in dates
    ]
