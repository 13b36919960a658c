"""
When does a schedule fire next?  Pure functions over ``JobSchedule``.

Cron support is the classic five fields (minute hour day-of-month month
day-of-week, Sunday = 0) with ``*``, lists, ranges and ``/step``.  Name
aliases (``MON``, ``JAN``) and the ``L`` / ``W`` / ``#`` extensions are not
understood.  Day-of-month and day-of-week must *both* match; there is no
Vixie-cron "either" rule.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, time, timedelta

from dateutil.relativedelta import relativedelta

from recurrence_batch.domain.types import JobSchedule, ScheduleFrequency
from recurrence_kernel.exceptions import InvalidCronExpressionError


def _every(lo: int, hi: int):
    return field(default_factory=lambda: frozenset(range(lo, hi + 1)))


@dataclass(frozen=True)
class CronSpec:
    minutes: frozenset[int] = _every(0, 59)
    hours: frozenset[int] = _every(0, 23)
    days_of_month: frozenset[int] = _every(1, 31)
    months: frozenset[int] = _every(1, 12)
    days_of_week: frozenset[int] = _every(0, 6)

    def matches_day(self, day: datetime) -> bool:
        return (
            day.month in self.months
            and day.day in self.days_of_month
            and (day.weekday() + 1) % 7 in self.days_of_week
        )


# (CronSpec attribute, lowest value, highest value), in expression order.
_FIELDS = (
    ("minutes", 0, 59),
    ("hours", 0, 23),
    ("days_of_month", 1, 31),
    ("months", 1, 12),
    ("days_of_week", 0, 6),
)


def _parse_term(term: str, lo: int, hi: int) -> range:
    base, _, step_text = term.partition("/")
    step = int(step_text) if step_text else 1
    if step < 1:
        raise ValueError(f"step must be positive in '{term}'")

    if base == "*":
        start, end = lo, hi
    elif "-" in base:
        first, _, last = base.partition("-")
        start, end = int(first), int(last)
    else:
        start = int(base)
        # "5/15" means every 15 starting at 5.
        end = hi if step_text else start

    if start > end:
        raise ValueError(f"range {start}-{end} runs backwards")
    if start < lo or end > hi:
        raise ValueError(f"'{term}' outside {lo}-{hi}")
    return range(start, end + 1, step)


def parse_cron(expression: str) -> CronSpec:
    """Parse ``minute hour day_of_month month day_of_week``.

    Raises:
        InvalidCronExpressionError: wrong field count, a non-numeric term,
            an out-of-range value, a backwards range or a zero step.
    """
    parts = expression.split()
    if len(parts) != len(_FIELDS):
        raise InvalidCronExpressionError(
            expression, f"expected {len(_FIELDS)} fields, got {len(parts)}",
        )

    values: dict[str, frozenset[int]] = {}
    try:
        for text, (name, lo, hi) in zip(parts, _FIELDS):
            values[name] = frozenset(
                v for term in text.split(",") for v in _parse_term(term, lo, hi)
            )
    except ValueError as exc:
        raise InvalidCronExpressionError(expression, str(exc)) from exc
    return CronSpec(**values)


def matches_cron(spec: CronSpec, dt: datetime) -> bool:
    return dt.minute in spec.minutes and dt.hour in spec.hours and spec.matches_day(dt)


def should_fire(schedule: JobSchedule, as_of: datetime) -> bool:
    """Is ``schedule`` due at ``as_of``?

    A planned schedule (``next_run_at`` set) is due from that instant on.
    An unplanned one is due immediately, or, when it carries a cron
    expression, at the next matching minute; an unparseable expression
    never fires.  ONCE fires until it has run; ON_DEMAND and inactive
    schedules never fire.
    """
    if not schedule.is_active or schedule.frequency == ScheduleFrequency.ON_DEMAND:
        return False
    if schedule.frequency == ScheduleFrequency.ONCE:
        return schedule.last_run_at is None
    if schedule.next_run_at is not None:
        return as_of >= schedule.next_run_at
    if not schedule.cron_expression:
        return True
    try:
        return matches_cron(parse_cron(schedule.cron_expression), as_of)
    except InvalidCronExpressionError:
        return False


_FREQUENCY_STEP = {
    ScheduleFrequency.HOURLY: relativedelta(hours=1),
    ScheduleFrequency.DAILY: relativedelta(days=1),
    ScheduleFrequency.WEEKLY: relativedelta(weeks=1),
    ScheduleFrequency.MONTHLY: relativedelta(months=1),
}

# Long enough to reach a Feb 29 from anywhere.
_CRON_SEARCH_DAYS = 366 * 5


def compute_next_run(
    frequency: ScheduleFrequency,
    last_run_at: datetime | None,
    cron_expression: str | None = None,
    base_time: datetime | None = None,
) -> datetime | None:
    """Next firing strictly after ``base_time`` (or ``last_run_at``).

    The cron expression wins when it parses and can ever match; otherwise
    the frequency's step is added (month steps clamp to month end).  ONCE,
    ON_DEMAND and a missing base give ``None``.
    """
    if frequency in (ScheduleFrequency.ON_DEMAND, ScheduleFrequency.ONCE):
        return None
    base = base_time or last_run_at
    if base is None:
        return None

    if cron_expression:
        try:
            found = _next_cron_match(parse_cron(cron_expression), base)
        except InvalidCronExpressionError:
            found = None
        if found is not None:
            return found

    step = _FREQUENCY_STEP.get(frequency)
    return base + step if step is not None else None


def _next_cron_match(spec: CronSpec, after: datetime) -> datetime | None:
    """First matching minute after ``after``, or ``None`` if none is reachable."""
    earliest = after.replace(second=0, microsecond=0) + timedelta(minutes=1)
    times = sorted(time(h, m) for h in spec.hours for m in spec.minutes)

    day = datetime.combine(earliest.date(), time())
    for _ in range(_CRON_SEARCH_DAYS):
        if spec.matches_day(day):
            for moment in times:
                candidate = datetime.combine(day.date(), moment, tzinfo=after.tzinfo)
                if candidate >= earliest:
                    return candidate
        day += timedelta(days=1)
    return None
