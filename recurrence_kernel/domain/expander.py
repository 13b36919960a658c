"""
SeriesExpander -- bounded expansion of a rule into occurrence dates.

Contract:
    ``expand(anchor, unit, interval, boundary)`` returns the ordered
    occurrence dates strictly after ``anchor`` and on or before ``boundary``.
    The anchor itself belongs to the originating rule and is never emitted.

Architecture: recurrence_kernel/domain.  ZERO I/O.

Invariants enforced:
    - The k-th occurrence is computed from the anchor (anchor + k*interval),
      so a month-end anchor keeps its day-of-month instead of drifting after
      a clamped month (01-31 -> 02-29 -> 03-31).
    - Expansion stops after ``max_instances`` counted dates.  Without
      ``count_from`` every emitted date counts; with ``count_from`` only
      dates after it count, which turns the cap into a rolling window of
      pending occurrences while still surfacing past gaps.
    - ``max_expansion_steps`` bounds total iterations.  Running out of steps
      before the boundary or the cap is an error, never a shortened series.
    - Every candidate must strictly advance past the previous date.

Failure modes:
    - NonAdvancingRecurrenceError when a candidate does not advance
      (interval <= 0).  Reported to the caller, never looped on.
    - ExpansionLimitExceededError when ``max_expansion_steps`` runs out
      (an anchor far enough in the past for a fine cadence).
    - InvalidFrequencyError for unrecognised units.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date

from recurrence_kernel.domain.recurrence import next_occurrence, normalize_frequency
from recurrence_kernel.domain.recurring import FrequencyUnit
from recurrence_kernel.exceptions import (
    ExpansionLimitExceededError,
    NonAdvancingRecurrenceError,
)


@dataclass(frozen=True)
class ExpansionLimits:
    """Safety caps for series expansion."""

    max_instances: int = 24
    horizon_years: int = 2
    max_expansion_steps: int = 10_000

    def __post_init__(self) -> None:
        if self.max_instances < 1:
            raise ValueError(f"max_instances must be >= 1, got {self.max_instances}")
        if self.horizon_years < 1:
            raise ValueError(f"horizon_years must be >= 1, got {self.horizon_years}")
        if self.max_expansion_steps < self.max_instances:
            raise ValueError(
                "max_expansion_steps must be >= max_instances "
                f"({self.max_expansion_steps} < {self.max_instances})"
            )


DEFAULT_LIMITS = ExpansionLimits()


def series_boundary(explicit_end_date: date | None, horizon_cap: date) -> date:
    """Effective last date of a series: ``min(explicit_end, horizon_cap)``."""
    if explicit_end_date is None:
        return horizon_cap
    return min(explicit_end_date, horizon_cap)


class SeriesExpander:
    """Expands an anchor + cadence into a bounded tuple of dates."""

    def __init__(self, limits: ExpansionLimits | None = None):
        self._limits = limits or DEFAULT_LIMITS

    @property
    def limits(self) -> ExpansionLimits:
        return self._limits

    def expand(
        self,
        anchor: date,
        unit: FrequencyUnit | str,
        interval: int,
        boundary: date,
        count_from: date | None = None,
        rule_id: str | None = None,
    ) -> tuple[date, ...]:
        canonical, step = normalize_frequency(unit, interval, rule_id)

        dates: list[date] = []
        counted = 0
        previous = anchor

        for k in range(1, self._limits.max_expansion_steps + 1):
            candidate = next_occurrence(anchor, canonical, step * k)
            if candidate <= previous:
                raise NonAdvancingRecurrenceError(
                    previous, candidate, unit, interval, rule_id,
                )
            if candidate > boundary:
                break

            dates.append(candidate)
            previous = candidate

            if count_from is None or candidate > count_from:
                counted += 1
                if counted >= self._limits.max_instances:
                    break
        else:
            raise ExpansionLimitExceededError(
                self._limits.max_expansion_steps, previous, rule_id,
            )

        return tuple(dates)
