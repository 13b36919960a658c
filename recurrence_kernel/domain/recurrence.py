"""
RecurrenceCalculator -- calendar arithmetic for recurring series.

Contract:
    ``next_occurrence(current, unit, interval)`` returns the date
    ``interval`` units after ``current``.  Month and year steps keep the
    day-of-month and clamp to the last day of a shorter month
    (2024-01-31 + 1 month = 2024-02-29, 2023-01-31 + 1 month = 2023-02-28).

    ``normalize_frequency(unit, interval)`` maps legacy synonyms onto the
    canonical units, folding their multiplier into the interval:

        monthly    -> months x 1
        quarterly  -> months x 3
        biannually -> months x 6
        annually   -> years  x 1

Architecture: recurrence_kernel/domain.  ZERO I/O.

Failure modes:
    - InvalidFrequencyError for units that are neither canonical nor legacy.
    - InvalidIntervalError from ``validate_interval`` for interval < 1.
      ``next_occurrence`` itself does not validate; a non-positive interval
      is caught by the expander's advance guard.
"""

from __future__ import annotations

from datetime import date
from typing import Any

from dateutil.relativedelta import relativedelta

from recurrence_kernel.domain.recurring import FrequencyUnit
from recurrence_kernel.exceptions import InvalidFrequencyError, InvalidIntervalError

LEGACY_FREQUENCIES: dict[str, tuple[FrequencyUnit, int]] = {
    "monthly": (FrequencyUnit.MONTHS, 1),
    "quarterly": (FrequencyUnit.MONTHS, 3),
    "biannually": (FrequencyUnit.MONTHS, 6),
    "annually": (FrequencyUnit.YEARS, 1),
}


def is_legacy_frequency(unit: Any) -> bool:
    return isinstance(unit, str) and unit.strip().lower() in LEGACY_FREQUENCIES


def validate_interval(interval: Any, rule_id: str | None = None) -> int:
    """Return ``interval`` if it is a positive integer, else raise."""
    if isinstance(interval, bool) or not isinstance(interval, int) or interval < 1:
        raise InvalidIntervalError(interval, rule_id)
    return interval


def normalize_frequency(
    unit: FrequencyUnit | str,
    interval: int = 1,
    rule_id: str | None = None,
) -> tuple[FrequencyUnit, int]:
    """Translate ``unit`` (canonical or legacy) into a canonical pair."""
    if isinstance(unit, FrequencyUnit):
        return unit, interval
    if not isinstance(unit, str):
        raise InvalidFrequencyError(unit, rule_id)

    key = unit.strip().lower()
    legacy = LEGACY_FREQUENCIES.get(key)
    if legacy is not None:
        base_unit, multiplier = legacy
        return base_unit, interval * multiplier

    try:
        return FrequencyUnit(key), interval
    except ValueError:
        raise InvalidFrequencyError(unit, rule_id) from None


def next_occurrence(
    current: date,
    unit: FrequencyUnit | str,
    interval: int = 1,
) -> date:
    """Date ``interval`` units after ``current``, clamped at month end."""
    canonical, step = normalize_frequency(unit, interval)
    return current + relativedelta(**{canonical.value: step})
