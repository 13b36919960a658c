"""Tests for bounded series expansion."""

from datetime import date

import pytest

from recurrence_kernel.domain.expander import (
    ExpansionLimits,
    SeriesExpander,
    series_boundary,
)
from recurrence_kernel.exceptions import (
    ExpansionLimitExceededError,
    NonAdvancingRecurrenceError,
)


class TestExpansionLimits:

    def test_defaults(self):
        limits = ExpansionLimits()
        assert limits.max_instances == 24
        assert limits.horizon_years == 2
        assert limits.max_expansion_steps == 10_000

    def test_rejects_zero_instances(self):
        with pytest.raises(ValueError):
            ExpansionLimits(max_instances=0)

    def test_rejects_steps_below_instances(self):
        with pytest.raises(ValueError):
            ExpansionLimits(max_instances=50, max_expansion_steps=10)


class TestSeriesBoundary:

    def test_no_explicit_end_uses_horizon(self):
        assert series_boundary(None, date(2027, 1, 15)) == date(2027, 1, 15)

    def test_earlier_explicit_end_wins(self):
        assert series_boundary(date(2025, 6, 1), date(2027, 1, 15)) == date(2025, 6, 1)

    def test_later_explicit_end_is_capped(self):
        assert series_boundary(date(2030, 1, 1), date(2027, 1, 15)) == date(2027, 1, 15)


class TestExpand:

    def test_anchor_is_never_emitted(self):
        dates = SeriesExpander().expand(
            date(2025, 1, 15), "months", 1, date(2025, 4, 15),
        )
        assert dates == (date(2025, 2, 15), date(2025, 3, 15), date(2025, 4, 15))

    def test_month_end_anchor_does_not_drift(self):
        dates = SeriesExpander().expand(
            date(2024, 1, 31), "months", 1, date(2024, 5, 31),
        )
        assert dates == (
            date(2024, 2, 29),
            date(2024, 3, 31),
            date(2024, 4, 30),
            date(2024, 5, 31),
        )

    def test_boundary_before_first_occurrence_yields_nothing(self):
        assert SeriesExpander().expand(
            date(2025, 1, 15), "months", 1, date(2025, 2, 14),
        ) == ()

    def test_daily_rule_is_capped_at_max_instances(self):
        dates = SeriesExpander().expand(
            date(2025, 1, 1), "days", 1, date(2027, 1, 1),
        )
        assert len(dates) == 24
        assert dates[-1] == date(2025, 1, 25)

    def test_count_from_only_caps_dates_after_today(self):
        limits = ExpansionLimits(max_instances=3)
        dates = SeriesExpander(limits).expand(
            date(2025, 1, 1),
            "days",
            1,
            date(2026, 1, 1),
            count_from=date(2025, 1, 10),
        )
        # Past gap (01-02 .. 01-10) plus three upcoming dates.
        assert dates[0] == date(2025, 1, 2)
        assert dates[-1] == date(2025, 1, 13)
        assert len(dates) == 12

    def test_running_out_of_steps_raises(self):
        limits = ExpansionLimits(max_instances=5, max_expansion_steps=5)
        with pytest.raises(ExpansionLimitExceededError) as exc_info:
            SeriesExpander(limits).expand(
                date(2020, 1, 1),
                "days",
                1,
                date(2030, 1, 1),
                count_from=date(2029, 1, 1),
                rule_id="r-3",
            )
        assert exc_info.value.last_date == date(2020, 1, 6)
        assert exc_info.value.rule_id == "r-3"

    def test_cap_reached_on_the_last_step_is_not_an_error(self):
        limits = ExpansionLimits(max_instances=5, max_expansion_steps=5)
        dates = SeriesExpander(limits).expand(
            date(2025, 1, 1), "days", 1, date(2030, 1, 1),
        )
        assert dates[-1] == date(2025, 1, 6)

    def test_legacy_unit_expands(self):
        dates = SeriesExpander().expand(
            date(2025, 1, 1), "biannually", 1, date(2026, 1, 1),
        )
        assert dates == (date(2025, 7, 1), date(2026, 1, 1))

    def test_non_advancing_interval_raises(self):
        with pytest.raises(NonAdvancingRecurrenceError) as exc_info:
            SeriesExpander().expand(
                date(2025, 1, 1), "days", 0, date(2025, 12, 31), rule_id="r-9",
            )
        assert exc_info.value.code == "NON_ADVANCING_RECURRENCE"
        assert exc_info.value.rule_id == "r-9"
