"""
Tests for scoped edits and deletes (``future`` / ``all``) of recurring series.
"""

from datetime import date, datetime
from decimal import Decimal

import pytest

from recurrence_kernel.domain.recurring import (
    RuleKind,
    RuleStatus,
    SeriesPatch,
    SeriesScope,
)
from recurrence_kernel.domain.results import MutationStatus
from recurrence_kernel.exceptions import (
    InvalidIntervalError,
    InvalidSeriesBoundaryError,
    InvalidSeriesPatchError,
    RuleNotFoundError,
)


def _dates(instances) -> list[date]:
    return [i.occurrence_date for i in instances]


@pytest.fixture
def monthly_rule(series_service, property_owner):
    """2025-01-15 anchor, monthly, ends 2025-04-15 -> three instances."""
    return series_service.create_rule(
        kind=RuleKind.EXPENSE,
        org_id="org-1",
        owner=property_owner,
        anchor_date=date(2025, 1, 15),
        frequency_unit="months",
        explicit_end_date=date(2025, 4, 15),
        title="Insurance",
        amount=Decimal("120.00"),
    ).rule


class TestDeleteFutureFromInstance:
    """Splitting a series at one of its instances."""

    def test_split_ends_rule_before_pivot(self, series_service, clock, property_owner):
        clock.set_time(datetime(2024, 12, 1, 9, 0))
        rule = series_service.create_rule(
            kind=RuleKind.EXPENSE,
            org_id="org-1",
            owner=property_owner,
            anchor_date=date(2024, 12, 1),
            frequency_unit="months",
            explicit_end_date=date(2025, 6, 1),
        ).rule
        instances = series_service.list_instances(rule.id)
        assert len(instances) == 6
        pivot = instances[3]
        assert pivot.occurrence_date == date(2025, 4, 1)

        result = series_service.delete_recurring(pivot.id, SeriesScope.FUTURE)

        assert result.status == MutationStatus.APPLIED
        assert result.instances_deleted == 3
        assert result.rule_end_date == date(2025, 3, 31)
        stored = series_service.get_rule(rule.id)
        assert stored.explicit_end_date == date(2025, 3, 31)
        assert stored.status == RuleStatus.ACTIVE

    def test_split_is_never_regenerated(self, series_service, clock, property_owner):
        clock.set_time(datetime(2024, 12, 1, 9, 0))
        rule = series_service.create_rule(
            kind=RuleKind.EXPENSE,
            org_id="org-1",
            owner=property_owner,
            anchor_date=date(2024, 12, 1),
            frequency_unit="months",
            explicit_end_date=date(2025, 6, 1),
        ).rule
        pivot = series_service.list_instances(rule.id)[3]
        series_service.delete_recurring(pivot.id, SeriesScope.FUTURE)

        clock.set_time(datetime(2025, 12, 31, 9, 0))
        sweep = series_service.generate_missing_instances()

        assert sweep.instances_created == 0
        assert _dates(series_service.list_instances(rule.id)) == [
            date(2025, 1, 1),
            date(2025, 2, 1),
            date(2025, 3, 1),
        ]

    def test_split_at_first_instance_keeps_rule(self, series_service, monthly_rule):
        first = series_service.list_instances(monthly_rule.id)[0]

        result = series_service.delete_recurring(first.id, SeriesScope.FUTURE)

        assert result.instances_deleted == 3
        assert result.rule_end_date == date(2025, 2, 14)
        assert series_service.list_instances(monthly_rule.id) == []
        assert series_service.get_rule(monthly_rule.id).anchor_date == date(2025, 1, 15)

    def test_delete_all_from_instance_removes_rule(self, series_service, monthly_rule):
        middle = series_service.list_instances(monthly_rule.id)[1]

        result = series_service.delete_recurring(middle.id, SeriesScope.ALL)

        assert result.rule_deleted is True
        assert result.rule_id == monthly_rule.id
        with pytest.raises(RuleNotFoundError):
            series_service.get_rule(monthly_rule.id)


class TestDeleteFutureFromRule:
    """Stopping a series from today onwards."""

    def test_rule_is_ended_and_history_kept(self, series_service, clock, property_owner):
        rule = series_service.create_rule(
            kind=RuleKind.EXPENSE,
            org_id="org-1",
            owner=property_owner,
            anchor_date=date(2024, 11, 15),
            frequency_unit="months",
        ).rule
        clock.set_time(datetime(2025, 3, 20, 9, 0))

        result = series_service.delete_recurring(rule.id, SeriesScope.FUTURE)

        assert result.rule_deleted is False
        assert result.rule_end_date == date(2025, 3, 19)
        stored = series_service.get_rule(rule.id)
        assert stored.status == RuleStatus.ENDED
        assert _dates(series_service.list_instances(rule.id)) == [
            date(2024, 12, 15),
            date(2025, 1, 15),
            date(2025, 2, 15),
            date(2025, 3, 15),
        ]

    def test_ended_rule_is_not_swept(self, series_service, clock, property_owner):
        rule = series_service.create_rule(
            kind=RuleKind.EXPENSE,
            org_id="org-1",
            owner=property_owner,
            anchor_date=date(2024, 11, 15),
            frequency_unit="months",
        ).rule
        series_service.delete_recurring(rule.id, SeriesScope.FUTURE)

        clock.set_time(datetime(2026, 1, 1, 9, 0))
        sweep = series_service.generate_missing_instances()

        assert sweep.rules_processed == 0
        assert sweep.instances_created == 0

    def test_future_anchor_collapses_to_full_delete(self, series_service, property_owner):
        rule = series_service.create_rule(
            kind=RuleKind.EXPENSE,
            org_id="org-1",
            owner=property_owner,
            anchor_date=date(2025, 3, 1),
            frequency_unit="months",
        ).rule

        result = series_service.delete_recurring(rule.id, SeriesScope.FUTURE)

        assert result.rule_deleted is True
        assert series_service.list_instances(rule.id) == []
        with pytest.raises(RuleNotFoundError):
            series_service.get_rule(rule.id)


class TestUpdateSeries:

    def test_update_all_patches_rule_and_instances(self, series_service, monthly_rule):
        patch = SeriesPatch(title="Premium insurance", amount=Decimal("130.00"))

        result = series_service.update_recurring(monthly_rule.id, patch, SeriesScope.ALL)

        assert result.status == MutationStatus.APPLIED
        assert result.instances_updated == 3
        assert series_service.get_rule(monthly_rule.id).title == "Premium insurance"
        instances = series_service.list_instances(monthly_rule.id)
        assert all(i.title == "Premium insurance" for i in instances)
        assert all(i.amount == Decimal("130.00") for i in instances)

    def test_update_future_from_instance(self, series_service, monthly_rule):
        pivot = series_service.list_instances(monthly_rule.id)[1]

        result = series_service.update_recurring(
            pivot.id, SeriesPatch(amount=Decimal("150.00")), SeriesScope.FUTURE,
        )

        assert result.instances_updated == 2
        amounts = [i.amount for i in series_service.list_instances(monthly_rule.id)]
        assert amounts == [Decimal("120.00"), Decimal("150.00"), Decimal("150.00")]

    def test_update_future_from_instance_leaves_rule_payload(
        self, series_service, monthly_rule,
    ):
        pivot = series_service.list_instances(monthly_rule.id)[1]

        series_service.update_recurring(
            pivot.id,
            SeriesPatch(title="Premium insurance", amount=Decimal("150.00")),
            SeriesScope.FUTURE,
        )

        stored = series_service.get_rule(monthly_rule.id)
        assert (stored.title, stored.amount) == ("Insurance", Decimal("120.00"))
        titles = [i.title for i in series_service.list_instances(monthly_rule.id)]
        assert titles == ["Insurance", "Premium insurance", "Premium insurance"]

    def test_frequency_change_reshapes_series(self, series_service, property_owner):
        rule = series_service.create_rule(
            kind=RuleKind.EXPENSE,
            org_id="org-1",
            owner=property_owner,
            anchor_date=date(2025, 1, 15),
            frequency_unit="months",
            explicit_end_date=date(2025, 7, 15),
        ).rule

        result = series_service.update_recurring(
            rule.id, SeriesPatch(frequency_unit="quarterly"), SeriesScope.ALL,
        )

        assert result.instances_deleted == 4
        assert result.instances_created == 0
        stored = series_service.get_rule(rule.id)
        assert (stored.frequency_unit, stored.interval) == ("months", 3)
        assert _dates(series_service.list_instances(rule.id)) == [
            date(2025, 4, 15),
            date(2025, 7, 15),
        ]

    def test_extending_end_date_backfills(self, series_service, monthly_rule):
        result = series_service.update_recurring(
            monthly_rule.id,
            SeriesPatch(explicit_end_date=date(2025, 6, 15)),
            SeriesScope.ALL,
        )

        assert result.instances_created == 2
        assert len(series_service.list_instances(monthly_rule.id)) == 5

    def test_clear_end_date_extends_to_horizon(self, series_service, monthly_rule):
        series_service.update_recurring(
            monthly_rule.id, SeriesPatch(clear_end_date=True), SeriesScope.ALL,
        )

        assert series_service.get_rule(monthly_rule.id).explicit_end_date is None
        assert len(series_service.list_instances(monthly_rule.id)) == 24

    def test_schedule_patch_on_instance_future_rejected(self, series_service, monthly_rule):
        pivot = series_service.list_instances(monthly_rule.id)[1]

        with pytest.raises(InvalidSeriesPatchError):
            series_service.update_recurring(
                pivot.id, SeriesPatch(interval=2), SeriesScope.FUTURE,
            )
        assert series_service.get_rule(monthly_rule.id).interval == 1

    def test_invalid_interval_rolls_back(self, series_service, monthly_rule):
        with pytest.raises(InvalidIntervalError):
            series_service.update_recurring(
                monthly_rule.id,
                SeriesPatch(title="Changed", interval=0),
                SeriesScope.ALL,
            )
        assert series_service.get_rule(monthly_rule.id).title == "Insurance"

    def test_end_before_anchor_rejected(self, series_service, monthly_rule):
        with pytest.raises(InvalidSeriesBoundaryError):
            series_service.update_recurring(
                monthly_rule.id,
                SeriesPatch(explicit_end_date=date(2024, 12, 1)),
                SeriesScope.ALL,
            )

    def test_completing_a_reminder_stamps_time(self, series_service, clock, property_owner):
        rule = series_service.create_rule(
            kind=RuleKind.REMINDER,
            org_id="org-1",
            owner=property_owner,
            anchor_date=date(2025, 1, 15),
            frequency_unit="weeks",
            explicit_end_date=date(2025, 2, 5),
        ).rule
        last = series_service.list_instances(rule.id)[-1]

        series_service.update_recurring(
            last.id, SeriesPatch(status="completed"), SeriesScope.FUTURE,
        )

        stored = series_service.list_instances(rule.id)[-1]
        assert stored.status == "completed"
        assert stored.completed_at == clock.now()
        assert stored.completed_at.tzinfo is None

    def test_one_off_update_is_passthrough(self, series_service, property_owner):
        entry = series_service.create_entry(
            kind=RuleKind.EXPENSE,
            org_id="org-1",
            owner=property_owner,
            occurrence_date=date(2025, 2, 1),
            title="Plumber",
        )

        result = series_service.update_recurring(
            entry.id, SeriesPatch(status="paid"), SeriesScope.ALL,
        )

        assert result.status == MutationStatus.PASSTHROUGH
        assert result.instances_updated == 1

    def test_one_off_schedule_patch_rejected(self, series_service, property_owner):
        entry = series_service.create_entry(
            kind=RuleKind.EXPENSE,
            org_id="org-1",
            owner=property_owner,
            occurrence_date=date(2025, 2, 1),
        )
        with pytest.raises(InvalidSeriesPatchError):
            series_service.update_recurring(
                entry.id, SeriesPatch(frequency_unit="weeks"), SeriesScope.ALL,
            )
