"""
Tests for BatchOrchestrator wiring and the default schedules, including an
end-to-end scheduler tick that runs the nightly sweep.
"""

from datetime import date, datetime
from uuid import uuid4

import pytest
from sqlalchemy import select

from recurrence_batch.domain.types import BatchJobStatus, ScheduleFrequency
from recurrence_batch.models.batch import BatchJobModel, JobScheduleModel
from recurrence_batch.orchestrator import (
    LEASE_REMINDER_TASK_TYPE,
    SWEEP_TASK_TYPE,
    BatchOrchestrator,
)
from recurrence_batch.tasks.base import TaskRegistry
from recurrence_config.schema import EngineSettings
from recurrence_kernel.domain.recurring import RuleKind


@pytest.fixture
def orchestrator(db_session, clock):
    return BatchOrchestrator.from_session(db_session, clock=clock, actor_id=uuid4())


class TestWiring:

    def test_default_registry_has_recurring_tasks(self, orchestrator):
        assert orchestrator.task_registry.list_tasks() == (
            LEASE_REMINDER_TASK_TYPE,
            SWEEP_TASK_TYPE,
        )

    def test_explicit_registry_is_used(self, db_session, clock):
        registry = TaskRegistry()
        orchestrator = BatchOrchestrator.from_session(
            db_session, clock=clock, task_registry=registry,
        )
        assert orchestrator.task_registry is registry
        assert orchestrator.seed_default_schedules() == ()

    def test_scheduler_interval_from_settings(self, db_session, clock, session_factory):
        orchestrator = BatchOrchestrator.from_session(
            db_session, settings=EngineSettings(scheduler_tick_seconds=5), clock=clock,
        )
        scheduler = orchestrator.create_scheduler(session_factory)
        assert scheduler._tick_interval == 5


class TestSeedDefaultSchedules:

    def test_seeds_both_schedules(self, orchestrator, db_session):
        created = orchestrator.seed_default_schedules()

        by_type = {s.task_type: s for s in created}
        assert set(by_type) == {SWEEP_TASK_TYPE, LEASE_REMINDER_TASK_TYPE}
        sweep = by_type[SWEEP_TASK_TYPE]
        assert sweep.frequency == ScheduleFrequency.DAILY
        assert sweep.cron_expression == "0 2 * * *"
        assert sweep.next_run_at == datetime(2025, 1, 16, 2, 0)
        assert by_type[LEASE_REMINDER_TASK_TYPE].next_run_at == datetime(2025, 1, 16, 9, 0)

    def test_seeding_is_idempotent(self, orchestrator, db_session):
        orchestrator.seed_default_schedules()

        assert orchestrator.seed_default_schedules() == ()
        count = len(db_session.execute(select(JobScheduleModel.id)).all())
        assert count == 2

    def test_custom_cron_from_settings(self, db_session, clock):
        orchestrator = BatchOrchestrator.from_session(
            db_session, settings=EngineSettings(sweep_cron="30 3 * * *"), clock=clock,
        )

        created = orchestrator.seed_default_schedules()

        sweep = next(s for s in created if s.task_type == SWEEP_TASK_TYPE)
        assert sweep.next_run_at == datetime(2025, 1, 16, 3, 30)


class TestNightlySweepEndToEnd:

    def test_scheduler_tick_runs_sweep(
        self, orchestrator, db_session, session_factory, series_service, clock,
        property_owner,
    ):
        rule = series_service.create_rule(
            kind=RuleKind.REMINDER,
            org_id="org-1",
            owner=property_owner,
            anchor_date=date(2025, 1, 15),
            frequency_unit="days",
        ).rule
        orchestrator.seed_default_schedules()
        db_session.commit()
        scheduler = orchestrator.create_scheduler(session_factory)

        assert scheduler.tick() == 0

        clock.set_time(datetime(2025, 1, 16, 2, 0))
        assert scheduler.tick() == 1

        with session_factory() as session:
            jobs = session.execute(select(BatchJobModel)).scalars().all()
            assert [(j.task_type, j.status) for j in jobs] == [
                (SWEEP_TASK_TYPE, BatchJobStatus.COMPLETED.value),
            ]
        assert series_service.list_instances(rule.id)[-1].occurrence_date == date(2025, 2, 9)
