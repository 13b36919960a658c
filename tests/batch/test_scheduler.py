"""
Tests for recurrence_batch.services.scheduler.

Validates BatchScheduler: tick() evaluation, schedule firing, next_run_at
updates, per-schedule isolation, and start/stop lifecycle.
"""

from datetime import datetime
from typing import Any
from uuid import uuid4

import pytest
from sqlalchemy import select
from sqlalchemy.orm import Session

from recurrence_batch.domain.types import (
    BatchItemStatus,
    BatchJobStatus,
    JobSchedule,
    ScheduleFrequency,
)
from recurrence_batch.models.batch import BatchItemModel, BatchJobModel, JobScheduleModel
from recurrence_batch.services.executor import BatchExecutor
from recurrence_batch.services.scheduler import BatchScheduler
from recurrence_batch.tasks.base import BatchItemInput, BatchTaskResult, TaskRegistry
from recurrence_kernel.domain.clock import DeterministicClock


class SchedulerTestTask:
    """Single item, always succeeds."""

    @property
    def task_type(self) -> str:
        return "test.scheduler_task"

    @property
    def description(self) -> str:
        return "Scheduler test task"

    def prepare_items(
        self, parameters: dict[str, Any], session: Session, as_of: datetime,
    ) -> tuple[BatchItemInput, ...]:
        return (BatchItemInput(item_index=0, item_key="item-000"),)

    def execute_item(
        self, item: BatchItemInput, parameters: dict[str, Any],
        session: Session, as_of: datetime,
    ) -> BatchTaskResult:
        return BatchTaskResult(status=BatchItemStatus.SUCCEEDED)


class FailingSchedulerTask:
    @property
    def task_type(self) -> str:
        return "test.failing_task"

    @property
    def description(self) -> str:
        return "Always fails"

    def prepare_items(
        self, parameters: dict[str, Any], session: Session, as_of: datetime,
    ) -> tuple[BatchItemInput, ...]:
        return (BatchItemInput(item_index=0, item_key="item-000"),)

    def execute_item(
        self, item: BatchItemInput, parameters: dict[str, Any],
        session: Session, as_of: datetime,
    ) -> BatchTaskResult:
        return BatchTaskResult(
            status=BatchItemStatus.FAILED,
            error_code="ALWAYS_FAIL",
            error_message="This always fails",
        )


class CommittingSchedulerTask(SchedulerTestTask):
    """Two items, each committed by the task itself."""

    commits_per_item = True

    @property
    def task_type(self) -> str:
        return "test.committing_task"

    def prepare_items(
        self, parameters: dict[str, Any], session: Session, as_of: datetime,
    ) -> tuple[BatchItemInput, ...]:
        return tuple(
            BatchItemInput(item_index=i, item_key=f"item-{i:03d}") for i in range(2)
        )

    def execute_item(
        self, item: BatchItemInput, parameters: dict[str, Any],
        session: Session, as_of: datetime,
    ) -> BatchTaskResult:
        session.commit()
        return BatchTaskResult(status=BatchItemStatus.SUCCEEDED)


NOW = datetime(2025, 1, 16, 2, 0)


@pytest.fixture
def sched_clock():
    return DeterministicClock(NOW)


@pytest.fixture
def scheduler(session_factory, sched_clock):
    registry = TaskRegistry()
    registry.register(SchedulerTestTask())
    registry.register(FailingSchedulerTask())
    registry.register(CommittingSchedulerTask())

    def executor_factory(session: Session) -> BatchExecutor:
        return BatchExecutor(session=session, task_registry=registry, clock=sched_clock)

    return BatchScheduler(
        session_factory=session_factory,
        executor_factory=executor_factory,
        clock=sched_clock,
        actor_id=uuid4(),
        tick_interval_seconds=0.01,
    )


def _add_schedule(session_factory, **overrides):
    values = {
        "schedule_id": uuid4(),
        "job_name": "Test schedule",
        "task_type": "test.scheduler_task",
        "frequency": ScheduleFrequency.DAILY,
        "cron_expression": "0 2 * * *",
        "next_run_at": NOW,
    }
    values.update(overrides)
    dto = JobSchedule(**values)
    with session_factory() as session:
        session.add(JobScheduleModel.from_dto(dto, created_by_id=uuid4()))
        session.commit()
    return dto.schedule_id


def _schedule(session_factory, schedule_id) -> JobScheduleModel:
    with session_factory() as session:
        return session.get(JobScheduleModel, schedule_id)


def _jobs(session_factory) -> list[BatchJobModel]:
    with session_factory() as session:
        return list(
            session.execute(select(BatchJobModel).order_by(BatchJobModel.job_name))
            .scalars()
            .all()
        )


class TestTick:

    def test_due_schedule_fires(self, scheduler, session_factory):
        schedule_id = _add_schedule(session_factory)

        assert scheduler.tick() == 1

        jobs = _jobs(session_factory)
        assert len(jobs) == 1
        assert jobs[0].status == BatchJobStatus.COMPLETED.value
        assert jobs[0].idempotency_key == f"schedule-{schedule_id}-20250116-0200"
        stored = _schedule(session_factory, schedule_id)
        assert stored.last_run_at == NOW
        assert stored.last_run_status == "completed"
        assert stored.next_run_at == datetime(2025, 1, 17, 2, 0)

    def test_second_tick_same_minute_is_noop(self, scheduler, session_factory):
        _add_schedule(session_factory)
        scheduler.tick()

        assert scheduler.tick() == 0
        assert len(_jobs(session_factory)) == 1

    def test_fires_again_when_next_run_reached(
        self, scheduler, session_factory, sched_clock,
    ):
        _add_schedule(session_factory)
        scheduler.tick()
        sched_clock.set_time(datetime(2025, 1, 17, 2, 0))

        assert scheduler.tick() == 1
        assert len(_jobs(session_factory)) == 2

    def test_not_yet_due_and_inactive_skipped(self, scheduler, session_factory):
        _add_schedule(session_factory, next_run_at=datetime(2025, 1, 16, 3, 0))
        _add_schedule(session_factory, is_active=False)
        _add_schedule(session_factory, frequency=ScheduleFrequency.ON_DEMAND)

        assert scheduler.tick() == 0

    def test_failed_job_status_recorded(self, scheduler, session_factory):
        schedule_id = _add_schedule(
            session_factory, task_type="test.failing_task", job_name="Failing",
        )

        assert scheduler.tick() == 1
        assert _schedule(session_factory, schedule_id).last_run_status == "failed"

    def test_schedule_org_passed_to_job(self, scheduler, session_factory):
        _add_schedule(session_factory, org_id="org-7", parameters={"dry": True})

        scheduler.tick()

        assert _jobs(session_factory)[0].parameters == {"dry": True, "org_id": "org-7"}

    def test_job_committing_per_item_fires(self, scheduler, session_factory):
        schedule_id = _add_schedule(session_factory, task_type="test.committing_task")

        assert scheduler.tick() == 1

        job = _jobs(session_factory)[0]
        assert (job.status, job.succeeded_items) == (BatchJobStatus.COMPLETED.value, 2)
        with session_factory() as session:
            items = session.execute(select(BatchItemModel)).scalars().all()
            assert {i.status for i in items} == {BatchItemStatus.SUCCEEDED.value}
        assert _schedule(session_factory, schedule_id).last_run_status == "completed"

    def test_broken_schedule_does_not_block_others(
        self, scheduler, session_factory, captured_logs,
    ):
        broken = _add_schedule(
            session_factory, job_name="A broken", task_type="test.not_registered",
        )
        _add_schedule(session_factory, job_name="B healthy")

        assert scheduler.tick() == 1

        jobs = _jobs(session_factory)
        assert [j.job_name for j in jobs] == ["B healthy"]
        assert _schedule(session_factory, broken).last_run_at is None
        failures = [r for r in captured_logs() if r["message"] == "schedule_fire_failed"]
        assert failures[0]["schedule_id"] == str(broken)


class TestLifecycle:

    def test_start_and_stop(self, scheduler):
        scheduler.start()
        assert scheduler.is_running

        scheduler.stop(timeout=5)

        assert not scheduler.is_running

    def test_start_is_idempotent(self, scheduler):
        scheduler.start()
        thread = scheduler._thread
        scheduler.start()

        assert scheduler._thread is thread
        scheduler.stop(timeout=5)
