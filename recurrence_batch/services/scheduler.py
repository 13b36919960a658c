"""
BatchScheduler: an in-process poller over ``job_schedules``.

Each ``tick()`` lists the due schedules in name order and fires each one in
a session of its own, committed when the schedule's job finishes.  A
schedule whose job blows up is rolled back, leaving the rest of the tick
(and its own previous ``next_run_at``) intact; it is retried on the next
tick.  A job whose task commits per item keeps the items it finished.
The firing minute is part of the job's idempotency key, which keeps two
overlapping ticks from starting the same run.

Single process only: there is no leader election.
"""

from __future__ import annotations

import threading
from datetime import datetime
from typing import Callable
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from recurrence_batch.domain.schedule import compute_next_run, should_fire
from recurrence_batch.domain.types import BatchRunResult, ScheduleFrequency
from recurrence_batch.models.batch import JobScheduleModel
from recurrence_batch.services.executor import BatchExecutor
from recurrence_kernel.domain.clock import Clock, SystemClock
from recurrence_kernel.logging_config import get_logger
from recurrence_kernel.services.recurring_service import SYSTEM_ACTOR_ID

logger = get_logger("batch.scheduler")


def firing_key(schedule_id: UUID, at: datetime) -> str:
    return f"schedule-{schedule_id}-{at:%Y%m%d-%H%M}"


class BatchScheduler:
    def __init__(
        self,
        session_factory: Callable[[], Session],
        executor_factory: Callable[[Session], BatchExecutor],
        clock: Clock | None = None,
        actor_id: UUID | None = None,
        tick_interval_seconds: float = 60,
    ):
        self._session_factory = session_factory
        self._executor_factory = executor_factory
        self._clock = clock or SystemClock()
        self._actor_id = actor_id or SYSTEM_ACTOR_ID
        self._tick_interval = tick_interval_seconds
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def tick(self) -> int:
        """Fire every due schedule once; return how many fired.

        Listing the due schedules is the only step that can fail the whole
        tick: the error is logged and the tick reports zero.
        """
        now = self._clock.now()
        try:
            due = self._due_schedule_ids(now)
        except Exception:
            logger.exception("scheduler_tick_failed")
            return 0

        fired = 0
        for schedule_id in due:
            # Checked between schedules so stop() never interrupts a job.
            if self._stop_event.is_set():
                break
            if self._fire_one(schedule_id, now):
                fired += 1
        return fired

    def start(self) -> None:
        """Poll on a daemon thread until ``stop()``; a second call is a no-op."""
        if self.is_running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._loop, name="batch-scheduler", daemon=True,
        )
        self._thread.start()
        logger.info("scheduler_started", extra={"tick_interval": self._tick_interval})

    def stop(self, timeout: float = 30.0) -> None:
        self._stop_event.set()
        if self.is_running:
            self._thread.join(timeout=timeout)
        logger.info("scheduler_stopped")

    def _loop(self) -> None:
        while not self._stop_event.is_set():
            self.tick()
            self._stop_event.wait(timeout=self._tick_interval)

    def _due_schedule_ids(self, now: datetime) -> list[UUID]:
        session = self._session_factory()
        try:
            schedules = session.execute(
                select(JobScheduleModel)
                .where(JobScheduleModel.is_active.is_(True))
                .order_by(JobScheduleModel.job_name)
            ).scalars().all()
            return [s.id for s in schedules if should_fire(s.to_dto(), now)]
        finally:
            session.close()

    def _fire_one(self, schedule_id: UUID, now: datetime) -> bool:
        session = self._session_factory()
        try:
            schedule = session.get(JobScheduleModel, schedule_id)
            if schedule is None:
                return False
            job_name = schedule.job_name
            result = self._fire(session, schedule, now)
            session.commit()
            logger.info(
                "schedule_fired",
                extra={
                    "schedule_id": str(schedule_id),
                    "job_name": job_name,
                    "job_id": str(result.job_id),
                    "status": result.status.value,
                    "next_run_at": schedule.next_run_at,
                },
            )
            return True
        except Exception:
            session.rollback()
            logger.exception(
                "schedule_fire_failed", extra={"schedule_id": str(schedule_id)},
            )
            return False
        finally:
            session.close()

    def _fire(
        self,
        session: Session,
        schedule: JobScheduleModel,
        now: datetime,
    ) -> BatchRunResult:
        parameters = dict(schedule.parameters or {})
        if schedule.org_id is not None:
            parameters.setdefault("org_id", schedule.org_id)

        executor = self._executor_factory(session)
        job = executor.submit_job(
            job_name=schedule.job_name,
            task_type=schedule.task_type,
            idempotency_key=firing_key(schedule.id, now),
            actor_id=self._actor_id,
            parameters=parameters,
        )
        result = executor.execute_job(job.job_id, self._actor_id)

        schedule.mark_fired(
            now,
            result.status,
            compute_next_run(
                frequency=ScheduleFrequency(schedule.frequency),
                last_run_at=now,
                cron_expression=schedule.cron_expression,
            ),
        )
        return result
