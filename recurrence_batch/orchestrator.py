"""
BatchOrchestrator -- DI container for the batch processing system.

Contract:
    Wires the TaskRegistry with the recurring task implementations, creates
    BatchExecutor and BatchScheduler, and seeds the default schedules (the
    nightly sweep and the daily lease-end reminders) from EngineSettings.

Architecture: recurrence_batch (top-level).  The canonical entry point for
    configuring and running batch jobs.  Nothing in recurrence_kernel
    imports from here.

Invariants enforced:
    - Clock injection: all services receive the same Clock.
    - Seeding is idempotent: one schedule per task type.
"""

from __future__ import annotations

from typing import Callable
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.orm import Session

from recurrence_batch.domain.schedule import compute_next_run
from recurrence_batch.domain.types import JobSchedule, ScheduleFrequency
from recurrence_batch.models.batch import JobScheduleModel
from recurrence_batch.services.executor import BatchExecutor
from recurrence_batch.services.scheduler import BatchScheduler
from recurrence_batch.tasks.base import TaskRegistry
from recurrence_batch.tasks.recurring_tasks import (
    GenerateMissingInstancesTask,
    LeaseEndReminderTask,
    register_recurring_tasks,
)
from recurrence_config.bridges import build_lock_registry, expansion_limits_from_settings
from recurrence_config.schema import EngineSettings
from recurrence_kernel.domain.clock import Clock, SystemClock
from recurrence_kernel.logging_config import get_logger
from recurrence_kernel.services.recurring_service import SYSTEM_ACTOR_ID

logger = get_logger("batch.orchestrator")

SWEEP_TASK_TYPE = "recurring.generate_missing_instances"
LEASE_REMINDER_TASK_TYPE = "leases.end_reminders"


def _default_task_registry(settings: EngineSettings, clock: Clock) -> TaskRegistry:
    """Create a TaskRegistry pre-loaded with the recurring task implementations."""
    return register_recurring_tasks(
        TaskRegistry(),
        clock,
        limits=expansion_limits_from_settings(settings),
        lead_days=settings.lease_end_reminder_days,
        lock_registry=build_lock_registry(settings),
    )


class BatchOrchestrator:
    """DI container for the batch processing system.

    Contract:
        - ``from_session()`` factory creates a fully wired orchestrator.
        - ``create_executor()`` returns a BatchExecutor for ad-hoc jobs.
        - ``create_scheduler()`` returns a BatchScheduler for background use.
        - ``seed_default_schedules()`` installs the daily schedules.

    Non-goals:
        - Does NOT start the scheduler automatically -- caller decides.
        - Does NOT manage session lifecycle -- caller controls commits.
    """

    def __init__(
        self,
        session: Session,
        task_registry: TaskRegistry,
        settings: EngineSettings | None = None,
        clock: Clock | None = None,
        actor_id: UUID | None = None,
    ) -> None:
        self._session = session
        self._task_registry = task_registry
        self._settings = settings or EngineSettings()
        self._clock = clock or SystemClock()
        self._actor_id = actor_id or SYSTEM_ACTOR_ID

    # -------------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------------

    @classmethod
    def from_session(
        cls,
        session: Session,
        settings: EngineSettings | None = None,
        clock: Clock | None = None,
        actor_id: UUID | None = None,
        task_registry: TaskRegistry | None = None,
    ) -> BatchOrchestrator:
        """Create a fully wired BatchOrchestrator from a session.

        Args:
            session: SQLAlchemy session for persistence.
            settings: Engine settings (defaults when None).
            clock: Optional clock for deterministic testing.
            actor_id: Optional actor UUID for audit columns.
            task_registry: Optional pre-configured registry.  If None, uses
                the default registry with the recurring tasks.
        """
        effective_settings = settings or EngineSettings()
        effective_clock = clock or SystemClock()
        registry = (
            task_registry
            if task_registry is not None
            else _default_task_registry(effective_settings, effective_clock)
        )
        return cls(
            session=session,
            task_registry=registry,
            settings=effective_settings,
            clock=effective_clock,
            actor_id=actor_id,
        )

    # -------------------------------------------------------------------------
    # Executor
    # -------------------------------------------------------------------------

    def create_executor(self, session: Session | None = None) -> BatchExecutor:
        """Create a BatchExecutor on ``session`` (default: the orchestrator's)."""
        return BatchExecutor(
            session=session or self._session,
            task_registry=self._task_registry,
            clock=self._clock,
        )

    # -------------------------------------------------------------------------
    # Scheduler
    # -------------------------------------------------------------------------

    def create_scheduler(
        self,
        session_factory: Callable[[], Session],
        tick_interval_seconds: float | None = None,
    ) -> BatchScheduler:
        """Create a BatchScheduler wired with the orchestrator's dependencies.

        Args:
            session_factory: Callable returning new sessions for each tick.
            tick_interval_seconds: Polling interval (default from settings).
        """
        clock = self._clock
        registry = self._task_registry

        def executor_factory(session: Session) -> BatchExecutor:
            return BatchExecutor(session=session, task_registry=registry, clock=clock)

        return BatchScheduler(
            session_factory=session_factory,
            executor_factory=executor_factory,
            clock=clock,
            actor_id=self._actor_id,
            tick_interval_seconds=(
                tick_interval_seconds
                if tick_interval_seconds is not None
                else self._settings.scheduler_tick_seconds
            ),
        )

    def seed_default_schedules(self) -> tuple[JobSchedule, ...]:
        """Install the sweep and lease-reminder schedules if missing.

        Returns the schedules that were created (empty when both exist).
        """
        defaults = (
            ("Nightly recurring sweep", SWEEP_TASK_TYPE, self._settings.sweep_cron),
            (
                "Daily lease-end reminders",
                LEASE_REMINDER_TASK_TYPE,
                self._settings.lease_reminder_cron,
            ),
        )
        now = self._clock.now()
        created: list[JobSchedule] = []

        for job_name, task_type, cron in defaults:
            if task_type not in self._task_registry:
                continue
            existing = self._session.execute(
                select(JobScheduleModel.id).where(JobScheduleModel.task_type == task_type)
            ).first()
            if existing is not None:
                continue

            dto = JobSchedule(
                schedule_id=uuid4(),
                job_name=job_name,
                task_type=task_type,
                frequency=ScheduleFrequency.DAILY,
                cron_expression=cron,
                next_run_at=compute_next_run(
                    ScheduleFrequency.DAILY, None, cron, base_time=now,
                ),
                created_by=self._actor_id,
            )
            self._session.add(JobScheduleModel.from_dto(dto, created_by_id=self._actor_id))
            created.append(dto)
            logger.info(
                "schedule_seeded",
                extra={
                    "task_type": task_type,
                    "cron_expression": cron,
                    "next_run_at": dto.next_run_at,
                },
            )

        self._session.flush()
        return tuple(created)

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def session(self) -> Session:
        return self._session

    @property
    def clock(self) -> Clock:
        return self._clock

    @property
    def settings(self) -> EngineSettings:
        return self._settings

    @property
    def task_registry(self) -> TaskRegistry:
        return self._task_registry

    @property
    def actor_id(self) -> UUID:
        return self._actor_id


__all__ = [
    "BatchOrchestrator",
    "GenerateMissingInstancesTask",
    "LEASE_REMINDER_TASK_TYPE",
    "LeaseEndReminderTask",
    "SWEEP_TASK_TYPE",
]
