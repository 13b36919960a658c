"""
Value types for the batch layer: jobs, item outcomes, schedules.

Pure data, no I/O.  The ORM models in ``recurrence_batch.models`` convert
to and from these with ``to_dto`` / ``from_dto``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID


class BatchJobStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"  # nothing failed (skips and empty runs included)
    FAILED = "failed"  # nothing succeeded or was skipped
    CANCELLED = "cancelled"
    PARTIALLY_COMPLETED = "partially_completed"

    @property
    def is_finished(self) -> bool:
        return self not in (BatchJobStatus.PENDING, BatchJobStatus.RUNNING)

    @classmethod
    def from_counts(cls, succeeded: int, failed: int, skipped: int) -> BatchJobStatus:
        """Final status of a run from its item tallies."""
        if failed == 0:
            return cls.COMPLETED
        if succeeded == 0 and skipped == 0:
            return cls.FAILED
        return cls.PARTIALLY_COMPLETED


class BatchItemStatus(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"  # rule deleted or stopped, lease ended, since planning


class ScheduleFrequency(str, Enum):
    """How often a schedule repeats when it has no cron expression."""

    ONCE = "once"
    HOURLY = "hourly"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    ON_DEMAND = "on_demand"  # never fired by the scheduler


@dataclass(frozen=True)
class BatchJob:
    """A submitted run of one task type.

    ``idempotency_key`` is unique across all jobs; the scheduler derives it
    from the schedule id and the firing minute so a tick can never start
    the same run twice.
    """

    job_id: UUID
    job_name: str
    task_type: str  # e.g. "recurring.generate_missing_instances"
    status: BatchJobStatus
    idempotency_key: str
    parameters: dict[str, Any] = field(default_factory=dict)  # e.g. {"org_id": ...}
    total_items: int = 0
    succeeded_items: int = 0
    failed_items: int = 0
    skipped_items: int = 0
    created_at: datetime | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    created_by: UUID | None = None
    correlation_id: str | None = None
    error_summary: str | None = None


@dataclass(frozen=True)
class BatchItemResult:
    """Outcome of one item (one rule, one lease) inside a job."""

    item_index: int
    item_key: str  # rule id or lease id
    status: BatchItemStatus
    error_code: str | None = None
    error_message: str | None = None
    result_data: dict[str, Any] | None = None  # e.g. {"instances_created": 3}
    duration_ms: int = 0
    started_at: datetime | None = None
    completed_at: datetime | None = None


@dataclass(frozen=True)
class BatchRunResult:
    """Returned by ``BatchExecutor.execute_job()``."""

    job_id: UUID
    status: BatchJobStatus
    total_items: int
    succeeded: int
    failed: int
    skipped: int
    item_results: tuple[BatchItemResult, ...] = ()
    started_at: datetime | None = None
    completed_at: datetime | None = None
    duration_ms: int = 0
    correlation_id: str | None = None


@dataclass(frozen=True)
class JobSchedule:
    """When a task type runs on its own.

    ``cron_expression`` takes precedence over ``frequency`` when both are
    set.  ``next_run_at`` is recomputed after every firing.
    """

    schedule_id: UUID
    job_name: str
    task_type: str
    frequency: ScheduleFrequency
    parameters: dict[str, Any] = field(default_factory=dict)
    cron_expression: str | None = None
    next_run_at: datetime | None = None
    last_run_at: datetime | None = None
    last_run_status: BatchJobStatus | None = None
    is_active: bool = True
    created_by: UUID | None = None
    org_id: str | None = None
