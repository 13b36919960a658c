"""
Tables behind the batch layer.

``batch_jobs`` holds one row per run (with its item tallies),
``batch_items`` one row per processed rule or lease, and ``job_schedules``
the sweep and reminder schedules the scheduler polls.  The executor and
scheduler change rows only through the small transition methods defined
here, so status and timestamp columns always move together.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import JSON, Boolean, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from recurrence_kernel.db.base import TrackedBase, UUIDString

if TYPE_CHECKING:
    from recurrence_batch.domain.types import (
        BatchItemResult,
        BatchJob,
        BatchJobStatus,
        JobSchedule,
    )


class BatchJobModel(TrackedBase):
    __tablename__ = "batch_jobs"
    __table_args__ = (
        Index("ix_batch_jobs_status", "status"),
        Index("ix_batch_jobs_task_type", "task_type"),
    )

    job_name: Mapped[str] = mapped_column(String(200))
    task_type: Mapped[str] = mapped_column(String(200))
    status: Mapped[str] = mapped_column(String(50))
    idempotency_key: Mapped[str] = mapped_column(String(200), unique=True)
    parameters: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    total_items: Mapped[int] = mapped_column(Integer, default=0)
    succeeded_items: Mapped[int] = mapped_column(Integer, default=0)
    failed_items: Mapped[int] = mapped_column(Integer, default=0)
    skipped_items: Mapped[int] = mapped_column(Integer, default=0)
    started_at: Mapped[datetime | None]
    completed_at: Mapped[datetime | None]
    correlation_id: Mapped[str | None] = mapped_column(String(200), nullable=True)
    error_summary: Mapped[str | None] = mapped_column(Text, nullable=True)

    def start(self, at: datetime) -> None:
        from recurrence_batch.domain.types import BatchJobStatus

        self.status = BatchJobStatus.RUNNING.value
        self.started_at = at

    def finish(
        self,
        status: BatchJobStatus,
        at: datetime,
        error_summary: str | None = None,
    ) -> None:
        self.status = status.value
        self.completed_at = at
        if error_summary is not None:
            self.error_summary = error_summary

    def record_tallies(self, succeeded: int, failed: int, skipped: int) -> None:
        self.succeeded_items = succeeded
        self.failed_items = failed
        self.skipped_items = skipped

    def to_dto(self) -> BatchJob:
        from recurrence_batch.domain.types import BatchJob, BatchJobStatus

        return BatchJob(
            job_id=self.id,
            job_name=self.job_name,
            task_type=self.task_type,
            status=BatchJobStatus(self.status),
            idempotency_key=self.idempotency_key,
            parameters=self.parameters or {},
            total_items=self.total_items,
            succeeded_items=self.succeeded_items,
            failed_items=self.failed_items,
            skipped_items=self.skipped_items,
            created_at=self.created_at,
            started_at=self.started_at,
            completed_at=self.completed_at,
            created_by=self.created_by_id,
            correlation_id=self.correlation_id,
            error_summary=self.error_summary,
        )

    @classmethod
    def for_submission(cls, dto: BatchJob, created_by_id: UUID) -> BatchJobModel:
        """A new PENDING row; tallies and run timestamps start empty."""
        return cls(
            id=dto.job_id,
            job_name=dto.job_name,
            task_type=dto.task_type,
            status=dto.status.value,
            idempotency_key=dto.idempotency_key,
            parameters=dto.parameters or None,
            correlation_id=dto.correlation_id,
            created_at=dto.created_at,
            created_by_id=created_by_id,
        )


class BatchItemModel(TrackedBase):
    __tablename__ = "batch_items"
    __table_args__ = (
        Index("ix_batch_items_job_status", "job_id", "status"),
        Index("ix_batch_items_item_key", "item_key"),
    )

    job_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("batch_jobs.id", ondelete="CASCADE"),
    )
    item_index: Mapped[int] = mapped_column(Integer)
    item_key: Mapped[str] = mapped_column(String(200))
    status: Mapped[str] = mapped_column(String(50))
    error_code: Mapped[str | None] = mapped_column(String(100), nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    result_data: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    duration_ms: Mapped[int] = mapped_column(Integer, default=0)
    started_at: Mapped[datetime | None]
    completed_at: Mapped[datetime | None]

    _COPIED = (
        "item_index",
        "item_key",
        "error_code",
        "error_message",
        "result_data",
        "duration_ms",
        "started_at",
        "completed_at",
    )

    def to_dto(self) -> BatchItemResult:
        from recurrence_batch.domain.types import BatchItemResult, BatchItemStatus

        return BatchItemResult(
            status=BatchItemStatus(self.status),
            **{name: getattr(self, name) for name in self._COPIED},
        )

    @classmethod
    def from_dto(
        cls,
        dto: BatchItemResult,
        job_id: UUID,
        created_by_id: UUID,
        created_at: datetime | None = None,
    ) -> BatchItemModel:
        model = cls(
            job_id=job_id,
            status=dto.status.value,
            created_by_id=created_by_id,
            **{name: getattr(dto, name) for name in cls._COPIED},
        )
        if created_at is not None:
            model.created_at = created_at
        return model


class JobScheduleModel(TrackedBase):
    __tablename__ = "job_schedules"
    __table_args__ = (
        Index("ix_job_schedules_active_next", "is_active", "next_run_at"),
        Index("ix_job_schedules_task_type", "task_type"),
    )

    job_name: Mapped[str] = mapped_column(String(200))
    task_type: Mapped[str] = mapped_column(String(200))
    frequency: Mapped[str] = mapped_column(String(50))
    parameters: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    cron_expression: Mapped[str | None] = mapped_column(String(100), nullable=True)
    next_run_at: Mapped[datetime | None]
    last_run_at: Mapped[datetime | None]
    last_run_status: Mapped[str | None] = mapped_column(String(50), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    org_id: Mapped[str | None] = mapped_column(String(100), nullable=True)

    def mark_fired(
        self,
        at: datetime,
        status: BatchJobStatus,
        next_run_at: datetime | None,
    ) -> None:
        self.last_run_at = at
        self.last_run_status = status.value
        self.next_run_at = next_run_at

    def to_dto(self) -> JobSchedule:
        from recurrence_batch.domain.types import (
            BatchJobStatus,
            JobSchedule,
            ScheduleFrequency,
        )

        return JobSchedule(
            schedule_id=self.id,
            job_name=self.job_name,
            task_type=self.task_type,
            frequency=ScheduleFrequency(self.frequency),
            parameters=self.parameters or {},
            cron_expression=self.cron_expression,
            next_run_at=self.next_run_at,
            last_run_at=self.last_run_at,
            last_run_status=(
                BatchJobStatus(self.last_run_status) if self.last_run_status else None
            ),
            is_active=self.is_active,
            created_by=self.created_by_id,
            org_id=self.org_id,
        )

    @classmethod
    def from_dto(cls, dto: JobSchedule, created_by_id: UUID) -> JobScheduleModel:
        return cls(
            id=dto.schedule_id,
            job_name=dto.job_name,
            task_type=dto.task_type,
            frequency=dto.frequency.value,
            parameters=dto.parameters or None,
            cron_expression=dto.cron_expression,
            next_run_at=dto.next_run_at,
            last_run_at=dto.last_run_at,
            last_run_status=dto.last_run_status.value if dto.last_run_status else None,
            is_active=dto.is_active,
            org_id=dto.org_id,
            created_by_id=created_by_id,
        )
