"""
BatchExecutor: runs one batch job, one SAVEPOINT per item.

A job moves PENDING -> RUNNING -> COMPLETED / PARTIALLY_COMPLETED / FAILED,
or to CANCELLED from either of the first two.  A failing item (a FAILED
result or an exception) rolls back only its own savepoint; its siblings
keep their writes.  The executor flushes but never commits: the scheduler
or the calling script owns the outer transaction.

The exception is a task that sets ``commits_per_item``: no savepoints,
the job row is committed once it starts and again after every item, and
the task commits its own work.  A failing item then rolls back the whole
session, which holds nothing but that item's writes.
"""

from __future__ import annotations

import time
from collections import Counter
from datetime import datetime
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.orm import Session, SessionTransaction

from recurrence_batch.domain.types import (
    BatchItemResult,
    BatchItemStatus,
    BatchJob,
    BatchJobStatus,
    BatchRunResult,
)
from recurrence_batch.models.batch import BatchItemModel, BatchJobModel
from recurrence_batch.tasks.base import BatchItemInput, BatchTask, TaskRegistry
from recurrence_kernel.domain.clock import Clock, SystemClock
from recurrence_kernel.exceptions import (
    BatchAlreadyRunningError,
    BatchIdempotencyError,
    BatchJobNotFoundError,
    TaskNotRegisteredError,
)
from recurrence_kernel.logging_config import LogContext, get_logger

logger = get_logger("batch.executor")


def _elapsed_ms(since: float) -> int:
    return int((time.monotonic() - since) * 1000)


def _commits_per_item(task: BatchTask) -> bool:
    return bool(getattr(task, "commits_per_item", False))


class BatchExecutor:
    """Submit, run, cancel and inspect batch jobs against one session."""

    def __init__(
        self,
        session: Session,
        task_registry: TaskRegistry,
        clock: Clock | None = None,
    ):
        self._session = session
        self._task_registry = task_registry
        self._clock = clock or SystemClock()

    def submit_job(
        self,
        job_name: str,
        task_type: str,
        idempotency_key: str,
        actor_id: UUID,
        parameters: dict[str, Any] | None = None,
        correlation_id: str | None = None,
    ) -> BatchJob:
        """Record a PENDING job.

        Raises:
            TaskNotRegisteredError: ``task_type`` has no registered task.
            BatchIdempotencyError: a job with ``idempotency_key`` exists.
        """
        if task_type not in self._task_registry:
            raise TaskNotRegisteredError(task_type, self._task_registry.list_tasks())

        existing_id = self._session.execute(
            select(BatchJobModel.id).where(
                BatchJobModel.idempotency_key == idempotency_key,
            )
        ).scalar_one_or_none()
        if existing_id is not None:
            raise BatchIdempotencyError(idempotency_key, str(existing_id))

        job = BatchJob(
            job_id=uuid4(),
            job_name=job_name,
            task_type=task_type,
            status=BatchJobStatus.PENDING,
            idempotency_key=idempotency_key,
            parameters=parameters or {},
            created_at=self._clock.now(),
            created_by=actor_id,
            correlation_id=correlation_id,
        )
        self._session.add(BatchJobModel.for_submission(job, created_by_id=actor_id))
        self._session.flush()

        logger.info(
            "batch_job_submitted",
            extra={
                "job_id": str(job.job_id),
                "job_name": job_name,
                "task_type": task_type,
                "idempotency_key": idempotency_key,
            },
        )
        return job

    def execute_job(self, job_id: UUID, actor_id: UUID) -> BatchRunResult:
        """Run a PENDING job to completion.

        Raises:
            BatchJobNotFoundError: no job with ``job_id``.
            BatchAlreadyRunningError: the job has already left PENDING.
            TaskNotRegisteredError: the job's task type was unregistered
                after submission.
        """
        started = time.monotonic()
        job_model = self._lock_job(job_id)
        if job_model.status != BatchJobStatus.PENDING.value:
            raise BatchAlreadyRunningError(job_model.job_name, str(job_id))

        task = self._task_registry.get(job_model.task_type)
        parameters = job_model.parameters or {}

        with LogContext.bind(job_id=str(job_id), correlation_id=job_model.correlation_id):
            as_of = self._clock.now()
            job_model.start(as_of)
            self._session.flush()

            try:
                items = task.prepare_items(
                    parameters=parameters, session=self._session, as_of=as_of,
                )
            except Exception as exc:
                logger.exception("batch_prepare_failed")
                return self._fail_job(job_model, f"prepare_items failed: {exc}", started)

            job_model.total_items = len(items)
            self._session.flush()
            if _commits_per_item(task):
                self._session.commit()
            logger.info(
                "batch_job_started",
                extra={
                    "job_name": job_model.job_name,
                    "task_type": job_model.task_type,
                    "total_items": len(items),
                },
            )

            results = tuple(
                self._run_item(task, item, parameters, as_of, job_id, actor_id)
                for item in items
            )
            tally = Counter(result.status for result in results)
            succeeded = tally[BatchItemStatus.SUCCEEDED]
            failed = tally[BatchItemStatus.FAILED]
            skipped = tally[BatchItemStatus.SKIPPED]

            status = BatchJobStatus.from_counts(succeeded, failed, skipped)
            job_model.record_tallies(succeeded, failed, skipped)
            job_model.finish(
                status,
                self._clock.now(),
                error_summary=f"{failed} item(s) failed" if failed else None,
            )
            self._session.flush()

            duration_ms = _elapsed_ms(started)
            logger.info(
                "batch_job_completed",
                extra={
                    "status": status.value,
                    "succeeded": succeeded,
                    "failed": failed,
                    "skipped": skipped,
                    "duration_ms": duration_ms,
                },
            )

        return BatchRunResult(
            job_id=job_id,
            status=status,
            total_items=len(items),
            succeeded=succeeded,
            failed=failed,
            skipped=skipped,
            item_results=results,
            started_at=job_model.started_at,
            completed_at=job_model.completed_at,
            duration_ms=duration_ms,
            correlation_id=job_model.correlation_id,
        )

    def cancel_job(self, job_id: UUID, reason: str, actor_id: UUID) -> BatchJob:
        """Move a PENDING or RUNNING job to CANCELLED.

        Raises:
            BatchJobNotFoundError: no job with ``job_id``.
            ValueError: the job has already finished.
        """
        job_model = self._lock_job(job_id)
        if BatchJobStatus(job_model.status).is_finished:
            raise ValueError(f"Cannot cancel job in status {job_model.status}")

        job_model.finish(
            BatchJobStatus.CANCELLED,
            self._clock.now(),
            error_summary=f"Cancelled: {reason}",
        )
        job_model.updated_by_id = actor_id
        self._session.flush()

        logger.info(
            "batch_job_cancelled",
            extra={"job_id": str(job_id), "job_name": job_model.job_name, "reason": reason},
        )
        return job_model.to_dto()

    def get_job(self, job_id: UUID) -> BatchJob:
        model = self._session.get(BatchJobModel, job_id)
        if model is None:
            raise BatchJobNotFoundError(str(job_id))
        return model.to_dto()

    def get_job_items(self, job_id: UUID) -> tuple[BatchItemResult, ...]:
        rows = self._session.execute(
            select(BatchItemModel)
            .where(BatchItemModel.job_id == job_id)
            .order_by(BatchItemModel.item_index)
        ).scalars()
        return tuple(row.to_dto() for row in rows)

    # -------------------------------------------------------------------------

    def _lock_job(self, job_id: UUID) -> BatchJobModel:
        job_model = self._session.execute(
            select(BatchJobModel).where(BatchJobModel.id == job_id).with_for_update()
        ).scalar_one_or_none()
        if job_model is None:
            raise BatchJobNotFoundError(str(job_id))
        return job_model

    def _run_item(
        self,
        task: BatchTask,
        item: BatchItemInput,
        parameters: dict[str, Any],
        as_of: datetime,
        job_id: UUID,
        actor_id: UUID,
    ) -> BatchItemResult:
        """Execute one item and record the outcome.

        The item runs inside its own savepoint, or for a per-item-commit
        task directly on the session, committed with its result row.
        """
        began = time.monotonic()
        began_at = self._clock.now()
        outcome: dict[str, Any]

        per_item = _commits_per_item(task)
        savepoint = None if per_item else self._session.begin_nested()
        try:
            task_result = task.execute_item(
                item=item, parameters=parameters, session=self._session, as_of=as_of,
            )
        except Exception as exc:
            self._discard(savepoint)
            logger.exception(
                "batch_item_failed",
                extra={"item_key": item.item_key, "error_code": "UNHANDLED_EXCEPTION"},
            )
            outcome = {
                "status": BatchItemStatus.FAILED,
                "error_code": "UNHANDLED_EXCEPTION",
                "error_message": str(exc),
            }
        else:
            # Only a success keeps its writes.
            if task_result.status != BatchItemStatus.SUCCEEDED:
                self._discard(savepoint)
            elif savepoint is not None:
                savepoint.commit()
            if task_result.status == BatchItemStatus.FAILED:
                logger.warning(
                    "batch_item_failed",
                    extra={
                        "item_key": item.item_key,
                        "error_code": task_result.error_code or "UNKNOWN",
                        "error": task_result.error_message or "",
                    },
                )
            outcome = {
                "status": task_result.status,
                "error_code": task_result.error_code,
                "error_message": task_result.error_message,
                "result_data": task_result.result_data,
            }

        result = BatchItemResult(
            item_index=item.item_index,
            item_key=item.item_key,
            duration_ms=_elapsed_ms(began),
            started_at=began_at,
            completed_at=self._clock.now(),
            **outcome,
        )
        self._session.add(
            BatchItemModel.from_dto(
                result, job_id=job_id, created_by_id=actor_id, created_at=self._clock.now(),
            )
        )
        if per_item:
            self._session.commit()
        return result

    def _discard(self, savepoint: SessionTransaction | None) -> None:
        if savepoint is None:
            self._session.rollback()
        else:
            savepoint.rollback()

    def _fail_job(
        self,
        job_model: BatchJobModel,
        error_summary: str,
        started: float,
    ) -> BatchRunResult:
        job_model.finish(BatchJobStatus.FAILED, self._clock.now(), error_summary)
        self._session.flush()

        logger.error(
            "batch_job_failed",
            extra={"job_name": job_model.job_name, "error_summary": error_summary},
        )
        return BatchRunResult(
            job_id=job_model.id,
            status=BatchJobStatus.FAILED,
            total_items=0,
            succeeded=0,
            failed=0,
            skipped=0,
            started_at=job_model.started_at,
            completed_at=job_model.completed_at,
            duration_ms=_elapsed_ms(started),
            correlation_id=job_model.correlation_id,
        )
