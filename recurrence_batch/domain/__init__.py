"""
recurrence_batch.domain -- Pure types and value objects for batch processing.

ZERO I/O.  All types are frozen dataclasses.
"""

from recurrence_batch.domain.types import (
    BatchItemResult,
    BatchItemStatus,
    BatchJob,
    BatchJobStatus,
    BatchRunResult,
    JobSchedule,
    ScheduleFrequency,
)

__all__ = [
    "BatchItemResult",
    "BatchItemStatus",
    "BatchJob",
    "BatchJobStatus",
    "BatchRunResult",
    "JobSchedule",
    "ScheduleFrequency",
]
