"""
recurrence_batch.models -- ORM models for batch processing persistence.

Architecture: recurrence_batch/models. Imports from recurrence_kernel.db.base only.
"""

from recurrence_batch.models.batch import (
    BatchItemModel,
    BatchJobModel,
    JobScheduleModel,
)

__all__ = [
    "BatchItemModel",
    "BatchJobModel",
    "JobScheduleModel",
]
