"""recurrence_batch.services -- executor and scheduler."""

from recurrence_batch.services.executor import BatchExecutor
from recurrence_batch.services.scheduler import BatchScheduler

__all__ = ["BatchExecutor", "BatchScheduler"]
