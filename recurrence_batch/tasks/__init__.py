"""
recurrence_batch.tasks -- Task protocol, registry, and recurring task implementations.
"""

from recurrence_batch.tasks.base import (
    BatchItemInput,
    BatchTask,
    BatchTaskResult,
    TaskRegistry,
    default_task_registry,
)
from recurrence_batch.tasks.recurring_tasks import (
    GenerateMissingInstancesTask,
    LeaseEndReminderTask,
    register_recurring_tasks,
)

__all__ = [
    "BatchItemInput",
    "BatchTask",
    "BatchTaskResult",
    "GenerateMissingInstancesTask",
    "LeaseEndReminderTask",
    "TaskRegistry",
    "default_task_registry",
    "register_recurring_tasks",
]
