"""
What a batch task is, and where the executor finds one.

A task splits a run into items (``prepare_items``) and handles them one at
a time (``execute_item``).  The executor wraps every ``execute_item`` call
in a savepoint and keeps its writes only when the returned result is
SUCCEEDED, so tasks never open or close transactions themselves.

A task may set ``commits_per_item = True`` instead.  The executor then
skips the savepoints and commits after every item, and the task commits
its own writes (so it can commit while still holding a lock).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol, runtime_checkable

from sqlalchemy.orm import Session

from recurrence_batch.domain.types import BatchItemStatus
from recurrence_kernel.exceptions import TaskNotRegisteredError


@dataclass(frozen=True)
class BatchItemInput:
    item_index: int
    item_key: str  # rule id, lease id
    payload: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class BatchTaskResult:
    status: BatchItemStatus
    result_data: dict[str, Any] | None = None
    error_code: str | None = None
    error_message: str | None = None

    @classmethod
    def succeeded(cls, **result_data: Any) -> BatchTaskResult:
        return cls(BatchItemStatus.SUCCEEDED, result_data=result_data or None)

    @classmethod
    def skipped(cls, **result_data: Any) -> BatchTaskResult:
        return cls(BatchItemStatus.SKIPPED, result_data=result_data or None)

    @classmethod
    def failed(cls, error_code: str, error_message: str | None = None) -> BatchTaskResult:
        return cls(
            BatchItemStatus.FAILED,
            error_code=error_code,
            error_message=error_message,
        )


@runtime_checkable
class BatchTask(Protocol):
    @property
    def task_type(self) -> str: ...

    @property
    def description(self) -> str: ...

    def prepare_items(
        self,
        parameters: dict[str, Any],
        session: Session,
        as_of: datetime,
    ) -> tuple[BatchItemInput, ...]:
        """Snapshot the items this run will process, in order."""
        ...

    def execute_item(
        self,
        item: BatchItemInput,
        parameters: dict[str, Any],
        session: Session,
        as_of: datetime,
    ) -> BatchTaskResult:
        """Handle one item; raising counts as a FAILED item."""
        ...


class TaskRegistry:
    """Tasks keyed by ``task_type``; a type can be registered once."""

    def __init__(self) -> None:
        self._tasks: dict[str, BatchTask] = {}

    def __len__(self) -> int:
        return len(self._tasks)

    def __contains__(self, task_type: str) -> bool:
        return task_type in self._tasks

    def register(self, task: BatchTask) -> None:
        if task.task_type in self:
            raise ValueError(f"Task type '{task.task_type}' is already registered")
        self._tasks[task.task_type] = task

    def get(self, task_type: str) -> BatchTask:
        task = self._tasks.get(task_type)
        if task is None:
            raise TaskNotRegisteredError(task_type, self.list_tasks())
        return task

    def list_tasks(self) -> tuple[str, ...]:
        return tuple(sorted(self._tasks))


def default_task_registry() -> TaskRegistry:
    return TaskRegistry()
