"""
The ``BatchTask`` protocol and the registry the executor looks tasks up in.

Besides the protocol members, a task may set any of these plain class
attributes; ``task_options()`` reads them with defaults:

    exclusive           only one RUNNING job of this task_type at a time
    checkpoint          commit after every item
    rate_limit_seconds  pause between items
    progress_noun       noun used in the job's progress text
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol, runtime_checkable
from uuid import UUID

from sqlalchemy.orm import Session

from billing_batch.domain.types import BatchItemStatus

# Key under which the executor hands the running job's id to a task.
JOB_ID_PARAMETER = "_job_id"


@dataclass(frozen=True)
class BatchItemInput:
    item_index: int
    item_key: str
    payload: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class BatchTaskResult:
    """What ``execute_item`` reports; build with the classmethods."""

    status: BatchItemStatus
    result_data: dict[str, Any] | None = None
    error_code: str | None = None
    error_message: str | None = None

    @classmethod
    def succeeded(cls, **result_data: Any) -> BatchTaskResult:
        return cls(status=BatchItemStatus.SUCCEEDED, result_data=result_data or None)

    @classmethod
    def skipped(cls, reason: str) -> BatchTaskResult:
        return cls(status=BatchItemStatus.SKIPPED, error_message=reason)

    @classmethod
    def failed(cls, error_code: str, error_message: str) -> BatchTaskResult:
        return cls(status=BatchItemStatus.FAILED, error_code=error_code, error_message=error_message)


@dataclass(frozen=True)
class TaskOptions:
    exclusive: bool = False
    checkpoint: bool = False
    rate_limit_seconds: float = 0.0
    progress_noun: str = "items"


def task_options(task: Any) -> TaskOptions:
    defaults = TaskOptions()
    return TaskOptions(
        exclusive=bool(getattr(task, "exclusive", defaults.exclusive)),
        checkpoint=bool(getattr(task, "checkpoint", defaults.checkpoint)),
        rate_limit_seconds=float(getattr(task, "rate_limit_seconds", 0) or 0),
        progress_noun=getattr(task, "progress_noun", defaults.progress_noun),
    )


def job_id_from(parameters: dict[str, Any]) -> UUID | None:
    value = parameters.get(JOB_ID_PARAMETER)
    return UUID(value) if value else None


@runtime_checkable
class BatchTask(Protocol):
    """A unit of background work, split into independently committed items.

    Tasks never begin or end transactions themselves: the executor wraps
    each ``execute_item`` call in a SAVEPOINT and owns any checkpoint
    commits.
    """

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
        """Select the records this run will touch."""
        ...

    def execute_item(
        self,
        item: BatchItemInput,
        parameters: dict[str, Any],
        session: Session,
        as_of: datetime,
    ) -> BatchTaskResult:
        """Process one item. ``parameters`` includes ``JOB_ID_PARAMETER``."""
        ...


class TaskRegistry:
    """One task per ``task_type``."""

    def __init__(self, tasks: tuple[BatchTask, ...] = ()) -> None:
        self._tasks: dict[str, BatchTask] = {}
        for task in tasks:
            self.register(task)

    def register(self, task: BatchTask) -> None:
        if task.task_type in self._tasks:
            raise ValueError(f"Task type '{task.task_type}' is already registered")
        self._tasks[task.task_type] = task

    def get(self, task_type: str) -> BatchTask:
        task = self._tasks.get(task_type)
        if task is None:
            raise KeyError(
                f"No task registered for type '{task_type}'. "
                f"Available: {list(self.list_tasks())}"
            )
        return task

    def list_tasks(self) -> tuple[str, ...]:
        return tuple(sorted(self._tasks))

    def __len__(self) -> int:
        return len(self._tasks)

    def __contains__(self, task_type: str) -> bool:
        return task_type in self._tasks
