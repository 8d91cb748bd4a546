"""
Background job value objects.

Frozen dataclasses only; no session, no I/O.  The ORM rows in
``billing_batch.models.batch`` convert to and from these.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID


class BatchJobStatus(str, Enum):
    PENDING = "pending"  # queued
    RUNNING = "running"
    COMPLETED = "completed"  # every item succeeded
    FAILED = "failed"  # nothing succeeded, nothing skipped
    CANCELLED = "cancelled"
    PARTIALLY_COMPLETED = "partially_completed"


class BatchItemStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"  # nothing to do, e.g. tract already set


TERMINAL_JOB_STATUSES = frozenset({
    BatchJobStatus.COMPLETED,
    BatchJobStatus.FAILED,
    BatchJobStatus.CANCELLED,
    BatchJobStatus.PARTIALLY_COMPLETED,
})


@dataclass(frozen=True)
class BatchJob:
    """Snapshot of a queued or finished job.

    ``progress_text`` is the status line a running job keeps current,
    e.g. "updated 12 / 40 locations".
    """

    job_id: UUID
    job_name: str
    task_type: str  # registry key, e.g. "location.set_coord"
    status: BatchJobStatus
    idempotency_key: str
    parameters: dict[str, Any] = field(default_factory=dict)
    total_items: int = 0
    succeeded_items: int = 0
    failed_items: int = 0
    skipped_items: int = 0
    progress_text: str | None = None
    created_at: datetime | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    correlation_id: str | None = None
    error_summary: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_JOB_STATUSES


@dataclass(frozen=True)
class BatchItemResult:
    """Recorded outcome of one item."""

    item_index: int
    item_key: str  # usually a location id
    status: BatchItemStatus
    error_code: str | None = None
    error_message: str | None = None
    result_data: dict[str, Any] | None = None
    duration_ms: int = 0
    started_at: datetime | None = None
    completed_at: datetime | None = None


@dataclass(frozen=True)
class BatchRunResult:
    """What ``BatchExecutor.execute_job()`` returns."""

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
    error_summary: str | None = None
