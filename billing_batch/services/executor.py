"""
BatchExecutor -- runs one background job to completion.

Each item executes inside its own SAVEPOINT, so a failing location rolls
back only its own changes.  The item's outcome is recorded as a
``BatchItemModel`` row and folded into the job's counters and its
``progress_text`` line.

Tasks may declare options (see ``billing_batch.tasks.base.TaskOptions``):

* ``exclusive`` -- a second job of the same type refuses to start while one
  is RUNNING; it is closed as CANCELLED instead.
* ``checkpoint`` -- the session is committed when the job starts, after
  every item and at the end, so work done before a crash survives it.
  Without it the executor only flushes and the caller owns the transaction.
* ``rate_limit_seconds`` -- pause between consecutive items.
"""

from __future__ import annotations

import time
from collections import Counter
from collections.abc import Callable
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.orm import Session

from billing_kernel.domain.clock import Clock, SystemClock
from billing_kernel.exceptions import (
    BatchAlreadyRunningError,
    BatchIdempotencyError,
    BatchJobNotFoundError,
    BillingKernelError,
    TaskNotRegisteredError,
)
from billing_kernel.logging_config import LogContext, get_logger

from billing_batch.domain.types import (
    BatchItemResult,
    BatchItemStatus,
    BatchJob,
    BatchJobStatus,
    BatchRunResult,
)
from billing_batch.models.batch import BatchItemModel, BatchJobModel
from billing_batch.tasks.base import (
    JOB_ID_PARAMETER,
    BatchItemInput,
    BatchTask,
    TaskRegistry,
    task_options,
)

logger = get_logger("batch.executor")

UNHANDLED_ERROR_CODE = "UNHANDLED_EXCEPTION"


def final_status(counts: Counter) -> BatchJobStatus:
    """Job status from per-item outcome counts."""
    failed = counts[BatchItemStatus.FAILED]
    skipped = counts[BatchItemStatus.SKIPPED]
    if not failed and not skipped:
        return BatchJobStatus.COMPLETED
    if not counts[BatchItemStatus.SUCCEEDED] and not skipped:
        return BatchJobStatus.FAILED
    return BatchJobStatus.PARTIALLY_COMPLETED


def _elapsed_ms(since: float) -> int:
    return int((time.monotonic() - since) * 1000)


class BatchExecutor:
    """Submit, execute, cancel and inspect background jobs.

    Does not own threads or processes; something else decides when
    ``execute_job`` is called (see ``billing_batch.services.queue``).
    """

    def __init__(
        self,
        session: Session,
        task_registry: TaskRegistry,
        clock: Clock | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._session = session
        self._task_registry = task_registry
        self._clock = clock or SystemClock()
        self._sleep = sleep

    # -------------------------------------------------------------------------
    # Submit
    # -------------------------------------------------------------------------

    def submit_job(
        self,
        job_name: str,
        task_type: str,
        idempotency_key: str,
        parameters: dict[str, Any] | None = None,
        correlation_id: str | None = None,
    ) -> BatchJob:
        """Create a PENDING job.

        Raises:
            TaskNotRegisteredError: task_type is not in the registry.
            BatchIdempotencyError: idempotency_key was already used.
        """
        self._require_registered(task_type)

        existing = self._session.execute(
            select(BatchJobModel.id).where(
                BatchJobModel.idempotency_key == idempotency_key,
            )
        ).scalar_one_or_none()
        if existing is not None:
            raise BatchIdempotencyError(idempotency_key, str(existing))

        dto = BatchJob(
            job_id=uuid4(),
            job_name=job_name,
            task_type=task_type,
            status=BatchJobStatus.PENDING,
            idempotency_key=idempotency_key,
            parameters=parameters or {},
            created_at=self._clock.now(),
            correlation_id=correlation_id or LogContext.get_all().get("correlation_id"),
        )
        self._session.add(BatchJobModel.from_dto(dto))
        self._session.flush()

        logger.info(
            "batch_job_submitted",
            extra={
                "job_id": str(dto.job_id),
                "task_type": task_type,
                "idempotency_key": idempotency_key,
            },
        )
        return dto

    # -------------------------------------------------------------------------
    # Execute
    # -------------------------------------------------------------------------

    def execute_job(self, job_id: UUID) -> BatchRunResult:
        """Run a PENDING job item by item.

        Raises:
            BatchJobNotFoundError: job_id does not exist.
            BatchAlreadyRunningError: the job is not PENDING.
            TaskNotRegisteredError: its task_type is not registered.
        """
        with LogContext.bind(job_id=str(job_id)):
            return self._execute(job_id)

    def _execute(self, job_id: UUID) -> BatchRunResult:
        start = time.monotonic()
        job_model = self._lock_job(job_id)
        if job_model.status != BatchJobStatus.PENDING.value:
            raise BatchAlreadyRunningError(job_model.job_name, str(job_id))

        task = self._require_registered(job_model.task_type)
        options = task_options(task)

        if options.exclusive and self._other_running(job_model):
            logger.warning(
                "batch_job_exclusive_conflict",
                extra={"task_type": job_model.task_type},
            )
            return self._finish_early(
                job_model,
                BatchJobStatus.CANCELLED,
                f"another {job_model.task_type} run is in progress",
                start,
            )

        as_of = self._clock.now()
        job_model.status = BatchJobStatus.RUNNING.value
        job_model.started_at = as_of
        self._save(options.checkpoint)
        logger.info("batch_job_started", extra={"task_type": job_model.task_type})

        parameters = {**(job_model.parameters or {}), JOB_ID_PARAMETER: str(job_id)}

        try:
            items = task.prepare_items(parameters=parameters, session=self._session, as_of=as_of)
        except Exception as exc:
            logger.exception("batch_prepare_failed", extra={"task_type": job_model.task_type})
            return self._finish_early(
                job_model, BatchJobStatus.FAILED, f"prepare_items failed: {exc}", start,
            )

        total = len(items)
        noun = options.progress_noun
        job_model.total_items = total
        job_model.progress_text = f"updated 0 / {total} {noun}"
        self._session.flush()

        counts: Counter = Counter()
        results: list[BatchItemResult] = []
        for position, item in enumerate(items):
            if position and options.rate_limit_seconds:
                self._sleep(options.rate_limit_seconds)

            result = self._run_item(task, item, parameters, as_of)
            results.append(result)
            counts[result.status] += 1
            self._session.add(BatchItemModel.from_dto(result, job_id=job_id))

            job_model.succeeded_items = counts[BatchItemStatus.SUCCEEDED]
            job_model.failed_items = counts[BatchItemStatus.FAILED]
            job_model.skipped_items = counts[BatchItemStatus.SKIPPED]
            job_model.progress_text = f"updated {position + 1} / {total} {noun}"
            self._save(options.checkpoint)

        status = final_status(counts)
        failed = counts[BatchItemStatus.FAILED]
        job_model.status = status.value
        job_model.completed_at = self._clock.now()
        if failed:
            job_model.error_summary = f"{failed} item(s) failed"
        self._save(options.checkpoint)

        duration_ms = _elapsed_ms(start)
        logger.info(
            "batch_job_finished",
            extra={
                "task_type": job_model.task_type,
                "status": status.value,
                "succeeded": job_model.succeeded_items,
                "failed": failed,
                "skipped": job_model.skipped_items,
                "duration_ms": duration_ms,
            },
        )

        return BatchRunResult(
            job_id=job_id,
            status=status,
            total_items=total,
            succeeded=job_model.succeeded_items,
            failed=failed,
            skipped=job_model.skipped_items,
            item_results=tuple(results),
            started_at=job_model.started_at,
            completed_at=job_model.completed_at,
            duration_ms=duration_ms,
            correlation_id=job_model.correlation_id,
            error_summary=job_model.error_summary,
        )

    def _run_item(
        self,
        task: BatchTask,
        item: BatchItemInput,
        parameters: dict[str, Any],
        as_of,
    ) -> BatchItemResult:
        """Execute one item in a SAVEPOINT; only successes are kept."""
        start = time.monotonic()
        started_at = self._clock.now()
        savepoint = self._session.begin_nested()
        try:
            outcome = task.execute_item(
                item=item, parameters=parameters, session=self._session, as_of=as_of,
            )
        except Exception as exc:
            savepoint.rollback()
            code = exc.code if isinstance(exc, BillingKernelError) else UNHANDLED_ERROR_CODE
            logger.exception(
                "batch_item_failed",
                extra={"item_key": item.item_key, "error_code": code},
            )
            status, error_code, error_message, data = (
                BatchItemStatus.FAILED, code, str(exc), None,
            )
        else:
            if outcome.status == BatchItemStatus.SUCCEEDED:
                savepoint.commit()
            else:
                savepoint.rollback()
            if outcome.status == BatchItemStatus.FAILED:
                logger.warning(
                    "batch_item_failed",
                    extra={
                        "item_key": item.item_key,
                        "error_code": outcome.error_code,
                        "error": outcome.error_message,
                    },
                )
            status, error_code, error_message, data = (
                outcome.status, outcome.error_code, outcome.error_message, outcome.result_data,
            )

        return BatchItemResult(
            item_index=item.item_index,
            item_key=item.item_key,
            status=status,
            error_code=error_code,
            error_message=error_message,
            result_data=data,
            duration_ms=_elapsed_ms(start),
            started_at=started_at,
            completed_at=self._clock.now(),
        )

    # -------------------------------------------------------------------------
    # Cancel
    # -------------------------------------------------------------------------

    def cancel_job(self, job_id: UUID, reason: str) -> BatchJob:
        """Cancel a PENDING or RUNNING job.

        Raises:
            BatchJobNotFoundError: job_id does not exist.
            ValueError: the job has already finished.
        """
        job_model = self._lock_job(job_id)
        if BatchJobStatus(job_model.status) not in (BatchJobStatus.PENDING, BatchJobStatus.RUNNING):
            raise ValueError(f"Cannot cancel job in status {job_model.status}")

        job_model.status = BatchJobStatus.CANCELLED.value
        job_model.completed_at = self._clock.now()
        job_model.error_summary = f"Cancelled: {reason}"
        self._session.flush()

        logger.info("batch_job_cancelled", extra={"job_id": str(job_id), "reason": reason})
        return job_model.to_dto()

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def get_job(self, job_id: UUID) -> BatchJob:
        model = self._session.get(BatchJobModel, job_id)
        if model is None:
            raise BatchJobNotFoundError(str(job_id))
        return model.to_dto()

    def get_job_items(self, job_id: UUID) -> tuple[BatchItemResult, ...]:
        models = self._session.execute(
            select(BatchItemModel)
            .where(BatchItemModel.job_id == job_id)
            .order_by(BatchItemModel.item_index)
        ).scalars()
        return tuple(m.to_dto() for m in models)

    # -------------------------------------------------------------------------
    # Internal helpers
    # -------------------------------------------------------------------------

    def _require_registered(self, task_type: str) -> BatchTask:
        if task_type not in self._task_registry:
            raise TaskNotRegisteredError(task_type, self._task_registry.list_tasks())
        return self._task_registry.get(task_type)

    def _lock_job(self, job_id: UUID) -> BatchJobModel:
        job_model = self._session.execute(
            select(BatchJobModel).where(BatchJobModel.id == job_id).with_for_update()
        ).scalar_one_or_none()
        if job_model is None:
            raise BatchJobNotFoundError(str(job_id))
        return job_model

    def _save(self, commit: bool) -> None:
        self._session.flush()
        if commit:
            self._session.commit()

    def _other_running(self, job_model: BatchJobModel) -> bool:
        other = self._session.execute(
            select(BatchJobModel.id)
            .where(
                BatchJobModel.task_type == job_model.task_type,
                BatchJobModel.status == BatchJobStatus.RUNNING.value,
                BatchJobModel.id != job_model.id,
            )
            .limit(1)
        ).scalar_one_or_none()
        return other is not None

    def _finish_early(
        self,
        job_model: BatchJobModel,
        status: BatchJobStatus,
        error_summary: str,
        start: float,
    ) -> BatchRunResult:
        """Close the job without processing any items."""
        job_model.status = status.value
        job_model.completed_at = self._clock.now()
        job_model.error_summary = error_summary
        self._session.flush()

        return BatchRunResult(
            job_id=job_model.id,
            status=status,
            total_items=0,
            succeeded=0,
            failed=0,
            skipped=0,
            started_at=job_model.started_at,
            completed_at=job_model.completed_at,
            duration_ms=_elapsed_ms(start),
            correlation_id=job_model.correlation_id,
            error_summary=error_summary,
        )
