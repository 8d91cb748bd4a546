"""
JobQueue -- persistent queue of background jobs.

A queued job is a PENDING ``batch_jobs`` row; ``run_pending`` drains them
oldest first through the BatchExecutor.  Delivery is at-least-once: a job
whose run is interrupted stays visible as RUNNING and must be re-enqueued
by an operator, and every location task is safe to repeat.
"""

from __future__ import annotations

from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.orm import Session

from billing_kernel.logging_config import get_logger

from billing_batch.domain.types import BatchJob, BatchJobStatus, BatchRunResult
from billing_batch.models.batch import BatchJobModel
from billing_batch.services.executor import BatchExecutor

logger = get_logger("batch.queue")


class JobQueue:
    """Enqueue jobs by task type and run what is pending."""

    def __init__(self, session: Session, executor: BatchExecutor):
        self._session = session
        self._executor = executor

    def enqueue(
        self,
        task_type: str,
        parameters: dict[str, Any] | None = None,
        idempotency_key: str | None = None,
        job_name: str | None = None,
    ) -> BatchJob:
        """Queue one run of ``task_type``.

        Without an ``idempotency_key`` every call queues a new job.
        """
        return self._executor.submit_job(
            job_name=job_name or task_type,
            task_type=task_type,
            idempotency_key=idempotency_key or f"{task_type}:{uuid4().hex}",
            parameters=parameters,
        )

    def pending(self, task_type: str | None = None) -> list[BatchJob]:
        query = select(BatchJobModel).where(
            BatchJobModel.status == BatchJobStatus.PENDING.value,
        )
        if task_type is not None:
            query = query.where(BatchJobModel.task_type == task_type)
        query = query.order_by(BatchJobModel.created_at, BatchJobModel.id)
        return [m.to_dto() for m in self._session.scalars(query)]

    def run_pending(self, limit: int | None = None) -> list[BatchRunResult]:
        """Execute PENDING jobs, oldest first; at most ``limit`` of them."""
        job_ids: list[UUID] = [job.job_id for job in self.pending()]
        if limit is not None:
            job_ids = job_ids[:limit]

        results = [self._executor.execute_job(job_id) for job_id in job_ids]
        logger.info("batch_queue_drained", extra={"jobs_run": len(results)})
        return results

    def district_enqueuer(self):
        """A ``district_enqueuer`` callable for LocationReconciler."""

        def enqueue(location_id: UUID) -> None:
            self.enqueue(
                "location.district_update",
                {"location_id": str(location_id)},
            )

        return enqueue
