"""
Job and item tables.

A PENDING ``batch_jobs`` row doubles as a queue entry (see
``billing_batch.services.queue``); ``idempotency_key`` is UNIQUE.
"""

from __future__ import annotations

from dataclasses import fields
from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import JSON, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from billing_kernel.db.base import TrackedBase, UUIDString

if TYPE_CHECKING:
    from billing_batch.domain.types import BatchItemResult, BatchJob


class BatchJobModel(TrackedBase):
    __tablename__ = "batch_jobs"
    __table_args__ = (
        Index("ix_batch_jobs_task_type_status", "task_type", "status"),
        Index("ix_batch_jobs_status_created", "status", "created_at"),
    )

    job_name: Mapped[str] = mapped_column(String(200), nullable=False)
    task_type: Mapped[str] = mapped_column(String(200), nullable=False)
    status: Mapped[str] = mapped_column(String(50), nullable=False)
    idempotency_key: Mapped[str] = mapped_column(String(200), nullable=False, unique=True)
    parameters: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    total_items: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    succeeded_items: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    failed_items: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    skipped_items: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    progress_text: Mapped[str | None] = mapped_column(String(255), nullable=True)
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    correlation_id: Mapped[str | None] = mapped_column(String(200), nullable=True)
    error_summary: Mapped[str | None] = mapped_column(Text, nullable=True)

    items: Mapped[list["BatchItemModel"]] = relationship(
        "BatchItemModel",
        back_populates="job",
        foreign_keys="BatchItemModel.job_id",
    )

    def to_dto(self) -> BatchJob:
        from billing_batch.domain.types import BatchJob, BatchJobStatus

        values = {f.name: getattr(self, f.name) for f in fields(BatchJob) if f.name not in ("job_id", "status")}
        values["parameters"] = self.parameters or {}
        return BatchJob(job_id=self.id, status=BatchJobStatus(self.status), **values)

    @classmethod
    def from_dto(cls, dto: BatchJob) -> BatchJobModel:
        values = {f.name: getattr(dto, f.name) for f in fields(dto) if f.name not in ("job_id", "status")}
        values["parameters"] = dto.parameters or None
        if dto.created_at is None:
            # fall back to the server default
            del values["created_at"]
        return cls(id=dto.job_id, status=dto.status.value, **values)


class BatchItemModel(TrackedBase):
    __tablename__ = "batch_items"
    __table_args__ = (
        Index("ix_batch_items_job_status", "job_id", "status"),
        Index("ix_batch_items_item_key", "item_key"),
    )

    job_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("batch_jobs.id", ondelete="CASCADE"),
        nullable=False,
    )
    item_index: Mapped[int] = mapped_column(Integer, nullable=False)
    item_key: Mapped[str] = mapped_column(String(200), nullable=False)
    status: Mapped[str] = mapped_column(String(50), nullable=False)
    error_code: Mapped[str | None] = mapped_column(String(100), nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    result_data: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    duration_ms: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    job: Mapped["BatchJobModel"] = relationship(
        "BatchJobModel",
        back_populates="items",
        foreign_keys=[job_id],
    )

    def to_dto(self) -> BatchItemResult:
        from billing_batch.domain.types import BatchItemResult, BatchItemStatus

        values = {f.name: getattr(self, f.name) for f in fields(BatchItemResult) if f.name != "status"}
        return BatchItemResult(status=BatchItemStatus(self.status), **values)

    @classmethod
    def from_dto(cls, dto: BatchItemResult, job_id: UUID) -> BatchItemModel:
        values = {f.name: getattr(dto, f.name) for f in fields(dto) if f.name != "status"}
        return cls(job_id=job_id, status=dto.status.value, **values)
