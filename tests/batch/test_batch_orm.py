"""
Tests for billing_batch.models.

Validates ORM model construction, to_dto()/from_dto() round-trips,
persistence through a session, and the UNIQUE idempotency key.
"""

from datetime import datetime, timezone
from uuid import uuid4

import pytest
from sqlalchemy.exc import IntegrityError

from billing_batch.domain.types import (
    BatchItemResult,
    BatchItemStatus,
    BatchJob,
    BatchJobStatus,
)
from billing_batch.models.batch import BatchItemModel, BatchJobModel


def _make_job_dto(**overrides):
    defaults = dict(
        job_id=uuid4(),
        job_name="test_job",
        task_type="location.census_update",
        status=BatchJobStatus.PENDING,
        idempotency_key="test-key-001",
    )
    defaults.update(overrides)
    return BatchJob(**defaults)


# =============================================================================
# BatchJobModel tests
# =============================================================================


class TestBatchJobModel:
    def test_from_dto(self):
        dto = _make_job_dto()
        model = BatchJobModel.from_dto(dto)

        assert model.id == dto.job_id
        assert model.job_name == "test_job"
        assert model.task_type == "location.census_update"
        assert model.status == "pending"
        assert model.idempotency_key == "test-key-001"
        assert model.total_items == 0

    def test_from_dto_with_parameters(self):
        params = {"location_id": "8e1c"}
        model = BatchJobModel.from_dto(_make_job_dto(parameters=params))

        assert model.parameters == params

    def test_from_dto_empty_parameters_stored_as_none(self):
        model = BatchJobModel.from_dto(_make_job_dto(parameters={}))

        # Empty dict stored as None in JSON column
        assert model.parameters is None

    def test_to_dto_round_trip(self):
        now = datetime(2026, 2, 1, 12, 0, 0, tzinfo=timezone.utc)
        dto = _make_job_dto(
            total_items=100,
            succeeded_items=95,
            failed_items=3,
            skipped_items=2,
            progress_text="updated 100 / 100 locations",
            created_at=now,
            started_at=now,
            completed_at=now,
            correlation_id="corr-001",
            error_summary="3 item(s) failed",
        )
        model = BatchJobModel.from_dto(dto)

        assert model.to_dto() == dto

    def test_persisted_round_trip(self, session):
        dto = _make_job_dto(parameters={"location_id": "8e1c"})
        session.add(BatchJobModel.from_dto(dto))
        session.flush()
        session.expire_all()

        loaded = session.get(BatchJobModel, dto.job_id).to_dto()

        assert loaded.parameters == {"location_id": "8e1c"}
        assert loaded.status == BatchJobStatus.PENDING
        assert loaded.created_at is not None

    def test_created_at_taken_from_dto(self, session):
        # queue order relies on the submitting clock, not the server default
        when = datetime(2025, 6, 30, 8, 15, 0, tzinfo=timezone.utc)
        dto = _make_job_dto(created_at=when)
        session.add(BatchJobModel.from_dto(dto))
        session.flush()
        session.expire_all()

        loaded = session.get(BatchJobModel, dto.job_id)
        assert loaded.created_at.replace(tzinfo=None) == when.replace(tzinfo=None)

    def test_idempotency_key_is_unique(self, session):
        session.add(BatchJobModel.from_dto(_make_job_dto(idempotency_key="same")))
        session.flush()

        session.add(BatchJobModel.from_dto(_make_job_dto(idempotency_key="same")))
        with pytest.raises(IntegrityError):
            session.flush()

    def test_tablename(self):
        assert BatchJobModel.__tablename__ == "batch_jobs"


# =============================================================================
# BatchItemModel tests
# =============================================================================


class TestBatchItemModel:
    def _make_item_dto(self, **overrides):
        defaults = dict(
            item_index=0,
            item_key="loc-001",
            status=BatchItemStatus.SUCCEEDED,
        )
        defaults.update(overrides)
        return BatchItemResult(**defaults)

    def test_from_dto(self):
        job_id = uuid4()
        model = BatchItemModel.from_dto(
            self._make_item_dto(result_data={"censustract": "17167000100"}),
            job_id=job_id,
        )

        assert model.job_id == job_id
        assert model.item_key == "loc-001"
        assert model.status == "succeeded"
        assert model.result_data == {"censustract": "17167000100"}

    def test_from_dto_failure(self):
        model = BatchItemModel.from_dto(
            self._make_item_dto(
                status=BatchItemStatus.FAILED,
                error_code="GEOCODING_FAILED",
                error_message="no match",
            ),
            job_id=uuid4(),
        )

        assert model.status == "failed"
        assert model.error_code == "GEOCODING_FAILED"
        assert model.error_message == "no match"

    def test_to_dto_round_trip(self):
        now = datetime(2026, 2, 1, 12, 0, 0, tzinfo=timezone.utc)
        dto = self._make_item_dto(
            item_index=4,
            duration_ms=250,
            started_at=now,
            completed_at=now,
        )

        assert BatchItemModel.from_dto(dto, job_id=uuid4()).to_dto() == dto

    def test_items_relationship(self, session):
        job = _make_job_dto()
        session.add(BatchJobModel.from_dto(job))
        session.flush()
        session.add(BatchItemModel.from_dto(self._make_item_dto(), job_id=job.job_id))
        session.flush()
        session.expire_all()

        model = session.get(BatchJobModel, job.job_id)
        assert [item.item_key for item in model.items] == ["loc-001"]

    def test_tablename(self):
        assert BatchItemModel.__tablename__ == "batch_items"
