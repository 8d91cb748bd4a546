"""
Tests for billing_kernel.exceptions.

Validates the exception hierarchy, error codes and message formatting.
"""

import pytest

from billing_kernel.exceptions import (
    BatchAlreadyRunningError,
    BatchError,
    BatchIdempotencyError,
    BatchJobNotFoundError,
    BillingKernelError,
    CensusLookupError,
    ConfigError,
    ConfigKeyUnknownError,
    ConfigStoreError,
    ConfigValueError,
    ExternalServiceError,
    GeocodingError,
    ImmutabilityViolationError,
    LocationError,
    LocationExportError,
    LocationImmutableError,
    LocationMoveError,
    LocationNotFoundError,
    LocationValidationError,
    PackageMoveConflictError,
    StandardizationError,
    TaskNotRegisteredError,
    TaxDistrictLookupError,
)


# =============================================================================
# Exception hierarchy tests
# =============================================================================


class TestHierarchy:
    @pytest.mark.parametrize(
        "child, parent",
        [
            (ConfigError, BillingKernelError),
            (ConfigStoreError, ConfigError),
            (ConfigValueError, ConfigError),
            (ConfigKeyUnknownError, ConfigError),
            (LocationError, BillingKernelError),
            (LocationValidationError, LocationError),
            (LocationMoveError, LocationError),
            (PackageMoveConflictError, LocationError),
            (LocationExportError, LocationError),
            (LocationImmutableError, ImmutabilityViolationError),
            (GeocodingError, ExternalServiceError),
            (StandardizationError, ExternalServiceError),
            (CensusLookupError, ExternalServiceError),
            (TaxDistrictLookupError, ExternalServiceError),
            (BatchError, BillingKernelError),
            (BatchJobNotFoundError, BatchError),
            (BatchAlreadyRunningError, BatchError),
            (BatchIdempotencyError, BatchError),
            (TaskNotRegisteredError, BatchError),
        ],
    )
    def test_inherits(self, child, parent):
        assert issubclass(child, parent)

    @pytest.mark.parametrize(
        "exc_type, code",
        [
            (BillingKernelError, "BILLING_KERNEL_ERROR"),
            (ConfigStoreError, "CONFIG_STORE_ERROR"),
            (ConfigValueError, "CONFIG_VALUE_INVALID"),
            (ConfigKeyUnknownError, "CONFIG_KEY_UNKNOWN"),
            (LocationNotFoundError, "LOCATION_NOT_FOUND"),
            (LocationValidationError, "LOCATION_INVALID"),
            (LocationMoveError, "LOCATION_MOVE_FAILED"),
            (PackageMoveConflictError, "PACKAGE_MOVE_CONFLICT"),
            (LocationExportError, "LOCATION_EXPORT_FAILED"),
            (LocationImmutableError, "LOCATION_IMMUTABLE"),
            (GeocodingError, "GEOCODING_FAILED"),
            (StandardizationError, "STANDARDIZATION_FAILED"),
            (CensusLookupError, "CENSUS_LOOKUP_FAILED"),
            (TaxDistrictLookupError, "TAX_DISTRICT_LOOKUP_FAILED"),
            (BatchError, "BATCH_ERROR"),
            (BatchJobNotFoundError, "BATCH_JOB_NOT_FOUND"),
            (BatchIdempotencyError, "BATCH_IDEMPOTENCY_CONFLICT"),
            (BatchAlreadyRunningError, "BATCH_ALREADY_RUNNING"),
            (TaskNotRegisteredError, "TASK_NOT_REGISTERED"),
        ],
    )
    def test_codes(self, exc_type, code):
        assert exc_type.code == code


# =============================================================================
# Exception construction tests
# =============================================================================


class TestConfigErrors:
    def test_store_error(self):
        exc = ConfigStoreError("currency", "reading", "database is locked")
        assert exc.name == "currency"
        assert str(exc) == "error reading configuration value currency: database is locked"

    def test_value_error(self):
        exc = ConfigValueError("countrydefault", "must be an ISO 3166 country code")
        assert exc.reason == "must be an ISO 3166 country code"
        assert "countrydefault" in str(exc)

    def test_unknown_key(self):
        assert "no-such-key" in str(ConfigKeyUnknownError("no-such-key"))


class TestLocationErrors:
    def test_validation_error_message_is_the_reason(self):
        exc = LocationValidationError("zip", "Illegal zip: 6270")
        assert exc.field == "zip"
        assert str(exc) == "Illegal zip: 6270"

    def test_move_error(self):
        exc = LocationMoveError("Error creating location", "Illegal zip")
        assert exc.step == "Error creating location"
        assert str(exc) == "Error creating location: Illegal zip"

    def test_package_conflict(self):
        exc = PackageMoveConflictError("42", "has already been charged")
        assert str(exc) == (
            "Cannot update package location: package 42 has already been charged"
        )

    def test_export_error(self):
        exc = LocationExportError("crm", "connection refused")
        assert exc.exporter == "crm"
        assert str(exc) == "exporting to crm failed: connection refused"

    def test_immutable_error(self):
        exc = LocationImmutableError("7", "address1")
        assert exc.field == "address1"
        assert exc.entity_type == "Location"
        assert exc.entity_id == "7"
        assert "can't change location field address1" in str(exc)


class TestExternalServiceErrors:
    def test_provider_and_detail(self):
        exc = GeocodingError("google", "ZERO_RESULTS")
        assert exc.provider == "google"
        assert exc.detail == "ZERO_RESULTS"
        assert str(exc) == "google: ZERO_RESULTS"


class TestBatchErrors:
    def test_job_not_found(self):
        exc = BatchJobNotFoundError("job-123")
        assert exc.job_id == "job-123"
        assert "job-123" in str(exc)

    def test_already_running(self):
        exc = BatchAlreadyRunningError("census run", "job-123")
        assert exc.job_name == "census run"
        assert "census run" in str(exc)

    def test_idempotency(self):
        exc = BatchIdempotencyError("key-1", "job-123")
        assert exc.idempotency_key == "key-1"
        assert exc.existing_job_id == "job-123"
        assert "key-1" in str(exc)

    def test_task_not_registered(self):
        exc = TaskNotRegisteredError("x.y", ("location.census_update",))
        assert exc.task_type == "x.y"
        assert "location.census_update" in str(exc)
