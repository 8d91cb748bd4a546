"""
Typed Exception Hierarchy for the Billing Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers must be able to tell a bad address apart from a broken database
without parsing message strings.  Every error therefore has:

  1. A TYPED exception class (catch by type, not message)
  2. A CODE class attribute (machine-readable, API-safe)
  3. Structured DATA stored as attributes (not just a message string)

Example:
    try:
        reconciler.find_or_insert(proposed)
    except LocationValidationError as e:
        reprompt(field=e.field, reason=e.reason)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    BillingKernelError (base)
    |
    +-- ConfigError
    |   +-- ConfigStoreError
    |   +-- ConfigValueError
    |   +-- ConfigKeyUnknownError
    |
    +-- LocationError
    |   +-- LocationNotFoundError
    |   +-- LocationValidationError
    |   +-- LocationMoveError
    |   +-- PackageMoveConflictError
    |   +-- LocationExportError
    |
    +-- ImmutabilityError
    |   +-- ImmutabilityViolationError
    |       +-- LocationImmutableError
    |
    +-- ExternalServiceError
    |   +-- GeocodingError
    |   +-- StandardizationError
    |   +-- CensusLookupError
    |   +-- TaxDistrictLookupError
    |
    +-- BatchError
        +-- BatchJobNotFoundError
        +-- BatchIdempotencyError
        +-- BatchAlreadyRunningError
        +-- TaskNotRegisteredError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Config          | CONFIG_STORE_ERROR          | set/delete could not be persisted
                | CONFIG_VALUE_INVALID        | Value rejected by the item's rules
                | CONFIG_KEY_UNKNOWN          | Key not present in the catalog
----------------|-----------------------------|-----------------------------------------
Location        | LOCATION_NOT_FOUND          | Location ID doesn't exist
                | LOCATION_INVALID            | Field failed validation
                | LOCATION_MOVE_FAILED        | A step of move_to failed
                | PACKAGE_MOVE_CONFLICT       | Override package list ineligible
                | LOCATION_EXPORT_FAILED      | A configured exporter failed
----------------|-----------------------------|-----------------------------------------
Immutability    | IMMUTABILITY_VIOLATION      | Protected record modified at flush
                | LOCATION_IMMUTABLE          | Physical address of in-use location
----------------|-----------------------------|-----------------------------------------
External        | GEOCODING_FAILED            | Coordinate lookup failed
                | STANDARDIZATION_FAILED      | Address standardization failed
                | CENSUS_LOOKUP_FAILED        | Census tract lookup failed
                | TAX_DISTRICT_LOOKUP_FAILED  | Tax district lookup failed
----------------|-----------------------------|-----------------------------------------
Batch           | BATCH_JOB_NOT_FOUND         | Job ID doesn't exist
                | BATCH_IDEMPOTENCY_CONFLICT  | Idempotency key already used
                | BATCH_ALREADY_RUNNING       | Job is not PENDING
                | TASK_NOT_REGISTERED         | Unknown task_type

===============================================================================
HANDLING PATTERNS
===============================================================================

1. Configuration mutation failures are LOUD.  ConfigStoreError means
   nothing was written; callers abort rather than continue with a
   configuration they believe was saved.

2. Location validation failures are SOFT.  They are raised before any
   row is touched, so the caller can re-prompt and retry.

3. External service failures inside background jobs are isolated per
   item by the batch executor and never abort sibling items.
"""


class BillingKernelError(Exception):
    """
    Base exception for all billing kernel errors.

    All subclasses must have a `code` class attribute for
    machine-readable error identification.
    """

    code: str = "BILLING_KERNEL_ERROR"


# Configuration exceptions


class ConfigError(BillingKernelError):
    """Base exception for configuration errors."""

    code: str = "CONFIG_ERROR"


class ConfigStoreError(ConfigError):
    """The configuration store could not be read or changed."""

    code: str = "CONFIG_STORE_ERROR"

    def __init__(self, name: str, operation: str, detail: str):
        self.name = name
        self.operation = operation
        self.detail = detail
        super().__init__(
            f"error {operation} configuration value {name}: {detail}"
        )


class ConfigValueError(ConfigError):
    """A value was rejected by the validation rules of its config item."""

    code: str = "CONFIG_VALUE_INVALID"

    def __init__(self, name: str, reason: str):
        self.name = name
        self.reason = reason
        super().__init__(f"Invalid value for {name}: {reason}")


class ConfigKeyUnknownError(ConfigError):
    """The key is not declared in the config-item catalog."""

    code: str = "CONFIG_KEY_UNKNOWN"

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Unknown configuration key: {name}")


# Location exceptions


class LocationError(BillingKernelError):
    """Base exception for location errors."""

    code: str = "LOCATION_ERROR"


class LocationNotFoundError(LocationError):
    """Location with given ID was not found."""

    code: str = "LOCATION_NOT_FOUND"

    def __init__(self, location_id: str):
        self.location_id = location_id
        super().__init__(f"Location not found: {location_id}")


class LocationValidationError(LocationError):
    """A proposed location failed validation."""

    code: str = "LOCATION_INVALID"

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(reason)


class LocationMoveError(LocationError):
    """A step of a location move failed; the whole move was rolled back."""

    code: str = "LOCATION_MOVE_FAILED"

    def __init__(self, step: str, detail: str):
        self.step = step
        self.detail = detail
        super().__init__(f"{step}: {detail}")


class PackageMoveConflictError(LocationError):
    """A package supplied to a move is not eligible to be moved."""

    code: str = "PACKAGE_MOVE_CONFLICT"

    def __init__(self, package_id: str, reason: str):
        self.package_id = package_id
        self.reason = reason
        super().__init__(
            f"Cannot update package location: package {package_id} {reason}"
        )


class LocationExportError(LocationError):
    """A configured location exporter failed; the operation was rolled back."""

    code: str = "LOCATION_EXPORT_FAILED"

    def __init__(self, exporter: str, detail: str):
        self.exporter = exporter
        self.detail = detail
        super().__init__(f"exporting to {exporter} failed: {detail}")


# Immutability exceptions


class ImmutabilityError(BillingKernelError):
    """Base exception for immutability violations."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """Attempted to modify a protected field of a record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )


class LocationImmutableError(ImmutabilityViolationError):
    """
    Attempted to change a physical-address field of a customer location.

    Past invoices and tax records reference the address as it was, so a
    customer location is moved (see LocationReconciler.move_to), never
    edited in place.
    """

    code: str = "LOCATION_IMMUTABLE"

    def __init__(self, location_id: str, field: str):
        self.field = field
        super().__init__(
            "Location",
            location_id,
            f"can't change location field {field}",
        )


# External service exceptions


class ExternalServiceError(BillingKernelError):
    """Base exception for failures of external providers."""

    code: str = "EXTERNAL_SERVICE_ERROR"

    def __init__(self, provider: str, detail: str):
        self.provider = provider
        self.detail = detail
        super().__init__(f"{provider}: {detail}")


class GeocodingError(ExternalServiceError):
    """Coordinate lookup failed."""

    code: str = "GEOCODING_FAILED"


class StandardizationError(ExternalServiceError):
    """Address standardization failed."""

    code: str = "STANDARDIZATION_FAILED"


class CensusLookupError(ExternalServiceError):
    """Census tract lookup failed."""

    code: str = "CENSUS_LOOKUP_FAILED"


class TaxDistrictLookupError(ExternalServiceError):
    """Tax district lookup failed."""

    code: str = "TAX_DISTRICT_LOOKUP_FAILED"


# Batch exceptions


class BatchError(BillingKernelError):
    """Base exception for background job errors."""

    code: str = "BATCH_ERROR"


class BatchJobNotFoundError(BatchError):
    """Batch job with given ID was not found."""

    code: str = "BATCH_JOB_NOT_FOUND"

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Batch job not found: {job_id}")


class BatchIdempotencyError(BatchError):
    """A job with the same idempotency key already exists."""

    code: str = "BATCH_IDEMPOTENCY_CONFLICT"

    def __init__(self, idempotency_key: str, existing_job_id: str):
        self.idempotency_key = idempotency_key
        self.existing_job_id = existing_job_id
        super().__init__(
            f"Idempotency key {idempotency_key} already used by job "
            f"{existing_job_id}"
        )


class BatchAlreadyRunningError(BatchError):
    """The job is not in a state that allows execution."""

    code: str = "BATCH_ALREADY_RUNNING"

    def __init__(self, job_name: str, job_id: str):
        self.job_name = job_name
        self.job_id = job_id
        super().__init__(f"Batch job {job_name} ({job_id}) is not pending")


class TaskNotRegisteredError(BatchError):
    """No task is registered for the requested task_type."""

    code: str = "TASK_NOT_REGISTERED"

    def __init__(self, task_type: str, available: tuple[str, ...]):
        self.task_type = task_type
        self.available = available
        super().__init__(
            f"No task registered for type '{task_type}'. "
            f"Available: {list(available)}"
        )
