"""
billing_batch.domain -- Pure types for background jobs.

ZERO I/O.  All types are frozen dataclasses.
"""

from billing_batch.domain.types import (
    BatchItemResult,
    BatchItemStatus,
    BatchJob,
    BatchJobStatus,
    BatchRunResult,
)

__all__ = [
    "BatchItemResult",
    "BatchItemStatus",
    "BatchJob",
    "BatchJobStatus",
    "BatchRunResult",
]
