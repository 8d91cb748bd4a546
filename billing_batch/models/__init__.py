"""
billing_batch.models -- ORM models for job persistence.

Imports from billing_kernel.db.base only.
"""

from billing_batch.models.batch import BatchItemModel, BatchJobModel

__all__ = [
    "BatchItemModel",
    "BatchJobModel",
]
