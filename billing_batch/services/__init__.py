"""
billing_batch.services -- Job execution and queueing.
"""

from billing_batch.services.executor import BatchExecutor
from billing_batch.services.queue import JobQueue

__all__ = [
    "BatchExecutor",
    "JobQueue",
]
