"""
billing_batch.tasks -- Task protocol, registry, and location task implementations.
"""

from billing_batch.tasks.base import (
    BatchItemInput,
    BatchTask,
    BatchTaskResult,
    TaskRegistry,
    task_options,
)
from billing_batch.tasks.location_tasks import (
    CensusTractUpdateTask,
    DistrictUpdateTask,
    SetCoordTask,
    StandardizeTask,
    build_location_tasks,
    register_location_tasks,
)

__all__ = [
    "BatchItemInput",
    "BatchTask",
    "BatchTaskResult",
    "CensusTractUpdateTask",
    "DistrictUpdateTask",
    "SetCoordTask",
    "StandardizeTask",
    "TaskRegistry",
    "build_location_tasks",
    "register_location_tasks",
    "task_options",
]
