"""Services for the billing kernel (write side)."""

from billing_kernel.services.export_registry import ExporterRegistry, LocationExporter
from billing_kernel.services.location_service import LocationReconciler
from billing_kernel.services.location_validator import LocationValidator

__all__ = [
    "ExporterRegistry",
    "LocationExporter",
    "LocationReconciler",
    "LocationValidator",
]
