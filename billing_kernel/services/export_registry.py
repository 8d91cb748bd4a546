"""
Location exporters -- external systems notified when a location is saved.

Responsibility:
    ``LocationExporter`` is the plug-in interface; ``ExporterRegistry``
    maps exporter names (as listed in the ``cust_location-exports``
    configuration) to implementations and runs them in order.

Failure modes:
    - Any exception from an exporter is wrapped in LocationExportError
      ("exporting to <name> failed: <detail>").  Exporters run inside the
      caller's SAVEPOINT, so the wrapped error rolls the save back.
    - A configured name with no registered exporter is an export failure
      of that name.
"""

from typing import Protocol, runtime_checkable

from billing_kernel.exceptions import LocationExportError
from billing_kernel.logging_config import get_logger

logger = get_logger("services.export_registry")


@runtime_checkable
class LocationExporter(Protocol):
    """Receives every insert and replace of an owned location."""

    def export_insert(self, location) -> None:
        ...

    def export_replace(self, new, old) -> None:
        ...


class ExporterRegistry:
    """Named exporters, looked up by the configured export list."""

    def __init__(self):
        self._exporters: dict[str, LocationExporter] = {}

    def register(self, name: str, exporter: LocationExporter) -> None:
        if not isinstance(exporter, LocationExporter):
            raise TypeError(f"{type(exporter).__name__} is not a LocationExporter")
        self._exporters[name] = exporter
        logger.info("location_exporter_registered", extra={"exporter": name})

    def get(self, name: str) -> LocationExporter | None:
        return self._exporters.get(name)

    def names(self) -> tuple[str, ...]:
        return tuple(self._exporters)

    def export_insert(self, names, location) -> None:
        for name in names:
            self._run(name, "export_insert", location)

    def export_replace(self, names, new, old) -> None:
        for name in names:
            self._run(name, "export_replace", new, old)

    def _run(self, name: str, method: str, *args) -> None:
        exporter = self._exporters.get(name)
        if exporter is None:
            raise LocationExportError(name, "no such exporter")
        try:
            getattr(exporter, method)(*args)
        except Exception as exc:
            logger.error(
                "location_export_failed",
                extra={"exporter": name, "operation": method, "error": str(exc)},
            )
            raise LocationExportError(name, str(exc)) from exc
