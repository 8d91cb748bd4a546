"""
Location enrichment tasks.

Fill in derived location data off the interactive path: coordinates,
census tract, tax district and standardized address.  Every task body is
safe to run more than once for the same location.

Provider failures (ExternalServiceError) fail only the item they occur
on; the executor rolls back that item's SAVEPOINT and moves on.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from billing_config.bridges import ProviderSet
from billing_config.schema import EnrichmentSettings
from billing_kernel.db.immutability import allow_location_edit
from billing_kernel.domain.location_identity import canonicalize_census_tract, clean_text
from billing_kernel.exceptions import ExternalServiceError, LocationNotFoundError
from billing_kernel.logging_config import get_logger
from billing_kernel.models.location import Location, LocationAddressChange
from billing_kernel.providers.base import (
    AddressQuery,
    AddressStandardizer,
    CensusTractProvider,
    GeocodingProvider,
    TaxDistrictProvider,
)
from billing_kernel.services.location_service import LocationReconciler

from billing_batch.tasks.base import BatchItemInput, BatchTaskResult, TaskRegistry, job_id_from

logger = get_logger("batch.location_tasks")

ReconcilerFactory = Callable[[Session], LocationReconciler]


def _load(session: Session, item: BatchItemInput) -> Location:
    location_id = item.payload["location_id"]
    location = session.get(Location, UUID(location_id))
    if location is None:
        raise LocationNotFoundError(location_id)
    return location


def _provider_failed(location: Location, exc: ExternalServiceError) -> BatchTaskResult:
    logger.warning(
        "location_enrichment_provider_failed",
        extra={"location_id": str(location.id), "provider": exc.provider, "error": exc.detail},
    )
    return BatchTaskResult.failed(exc.code, str(exc))


class _SingleLocationTask:
    """One item: the location named by the ``location_id`` parameter."""

    progress_noun = "locations"

    def prepare_items(
        self,
        parameters: dict[str, Any],
        session: Session,
        as_of: datetime,
    ) -> tuple[BatchItemInput, ...]:
        location_id = parameters["location_id"]
        return (
            BatchItemInput(
                item_index=0,
                item_key=str(location_id),
                payload={"location_id": str(location_id)},
            ),
        )


class CensusTractUpdateTask(_SingleLocationTask):
    """Look up and store the census tract of one location."""

    def __init__(self, census: CensusTractProvider, reconciler_factory: ReconcilerFactory):
        self._census = census
        self._reconcilers = reconciler_factory

    @property
    def task_type(self) -> str:
        return "location.censustract_update"

    @property
    def description(self) -> str:
        return "Census tract lookup for one location"

    def execute_item(
        self,
        item: BatchItemInput,
        parameters: dict[str, Any],
        session: Session,
        as_of: datetime,
    ) -> BatchTaskResult:
        location = _load(session, item)

        reconciler = self._reconcilers(session)
        year = reconciler.policy.census_year
        try:
            tract = self._census.census_tract(AddressQuery.from_location(location), year)
        except ExternalServiceError as exc:
            return _provider_failed(location, exc)
        if not tract:
            return BatchTaskResult.failed("CENSUS_TRACT_NOT_FOUND", "No census tract found")

        tract = canonicalize_census_tract(tract)
        reconciler.replace(location, {"census_tract": tract, "census_year": year})
        return BatchTaskResult.succeeded(census_tract=tract, census_year=year)


class DistrictUpdateTask(_SingleLocationTask):
    """Look up and store the sales tax district of one location."""

    def __init__(self, districts: TaxDistrictProvider, reconciler_factory: ReconcilerFactory):
        self._districts = districts
        self._reconcilers = reconciler_factory

    @property
    def task_type(self) -> str:
        return "location.district_update"

    @property
    def description(self) -> str:
        return "Tax district lookup for one location"

    def execute_item(
        self,
        item: BatchItemInput,
        parameters: dict[str, Any],
        session: Session,
        as_of: datetime,
    ) -> BatchTaskResult:
        location = _load(session, item)
        try:
            district = self._districts.district(AddressQuery.from_location(location))
        except ExternalServiceError as exc:
            return _provider_failed(location, exc)
        if not district:
            return BatchTaskResult.failed("TAX_DISTRICT_NOT_FOUND", "No tax district found")

        self._reconcilers(session).replace(location, {"tax_district": district})
        return BatchTaskResult.succeeded(tax_district=district)


class SetCoordTask:
    """
    Fill in coordinates for every enabled location that lacks them.

    Runs alone, commits after each location so an interrupted run resumes
    where it stopped, and pauses between lookups to stay inside the
    geocoder's daily quota.
    """

    exclusive = True
    checkpoint = True
    progress_noun = "locations"

    def __init__(
        self,
        geocoder: GeocodingProvider,
        reconciler_factory: ReconcilerFactory,
        delay_seconds: float = 35.0,
    ):
        self._geocoder = geocoder
        self._reconcilers = reconciler_factory
        self.rate_limit_seconds = delay_seconds

    @property
    def task_type(self) -> str:
        return "location.set_coord"

    @property
    def description(self) -> str:
        return "Coordinate backfill for locations without latitude/longitude"

    def prepare_items(
        self,
        parameters: dict[str, Any],
        session: Session,
        as_of: datetime,
    ) -> tuple[BatchItemInput, ...]:
        locations = session.scalars(
            select(Location)
            .where(
                Location.disabled.is_(False),
                Location.latitude.is_(None),
                Location.longitude.is_(None),
            )
            .order_by(Location.created_at, Location.id)
        ).all()
        return tuple(
            BatchItemInput(
                item_index=i,
                item_key=str(location.id),
                payload={"location_id": str(location.id)},
            )
            for i, location in enumerate(locations)
        )

    def execute_item(
        self,
        item: BatchItemInput,
        parameters: dict[str, Any],
        session: Session,
        as_of: datetime,
    ) -> BatchTaskResult:
        location = _load(session, item)
        if location.latitude is not None and location.longitude is not None:
            return BatchTaskResult.skipped("coordinates already set")

        try:
            coords = self._geocoder.lookup_coordinates(AddressQuery.from_location(location))
        except ExternalServiceError as exc:
            return _provider_failed(location, exc)

        self._reconcilers(session).replace(
            location,
            {"latitude": coords.latitude, "longitude": coords.longitude, "coord_auto": True},
        )
        return BatchTaskResult.succeeded(
            latitude=str(coords.latitude), longitude=str(coords.longitude),
        )


class StandardizeTask:
    """
    Standardize the addresses of enabled locations not yet marked clean.

    Each rewritten field is recorded in ``location_address_changes`` with
    its before and after values.  The update bypasses validation and the
    immutable-address rule: the standardizer's output is authoritative.
    """

    exclusive = True
    checkpoint = True
    progress_noun = "locations"

    def __init__(self, standardizer: AddressStandardizer):
        self._standardizer = standardizer

    @property
    def task_type(self) -> str:
        return "location.standardize"

    @property
    def description(self) -> str:
        return "Address standardization for unclean locations"

    def prepare_items(
        self,
        parameters: dict[str, Any],
        session: Session,
        as_of: datetime,
    ) -> tuple[BatchItemInput, ...]:
        query = select(Location).where(
            Location.addr_clean.is_(False),
            Location.disabled.is_(False),
        )
        location_ids = parameters.get("location_ids")
        if location_ids:
            query = query.where(Location.id.in_([UUID(str(i)) for i in location_ids]))
        locations = session.scalars(query.order_by(Location.created_at, Location.id)).all()
        return tuple(
            BatchItemInput(
                item_index=i,
                item_key=str(location.id),
                payload={"location_id": str(location.id)},
            )
            for i, location in enumerate(locations)
        )

    def execute_item(
        self,
        item: BatchItemInput,
        parameters: dict[str, Any],
        session: Session,
        as_of: datetime,
    ) -> BatchTaskResult:
        location = _load(session, item)
        if location.addr_clean or location.disabled:
            return BatchTaskResult.skipped("already clean or disabled")

        try:
            result = self._standardizer.standardize(AddressQuery.from_location(location))
        except ExternalServiceError as exc:
            return _provider_failed(location, exc)
        if not result.addr_clean:
            return BatchTaskResult.skipped("address not standardized")

        proposed: dict[str, Any] = dict(result.address_fields())
        for field in ("latitude", "longitude"):
            if getattr(result, field) is not None:
                proposed[field] = getattr(result, field)
        if result.census_tract:
            proposed["census_tract"] = canonicalize_census_tract(result.census_tract)
        proposed["addr_clean"] = True

        changes = {
            field: value
            for field, value in proposed.items()
            if clean_text(getattr(location, field)) != clean_text(value)
        }

        job_id = job_id_from(parameters)
        with allow_location_edit(session):
            for field, value in changes.items():
                if field != "addr_clean":
                    session.add(
                        LocationAddressChange(
                            location_id=location.id,
                            job_id=job_id,
                            field=field,
                            old_value=_text(getattr(location, field)),
                            new_value=_text(value),
                            changed_at=as_of,
                        )
                    )
                setattr(location, field, value)
            session.flush()

        logger.info(
            "location_standardized",
            extra={"location_id": str(location.id), "fields": sorted(changes)},
        )
        return BatchTaskResult.succeeded(fields=sorted(changes))


def _text(value: Any) -> str | None:
    return None if value is None else str(value)


def build_location_tasks(
    reconciler_factory: ReconcilerFactory,
    providers: ProviderSet,
    enrichment: EnrichmentSettings | None = None,
) -> list:
    """The location tasks whose providers are configured."""
    enrichment = enrichment or EnrichmentSettings()
    tasks: list = []
    if providers.census is not None:
        tasks.append(CensusTractUpdateTask(providers.census, reconciler_factory))
    if providers.tax_district is not None:
        tasks.append(DistrictUpdateTask(providers.tax_district, reconciler_factory))
    if providers.geocoder is not None:
        tasks.append(
            SetCoordTask(
                providers.geocoder,
                reconciler_factory,
                delay_seconds=enrichment.set_coord_delay_seconds,
            )
        )
    if providers.standardizer is not None:
        tasks.append(StandardizeTask(providers.standardizer))
    return tasks


def register_location_tasks(
    registry: TaskRegistry,
    reconciler_factory: ReconcilerFactory,
    providers: ProviderSet,
    enrichment: EnrichmentSettings | None = None,
) -> TaskRegistry:
    for task in build_location_tasks(reconciler_factory, providers, enrichment):
        registry.register(task)
    return registry
