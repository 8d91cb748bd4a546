"""
LocationReconciler -- find-or-insert, replace, move and retire locations.

Responsibility:
    Persists locations after normalization and validation, deduplicates a
    proposed location against existing ones by its essential fields,
    relocates a customer's live packages from one location to another, and
    disables locations nothing references any more.

Architecture position:
    Kernel > Services -- imperative shell over billing_kernel.domain.
    Configuration arrives as a LocationPolicy; background work is handed
    to an injected ``district_enqueuer`` callable, so the kernel never
    imports the batch layer.

Invariants enforced:
    - Essential fields are trimmed before comparison or persistence.
    - The physical-address fields of a customer location change only
      with ``allow_edit=True`` (LocationImmutableError otherwise; the ORM
      listener in db/immutability.py is the backstop).
    - Every multi-step operation runs inside ``session.begin_nested()``:
      any failure rolls back all of its steps and re-raises.
    - Moving packages never changes their billing dates.
    - Locations are never deleted; they are disabled.

Failure modes:
    - LocationValidationError, LocationImmutableError,
      PackageMoveConflictError, LocationMoveError, LocationExportError.
    - SQLAlchemy errors propagate after the savepoint rolls back.

Audit relevance:
    Structured log events: location_inserted, location_replaced,
    location_matched, location_move_completed, location_disabled,
    location_district_update_queued.
"""

from collections.abc import Callable, Iterable
from uuid import UUID

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from billing_kernel.db.immutability import PROTECTED_LOCATION_FIELDS, allow_location_edit
from billing_kernel.domain.country import CountryRegistry
from billing_kernel.domain.location_identity import (
    ALL_FIELDS,
    ESSENTIAL_TEXT_FIELDS,
    clean_text,
    county_state_country,
    descriptive_values,
    essential_values,
    normalize,
)
from billing_kernel.domain.policy import LocationPolicy
from billing_kernel.exceptions import (
    LocationExportError,
    LocationImmutableError,
    LocationMoveError,
    LocationValidationError,
    PackageMoveConflictError,
)
from billing_kernel.logging_config import get_logger
from billing_kernel.models.customer import Agent, Contact, Customer, Prospect
from billing_kernel.models.location import Location
from billing_kernel.models.package import Package, PackageDefinition
from billing_kernel.providers.base import GeocodingProvider
from billing_kernel.services.base import BaseService
from billing_kernel.services.export_registry import ExporterRegistry
from billing_kernel.services.location_validator import LocationValidator

logger = get_logger("services.location")

DistrictEnqueuer = Callable[[UUID], None]
AgentPrefixLookup = Callable[[int | None], str | None]


def snapshot(location) -> Location:
    """A transient, session-free copy of a location's column values."""
    copy = Location(**{field: getattr(location, field) for field in ALL_FIELDS})
    copy.id = location.id
    copy.customer_pending = location.customer_pending
    return copy


class LocationReconciler(BaseService):
    """
    Location lifecycle operations.

    Args:
        session: the caller's session; this service only flushes.
        policy: location configuration snapshot.
        exporters: registry the ``policy.exporters`` names resolve in.
        geocoder: fills in missing coordinates during validation.
        bulk_import: relaxed validation and no background jobs.
        district_enqueuer: called with a location id when a WA location
            needs its tax district looked up.
        agent_prefix: agent_num -> customer display prefix, for CoStAg
            labels.
    """

    def __init__(
        self,
        session: Session,
        policy: LocationPolicy | None = None,
        exporters: ExporterRegistry | None = None,
        geocoder: GeocodingProvider | None = None,
        bulk_import: bool = False,
        district_enqueuer: DistrictEnqueuer | None = None,
        agent_prefix: AgentPrefixLookup | None = None,
    ):
        super().__init__(session)
        self.policy = policy or LocationPolicy()
        self.exporters = exporters or ExporterRegistry()
        self.bulk_import = bulk_import
        self.district_enqueuer = district_enqueuer
        self.agent_prefix = agent_prefix
        self.validator = LocationValidator(session, self.policy, geocoder, bulk_import)

    # ------------------------------------------------------------------
    # insert / replace
    # ------------------------------------------------------------------

    def insert(self, location: Location) -> Location:
        """
        Validate and persist a new location.

        Stamps the census year when a tract is present, queues a tax
        district lookup for WA locations without one, and runs the
        configured exporters for owned locations.
        """
        self._drop_city(location, "insert")
        if location.census_tract:
            location.census_year = self.policy.census_year

        with self.session.begin_nested():
            self.validator.validate(location)
            self.session.add(location)
            self.session.flush()

            if self._needs_district(location):
                self._enqueue_district_update(location)

            # pending-customer locations are exported by the follow-up replace
            if location.customer_id or location.prospect_id:
                self.exporters.export_insert(self.policy.exporters, location)

        logger.info(
            "location_inserted",
            extra={
                "location_id": str(location.id),
                "customer_id": str(location.customer_id) if location.customer_id else None,
                "prospect_id": str(location.prospect_id) if location.prospect_id else None,
            },
        )
        return location

    def replace(self, location: Location, changes: dict, allow_edit: bool = False) -> Location:
        """
        Apply ``changes`` to a persistent location.

        The proposed state is validated on a detached copy, so a rejected
        change leaves ``location`` untouched.

        Raises:
            LocationImmutableError: a physical-address field of a customer
                location would change and ``allow_edit`` is False.
        """
        unknown = set(changes) - set(ALL_FIELDS)
        if unknown:
            raise ValueError(f"Unknown location fields: {sorted(unknown)}")
        if self.policy.no_city and changes.get("city"):
            logger.warning(
                "location_city_ignored",
                extra={"location_id": str(location.id), "operation": "replace"},
            )

        old = snapshot(location)
        proposed = snapshot(location)
        for field, value in changes.items():
            setattr(proposed, field, value)
        normalize(proposed, no_city=self.policy.no_city)

        if not allow_edit and location.customer_id:
            for field in PROTECTED_LOCATION_FIELDS:
                if clean_text(getattr(proposed, field)) != clean_text(getattr(old, field)):
                    raise LocationImmutableError(str(location.id), field)

        self.validator.validate(proposed)

        with self.session.begin_nested():
            for field in ALL_FIELDS:
                new_value = getattr(proposed, field)
                if getattr(location, field) != new_value:
                    setattr(location, field, new_value)
            location.customer_pending = proposed.customer_pending
            if allow_edit:
                with allow_location_edit(self.session):
                    self.session.flush()
            else:
                self.session.flush()

            if location.customer_id or location.prospect_id:
                self.exporters.export_replace(self.policy.exporters, location, old)

        logger.info(
            "location_replaced",
            extra={
                "location_id": str(location.id),
                "fields": sorted(changes),
                "allow_edit": allow_edit,
            },
        )
        return location

    # ------------------------------------------------------------------
    # reconciliation
    # ------------------------------------------------------------------

    def find_matches(self, location) -> list[Location]:
        """Stored locations identity-equal to ``location`` (after trimming)."""
        query = select(Location)
        for field, value in essential_values(location).items():
            column = getattr(Location, field)
            if value is None:
                query = query.where(or_(column.is_(None), column == ""))
            else:
                query = query.where(column == value)
        query = query.order_by(Location.created_at, Location.id)
        return list(self.session.scalars(query))

    def find_or_insert(self, proposed: Location) -> Location:
        """
        Return the stored location matching ``proposed``, inserting it if none does.

        On a match, each non-empty descriptive field of ``proposed`` that
        differs overwrites the stored one.  The resulting state (id
        included) is then copied onto ``proposed``, which stays transient:
        callers use the returned persistent location and must not add
        ``proposed`` to the session afterwards.
        """
        self._drop_city(proposed, "find_or_insert")
        normalize(proposed, no_city=self.policy.no_city)
        descriptive = descriptive_values(proposed)

        with self.session.begin_nested():
            matches = self.find_matches(proposed)
            if not matches:
                return self.insert(proposed)

            existing = matches[0]
            changed = {
                field: value
                for field, value in descriptive.items()
                if getattr(existing, field) != value
            }
            if changed:
                self.replace(existing, changed)

        for field in ALL_FIELDS:
            setattr(proposed, field, getattr(existing, field))
        proposed.id = existing.id

        logger.info(
            "location_matched",
            extra={"location_id": str(existing.id), "updated_fields": sorted(changed)},
        )
        return existing

    # ------------------------------------------------------------------
    # moves
    # ------------------------------------------------------------------

    def move_pkgs(self, location) -> list[Package]:
        """
        Packages that ``move_to`` would relocate.

        Those using this location as their service address that are not
        cancelled, not supplemental, and not one-time charges that have
        already been charged.
        """
        query = (
            select(Package)
            .join(PackageDefinition, Package.definition_id == PackageDefinition.id)
            .where(
                Package.location_id == location.id,
                Package.cancelled_at.is_(None),
                Package.main_package_id.is_(None),
            )
            .order_by(Package.created_at, Package.id)
        )
        return [pkg for pkg in self.session.scalars(query) if not pkg.is_charged_one_time]

    def move_to(
        self,
        old: Location,
        new: Location,
        move_packages: Iterable[Package] | None = None,
    ) -> Location:
        """
        Move everything billed at ``old`` to ``new``, then retire ``old`` if unused.

        ``new`` is inserted first if it has no id.  Moving a location onto
        itself is a no-op.  ``move_packages`` overrides the package list
        computed by ``move_pkgs``; every package in it must be eligible.
        All steps commit together or not at all.
        """
        with self.session.begin_nested():
            if new.id is None:
                try:
                    self.insert(new)
                except (LocationValidationError, LocationExportError) as exc:
                    raise LocationMoveError("Error creating location", str(exc)) from exc
            elif new.id == old.id:
                return new

            if move_packages is None:
                packages = self.move_pkgs(old)
            else:
                packages = list(move_packages)
                for pkg in packages:
                    reason = self._ineligible_reason(pkg, old)
                    if reason:
                        raise PackageMoveConflictError(str(pkg.id), reason)

            for pkg in packages:
                pkg.location_id = new.id
            self.session.flush()

            disabled = self.disable_if_unused(old)

        logger.info(
            "location_move_completed",
            extra={
                "from_location_id": str(old.id),
                "to_location_id": str(new.id),
                "packages_moved": len(packages),
                "old_disabled": disabled,
            },
        )
        return new

    @staticmethod
    def _ineligible_reason(pkg: Package, old) -> str | None:
        if pkg.location_id != old.id:
            return "does not use this location"
        if pkg.is_cancelled:
            return "already cancelled"
        if pkg.is_supplemental:
            return "is supplemental"
        if pkg.is_charged_one_time:
            return "has already been charged"
        return None

    def references(self, location) -> dict[str, int]:
        """Live references to a location, by kind."""
        customers = self.session.scalar(
            select(func.count()).select_from(Customer).where(
                or_(
                    Customer.bill_location_id == location.id,
                    Customer.ship_location_id == location.id,
                )
            )
        )
        contacts = self.session.scalar(
            select(func.count()).select_from(Contact).where(Contact.location_id == location.id)
        )
        packages = self.session.scalar(
            select(func.count()).select_from(Package).where(
                Package.location_id == location.id,
                Package.cancelled_at.is_(None),
            )
        )
        return {"customers": customers, "contacts": contacts, "packages": packages}

    def disable_if_unused(self, location: Location) -> bool:
        """Disable ``location`` if nothing references it.  Returns True if disabled."""
        refs = self.references(location)
        if any(refs.values()):
            logger.debug(
                "location_still_referenced",
                extra={"location_id": str(location.id), **refs},
            )
            return False
        if not location.disabled:
            self.replace(location, {"disabled": True})
            logger.info("location_disabled", extra={"location_id": str(location.id)})
        return True

    # ------------------------------------------------------------------
    # maintenance
    # ------------------------------------------------------------------

    def trim_whitespace_upgrade(self) -> int:
        """
        Re-save enabled locations whose essential fields carry stray whitespace.

        Edits to protected fields are allowed for this pass.  WA locations
        without a tax district get a district lookup queued when a tax
        district method is configured.  Returns the number of locations fixed.
        """
        padded = [
            or_(getattr(Location, field).like(" %"), getattr(Location, field).like("% "))
            for field in ESSENTIAL_TEXT_FIELDS
        ]
        query = (
            select(Location)
            .where(Location.disabled.is_(False), or_(*padded))
            .order_by(Location.created_at, Location.id)
        )
        fixed = 0
        for location in self.session.scalars(query).all():
            self.replace(location, {}, allow_edit=True)
            fixed += 1
            if self._needs_district(location):
                self._enqueue_district_update(location)
        logger.info("location_whitespace_upgrade_completed", extra={"fixed": fixed})
        return fixed

    # ------------------------------------------------------------------
    # labels
    # ------------------------------------------------------------------

    def county_state_country(self, location) -> str:
        return county_state_country(location)

    def label_prefix(self, location) -> str:
        """Site identifier per the configured label prefix, or ""."""
        if self.policy.label_prefix == "CoStAg":
            agent = self._agent_label(location)
            prefix = (
                (location.country or "")
                + (location.state or "")[:2]
                + agent[:2]
                + location.id.hex[:8]
            )
            return prefix.upper()
        if self.policy.label_prefix == "_location" and location.location_name:
            return location.location_name
        return ""

    def location_label(self, location, join_string: str = ": ", no_prefix: bool = False) -> str:
        """Human-readable one-line label, optionally prefixed with the site identifier."""
        prefix = "" if no_prefix else self.label_prefix(location)
        if prefix:
            prefix += join_string
        city_state_zip = ", ".join(part for part in (location.city, location.state) if part)
        if location.zip:
            city_state_zip = f"{city_state_zip}  {location.zip}".strip()
        parts = [location.address1, location.address2, city_state_zip]
        if location.country and location.country != self.policy.default_country:
            parts.append(CountryRegistry.name(location.country) or location.country)
        return prefix + ", ".join(part for part in parts if part)

    def _agent_label(self, location) -> str:
        owner = None
        if location.customer_id:
            owner = self.session.get(Customer, location.customer_id)
        elif location.prospect_id:
            owner = self.session.get(Prospect, location.prospect_id)
        if owner is None:
            return ""
        if self.agent_prefix is not None:
            display_prefix = self.agent_prefix(owner.agent_num)
            if display_prefix:
                return display_prefix
        if owner.agent_num is None:
            return ""
        agent = self.session.scalars(
            select(Agent).where(Agent.agent_num == owner.agent_num)
        ).first()
        return agent.name if agent else ""

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------

    def _drop_city(self, location, operation: str) -> None:
        if self.policy.no_city:
            if location.city:
                logger.warning(
                    "location_city_ignored",
                    extra={"operation": operation},
                )
            location.city = None

    def _needs_district(self, location) -> bool:
        return (
            not self.bulk_import
            and not location.tax_district
            and (location.state or "").lower() == "wa"
            and bool(self.policy.tax_district_method)
        )

    def _enqueue_district_update(self, location) -> None:
        if self.district_enqueuer is None:
            logger.warning(
                "location_district_update_skipped",
                extra={"location_id": str(location.id), "reason": "no job queue"},
            )
            return
        self.district_enqueuer(location.id)
        logger.info(
            "location_district_update_queued",
            extra={"location_id": str(location.id)},
        )
