"""
LocationValidator -- ordered validation of a proposed location.

Responsibility:
    Runs the location rules in a fixed order, first failure wins, and
    fills in coordinates through the geocoder when they are missing.
    Pure field rules come from billing_kernel.domain.validation; the rules
    that need the database (owner, tax district, geography) are here.

Architecture position:
    Kernel > Services.  Read-only against the session.

Invariants enforced:
    - A disabled location always passes, so disabling never fails.
    - Validation mutates only canonical forms (trimmed text, upper-case
      country, normalized zip, canonical census tract, Decimal
      coordinates) and, outside bulk import, missing coordinates.

Failure modes:
    - LocationValidationError naming the failing field.  Geocoder failures
      surface as a validation failure on "coordinates".
"""

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from billing_kernel.domain import validation as rules
from billing_kernel.domain.location_identity import normalize
from billing_kernel.domain.policy import LocationPolicy
from billing_kernel.exceptions import ExternalServiceError, LocationValidationError
from billing_kernel.logging_config import get_logger
from billing_kernel.models.customer import Customer, Prospect
from billing_kernel.models.geography import TaxRegion
from billing_kernel.providers.base import AddressQuery, GeocodingProvider
from billing_kernel.services.base import BaseService

logger = get_logger("services.location_validator")


def _blank(column):
    return or_(column.is_(None), column == "")


class LocationValidator(BaseService):
    """
    Validates locations against policy, the geography table and the owner tables.

    Args:
        session: read access to customers, prospects and tax regions.
        policy: location configuration snapshot.
        geocoder: used to fill in missing coordinates; when None, no
            lookup is attempted.
        bulk_import: relaxed mode for mass imports (no zip, geography or
            coordinate checks).
    """

    def __init__(
        self,
        session: Session,
        policy: LocationPolicy | None = None,
        geocoder: GeocodingProvider | None = None,
        bulk_import: bool = False,
    ):
        super().__init__(session)
        self.policy = policy or LocationPolicy()
        self.geocoder = geocoder
        self.bulk_import = bulk_import

    def validate(self, location) -> None:
        """Raise LocationValidationError if ``location`` is not acceptable."""
        if location.disabled:
            return

        normalize(location, no_city=self.policy.no_city)

        self._check_owner_references(location)
        rules.check_required_text(location, self.policy)
        rules.check_country_and_zip(location, bulk_import=self.bulk_import)
        rules.check_coordinates(location)
        rules.check_location_kind(location)
        rules.check_census_tract(location)
        rules.check_address2(location, self.policy)
        rules.check_owner(location)
        rules.check_prospect_location_kind(location, self.policy)
        self._check_tax_district(location)
        self._check_geography(location)

        if not self.bulk_import and location.latitude is None and location.longitude is None:
            self.set_coord(location)

    def _check_owner_references(self, location) -> None:
        if location.prospect_id and self.session.get(Prospect, location.prospect_id) is None:
            raise LocationValidationError(
                "prospect_id", f"Unknown prospect: {location.prospect_id}"
            )
        if location.customer_id and self.session.get(Customer, location.customer_id) is None:
            raise LocationValidationError(
                "customer_id", f"Unknown customer: {location.customer_id}"
            )

    def _check_tax_district(self, location) -> None:
        # a bad district would mean wrong or missing sales tax on invoices
        if not (self.policy.checks_tax_district and location.tax_district):
            return
        found = self.session.scalars(
            select(TaxRegion.id).where(TaxRegion.district == location.tax_district).limit(1)
        ).first()
        if found is None:
            raise LocationValidationError(
                "tax_district",
                f"WA State tax district {location.tax_district} does not exist in tax table",
            )

    def _check_geography(self, location) -> None:
        if self.bulk_import or self.country_has_catch_all(location.country):
            return
        query = select(TaxRegion.id).where(TaxRegion.country == location.country)
        query = query.where(
            TaxRegion.state == location.state if location.state else _blank(TaxRegion.state)
        )
        query = query.where(
            TaxRegion.county == location.county if location.county else _blank(TaxRegion.county)
        )
        if self.session.scalars(query.limit(1)).first() is None:
            raise LocationValidationError(
                "geography",
                f"Unknown state/county/country: "
                f"{location.state or ''}/{location.county or ''}/{location.country}",
            )

    def country_has_catch_all(self, country: str) -> bool:
        """True if the tax table covers ``country`` with a row that has no state."""
        query = select(TaxRegion.id).where(
            TaxRegion.country == country, _blank(TaxRegion.state)
        )
        return self.session.scalars(query.limit(1)).first() is not None

    def set_coord(self, location) -> None:
        """Fill in latitude/longitude from the geocoder."""
        if self.geocoder is None:
            return
        try:
            coordinates = self.geocoder.lookup_coordinates(AddressQuery.from_location(location))
        except ExternalServiceError as exc:
            logger.warning(
                "location_geocode_failed",
                extra={"provider": exc.provider, "detail": exc.detail},
            )
            raise LocationValidationError(
                "coordinates", f"Coordinate lookup failed: {exc.detail}"
            ) from exc
        location.latitude = coordinates.latitude
        location.longitude = coordinates.longitude
        location.coord_auto = True
