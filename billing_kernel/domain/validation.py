"""
Location field checks -- pure rules with no I/O.

Responsibility:
    Each ``check_*`` function inspects (and, where the rule canonicalizes,
    rewrites) one aspect of a proposed location and raises
    LocationValidationError on the first problem.  The ordering of the
    rules, and the rules that need the database or a geocoder, live in
    billing_kernel.services.location_validator.

Architecture position:
    Kernel > Domain -- zero I/O.
"""

from billing_kernel.domain.country import CountryRegistry
from billing_kernel.domain.location_identity import (
    canonicalize_census_tract,
    parse_coordinate,
)
from billing_kernel.domain.policy import LocationPolicy
from billing_kernel.exceptions import LocationValidationError

LOCATION_KINDS = ("R", "B")


def check_required_text(location, policy: LocationPolicy) -> None:
    if not location.address1:
        raise LocationValidationError("address1", "Address line 1 is required")
    if not policy.no_city and not location.city:
        raise LocationValidationError("city", "City is required")


def check_country_and_zip(location, *, bulk_import: bool = False) -> None:
    """Country must be an ISO code; zip must fit the country (not on import)."""
    try:
        location.country = CountryRegistry.validate(location.country)
    except ValueError:
        raise LocationValidationError(
            "country", f"Illegal country: {location.country or ''}"
        ) from None
    if bulk_import:
        return
    try:
        location.zip = CountryRegistry.validate_postal_code(location.country, location.zip)
    except ValueError as exc:
        raise LocationValidationError("zip", str(exc)) from None


def check_coordinates(location) -> None:
    """Latitude and longitude are decimal degrees, set together or not at all."""
    try:
        latitude = parse_coordinate(location.latitude, "latitude")
        longitude = parse_coordinate(location.longitude, "longitude")
    except ValueError as exc:
        raise LocationValidationError("coordinates", str(exc)) from None
    if (latitude is None) != (longitude is None):
        raise LocationValidationError(
            "coordinates", "Latitude and longitude must be given together"
        )
    location.latitude = latitude
    location.longitude = longitude


def check_location_kind(location) -> None:
    if location.location_kind and location.location_kind not in LOCATION_KINDS:
        raise LocationValidationError(
            "location_kind", f"Illegal location kind: {location.location_kind}"
        )


def check_census_tract(location) -> None:
    try:
        location.census_tract = canonicalize_census_tract(location.census_tract)
    except ValueError as exc:
        raise LocationValidationError("census_tract", str(exc)) from None


def check_address2(location, policy: LocationPolicy) -> None:
    if policy.require_address2 and not (location.address2 or "").strip():
        raise LocationValidationError("address2", "Unit # is required")


def check_owner(location) -> None:
    # the owning customer may not be inserted yet
    if not (location.prospect_id or location.customer_id or location.customer_pending):
        raise LocationValidationError("owner", "No prospect or customer!")
    if location.prospect_id and location.customer_id:
        raise LocationValidationError("owner", "Prospect and customer!")


def check_prospect_location_kind(location, policy: LocationPolicy) -> None:
    if (
        location.prospect_id
        and policy.prospect_location_kind_required
        and not location.location_kind
    ):
        raise LocationValidationError("location_kind", "Location kind is required")
