"""
Location identity -- which fields make two locations "the same place".

Responsibility:
    Defines the essential (identity-bearing) and descriptive location
    fields, normalizes essential fields, computes the identity key used
    to find an existing match, and canonicalizes census tracts and
    coordinates.

Architecture position:
    Kernel > Domain -- pure functions, zero I/O.  Operates on anything
    exposing the location attributes (normally a transient or persistent
    billing_kernel.models.location.Location).

Invariants enforced:
    - Essential text fields are whitespace-trimmed, and blank values are
      stored as NULL, before any comparison or persistence.
    - Two locations are identity-equal iff every essential field matches
      exactly after normalization.
    - A census tract is either nine digits, a dot and two digits (legacy
      form) or fifteen digits (current form).
"""

import re
from decimal import Decimal, InvalidOperation
from typing import Any

OWNER_FIELDS = ("customer_id", "prospect_id")

ESSENTIAL_TEXT_FIELDS = (
    "address1",
    "address2",
    "city",
    "county",
    "state",
    "zip",
    "country",
    "location_number",
    "location_type",
    "location_kind",
)

ESSENTIAL_FIELDS = OWNER_FIELDS + ESSENTIAL_TEXT_FIELDS + ("disabled",)

DESCRIPTIVE_FIELDS = (
    "location_name",
    "geocode",
    "latitude",
    "longitude",
    "coord_auto",
    "addr_clean",
    "census_tract",
    "census_year",
    "tax_district",
    "incorporated",
)

ALL_FIELDS = ESSENTIAL_FIELDS + DESCRIPTIVE_FIELDS

_LEGACY_TRACT = re.compile(r"^\s*(\d{9})\.?(\d{2})\s*$", re.ASCII)
_CURRENT_TRACT = re.compile(r"^\s*(\d{15})\s*$", re.ASCII)


def clean_text(value: Any) -> Any:
    """Trim a text value; blank strings become None.  Non-strings pass through."""
    if isinstance(value, str):
        value = value.strip()
        return value or None
    return value


def normalize(location, *, no_city: bool = False):
    """
    Normalize a location in place and return it.

    Trims every essential text field, upper-cases the country code and
    blanks the city when the no-city policy is active.
    """
    for field in ESSENTIAL_TEXT_FIELDS:
        setattr(location, field, clean_text(getattr(location, field)))
    if location.country:
        location.country = location.country.upper()
    if no_city:
        location.city = None
    if location.disabled is None:
        location.disabled = False
    return location


def essential_key(location) -> tuple:
    """The identity tuple of a (normalized) location."""
    return tuple(_essential_value(location, field) for field in ESSENTIAL_FIELDS)


def _essential_value(location, field: str) -> Any:
    value = getattr(location, field)
    if field == "disabled":
        return bool(value)
    return clean_text(value)


def identity_equal(a, b) -> bool:
    """True iff both locations agree on every essential field."""
    return essential_key(a) == essential_key(b)


def essential_values(location) -> dict[str, Any]:
    """Essential field name -> normalized value."""
    return dict(zip(ESSENTIAL_FIELDS, essential_key(location)))


def descriptive_values(location) -> dict[str, Any]:
    """
    The non-empty descriptive fields of a proposed location.

    Empty, None and False values are left out: an unset descriptive field
    on a proposal never erases data already stored on a match.  Census
    tracts and coordinates come back in their stored form so they compare
    equal to a match's values; unparseable ones are returned as given
    and left for validation to reject.
    """
    values = {}
    for field in DESCRIPTIVE_FIELDS:
        value = getattr(location, field)
        if isinstance(value, str):
            value = value.strip()
        if value is None or value is False or value == "":
            continue
        values[field] = _canonical_descriptive(field, value)
    return values


def _canonical_descriptive(field: str, value: Any) -> Any:
    try:
        if field == "census_tract":
            return canonicalize_census_tract(value)
        if field in ("latitude", "longitude"):
            return parse_coordinate(value, field)
    except ValueError:
        return value
    return value


def canonicalize_census_tract(value: str | None) -> str | None:
    """
    Canonicalize a census tract.

    "123456789.12" and "12345678912" both become "123456789.12";
    a fifteen-digit tract is kept as-is; blank becomes None.

    Raises:
        ValueError: for anything else.
    """
    if value is None or not str(value).strip():
        return None
    text = str(value)
    legacy = _LEGACY_TRACT.match(text)
    if legacy:
        return f"{legacy.group(1)}.{legacy.group(2)}"
    current = _CURRENT_TRACT.match(text)
    if current:
        return current.group(1)
    raise ValueError(f"Illegal census tract: {text}")


def parse_coordinate(value: Any, kind: str) -> Decimal | None:
    """
    Parse a decimal-degree latitude or longitude.

    Args:
        value: str, int, float or Decimal; blank means "no coordinate".
        kind: "latitude" (range -90..90) or "longitude" (range -180..180).

    Raises:
        ValueError: if the value is not a number or is out of range.
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    try:
        number = Decimal(str(value).strip())
    except InvalidOperation:
        raise ValueError(f"Illegal {kind}: {value}") from None
    if not number.is_finite():
        raise ValueError(f"Illegal {kind}: {value}")
    limit = 90 if kind == "latitude" else 180
    if abs(number) > limit:
        raise ValueError(f"Illegal {kind}: {value} (must be within +/-{limit})")
    return number


def county_state_country(location) -> str:
    """Just the county, state and country, e.g. "Sangamon County, IL, US"."""
    label = location.country or ""
    if location.state:
        label = f"{location.state}, {label}"
    if location.county:
        label = f"{location.county} County, {label}"
    return label
