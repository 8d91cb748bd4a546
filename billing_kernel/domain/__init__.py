"""
Pure domain layer.

Location identity rules, field checks, country data and the clock, with
NO dependencies on the ORM session, the database or network I/O.
"""

from billing_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from billing_kernel.domain.country import CountryRegistry, PostalRule
from billing_kernel.domain.location_identity import (
    DESCRIPTIVE_FIELDS,
    ESSENTIAL_FIELDS,
    canonicalize_census_tract,
    county_state_country,
    descriptive_values,
    essential_key,
    identity_equal,
    normalize,
    parse_coordinate,
)
from billing_kernel.domain.policy import DEFAULT_CENSUS_YEAR, LocationPolicy

__all__ = [
    "Clock",
    "CountryRegistry",
    "DEFAULT_CENSUS_YEAR",
    "DESCRIPTIVE_FIELDS",
    "DeterministicClock",
    "ESSENTIAL_FIELDS",
    "LocationPolicy",
    "PostalRule",
    "SystemClock",
    "canonicalize_census_tract",
    "county_state_country",
    "descriptive_values",
    "essential_key",
    "identity_equal",
    "normalize",
    "parse_coordinate",
]
