"""
External provider interfaces -- geocoding, address standardization,
census tract and tax district lookups.

Responsibility:
    Narrow Protocols the kernel and the enrichment tasks call through, and
    the frozen DTOs that cross that boundary.  Concrete HTTP clients live
    in billing_kernel.providers.http; tests supply in-memory fakes.

Failure modes:
    - Implementations raise ExternalServiceError subclasses carrying the
      provider name.  They never return partial results.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Protocol, runtime_checkable

ADDRESS_FIELDS = ("address1", "address2", "city", "county", "state", "zip", "country")


@dataclass(frozen=True)
class AddressQuery:
    """A postal address as sent to a provider."""

    address1: str
    address2: str | None = None
    city: str | None = None
    county: str | None = None
    state: str | None = None
    zip: str | None = None
    country: str = "US"

    @classmethod
    def from_location(cls, location) -> "AddressQuery":
        return cls(**{field: getattr(location, field) for field in ADDRESS_FIELDS})

    @property
    def one_line(self) -> str:
        """"123 Main St, Springfield, IL 62704, US" style single line."""
        state_zip = " ".join(part for part in (self.state, self.zip) if part)
        parts = (self.address1, self.address2, self.city, state_zip, self.country)
        return ", ".join(part for part in parts if part)


@dataclass(frozen=True)
class Coordinates:
    latitude: Decimal
    longitude: Decimal


@dataclass(frozen=True)
class StandardizedAddress:
    """
    Result of address standardization.

    ``addr_clean`` is True when the provider matched the address exactly
    enough for it to be treated as standardized.
    """

    address1: str
    address2: str | None = None
    city: str | None = None
    county: str | None = None
    state: str | None = None
    zip: str | None = None
    country: str = "US"
    latitude: Decimal | None = None
    longitude: Decimal | None = None
    census_tract: str | None = None
    addr_clean: bool = True

    def address_fields(self) -> dict[str, str | None]:
        return {field: getattr(self, field) for field in ADDRESS_FIELDS}


@runtime_checkable
class GeocodingProvider(Protocol):
    name: str

    def lookup_coordinates(self, address: AddressQuery) -> Coordinates:
        ...


@runtime_checkable
class AddressStandardizer(Protocol):
    name: str

    def standardize(self, address: AddressQuery) -> StandardizedAddress:
        ...


@runtime_checkable
class CensusTractProvider(Protocol):
    name: str

    def census_tract(self, address: AddressQuery, year: int) -> str | None:
        """The census tract for the address as of ``year``, or None if unmatched."""
        ...


@runtime_checkable
class TaxDistrictProvider(Protocol):
    name: str

    def district(self, address: AddressQuery) -> str | None:
        ...
