"""In-memory stand-ins for the external providers and exporters."""

from decimal import Decimal

from billing_kernel.exceptions import (
    CensusLookupError,
    GeocodingError,
    StandardizationError,
    TaxDistrictLookupError,
)
from billing_kernel.providers.base import AddressQuery, Coordinates, StandardizedAddress


class RecordingExporter:
    """Remembers every export call; optionally fails them."""

    def __init__(self, fail_with: str | None = None):
        self.inserts: list = []
        self.replaces: list = []
        self.fail_with = fail_with

    def export_insert(self, location) -> None:
        if self.fail_with:
            raise RuntimeError(self.fail_with)
        self.inserts.append(location.id)

    def export_replace(self, new, old) -> None:
        if self.fail_with:
            raise RuntimeError(self.fail_with)
        self.replaces.append((new.id, old.address1, new.address1))


class FakeGeocoder:
    name = "fake_geocoder"

    def __init__(self, coordinates: Coordinates | None = None, fail: bool = False):
        self.coordinates = coordinates or Coordinates(Decimal("39.781721"), Decimal("-89.650148"))
        self.fail = fail
        self.queries: list[AddressQuery] = []

    def lookup_coordinates(self, address: AddressQuery) -> Coordinates:
        self.queries.append(address)
        if self.fail:
            raise GeocodingError(self.name, "quota exceeded")
        return self.coordinates


class FakeStandardizer:
    name = "fake_standardizer"

    def __init__(self, results: dict[str, StandardizedAddress] | None = None):
        # keyed by the incoming address1; unknown addresses fail
        self.results = results or {}

    def standardize(self, address: AddressQuery) -> StandardizedAddress:
        try:
            return self.results[address.address1]
        except KeyError:
            raise StandardizationError(self.name, f"no match for {address.one_line}") from None


class FakeCensus:
    name = "fake_census"

    def __init__(self, tract: str | None = "17167000100", fail: bool = False):
        self.tract = tract
        self.fail = fail
        self.years: list[int] = []

    def census_tract(self, address: AddressQuery, year: int) -> str | None:
        self.years.append(year)
        if self.fail:
            raise CensusLookupError(self.name, "service unavailable")
        return self.tract


class FakeDistricts:
    name = "fake_districts"

    def __init__(self, district: str | None = "1726", fail: bool = False):
        self.district_code = district
        self.fail = fail

    def district(self, address: AddressQuery) -> str | None:
        if self.fail:
            raise TaxDistrictLookupError(self.name, "service unavailable")
        return self.district_code
