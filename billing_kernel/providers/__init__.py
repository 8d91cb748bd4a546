"""External location providers: interfaces, DTOs and HTTP clients."""

from billing_kernel.providers.base import (
    AddressQuery,
    AddressStandardizer,
    CensusTractProvider,
    Coordinates,
    GeocodingProvider,
    StandardizedAddress,
    TaxDistrictProvider,
)
from billing_kernel.providers.http import (
    CensusGeocoder,
    GoogleGeocoder,
    WashingtonDistrictProvider,
)

__all__ = [
    "AddressQuery",
    "AddressStandardizer",
    "CensusGeocoder",
    "CensusTractProvider",
    "Coordinates",
    "GeocodingProvider",
    "GoogleGeocoder",
    "StandardizedAddress",
    "TaxDistrictProvider",
    "WashingtonDistrictProvider",
]
