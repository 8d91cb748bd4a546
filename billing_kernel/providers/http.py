"""HTTP clients for the external location providers."""

import time
import xml.etree.ElementTree as ET
from decimal import Decimal, InvalidOperation
from typing import Callable

import httpx

from billing_kernel.domain.location_identity import canonicalize_census_tract
from billing_kernel.exceptions import (
    CensusLookupError,
    ExternalServiceError,
    GeocodingError,
    StandardizationError,
    TaxDistrictLookupError,
)
from billing_kernel.logging_config import get_logger
from billing_kernel.providers.base import AddressQuery, Coordinates, StandardizedAddress

logger = get_logger("providers.http")

GOOGLE_GEOCODE_URL = "https://maps.googleapis.com/maps/api/geocode/json"
CENSUS_GEOCODER_URL = "https://geocoding.geo.census.gov/geocoder"
WA_DOR_URL = "https://webgis.dor.wa.gov/webapi/AddressRates.aspx"

# WA DOR result codes 0-2 are matches (address, zip+4, zip5)
_WA_MATCH_CODES = {"0", "1", "2"}


class _HTTPProvider:
    """Shared GET-with-retry plumbing; subclasses set ``name`` and ``error_class``."""

    name = "http"
    error_class: type[ExternalServiceError] = ExternalServiceError

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        max_retries: int = 2,
        backoff_seconds: float = 1.0,
        client: httpx.Client | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if not base_url:
            raise ValueError(f"{self.name} base URL is not configured.")
        self.base_url = base_url.rstrip("/")
        self.max_retries = max_retries
        self.backoff_seconds = backoff_seconds
        self._client = client or httpx.Client(timeout=httpx.Timeout(timeout, connect=5.0))
        self._sleep = sleep

    def close(self) -> None:
        self._client.close()

    def _get(self, url: str, params: dict) -> httpx.Response:
        attempt = 0
        while True:
            try:
                response = self._client.get(url, params=params)
                response.raise_for_status()
                return response
            except httpx.HTTPStatusError as exc:
                # 4xx other than 429 will not get better by retrying
                status = exc.response.status_code
                attempt += 1
                if (400 <= status < 500 and status != 429) or attempt > self.max_retries:
                    raise self.error_class(self.name, f"HTTP {status}") from exc
            except httpx.HTTPError as exc:
                attempt += 1
                if attempt > self.max_retries:
                    raise self.error_class(self.name, str(exc) or type(exc).__name__) from exc
            wait = self.backoff_seconds * attempt
            logger.debug(
                "provider_request_retry",
                extra={"provider": self.name, "attempt": attempt, "wait_seconds": wait},
            )
            self._sleep(wait)

    def _json(self, response: httpx.Response) -> dict:
        try:
            return response.json()
        except ValueError as exc:
            raise self.error_class(self.name, "response is not JSON") from exc


def _decimal(value) -> Decimal:
    return Decimal(str(value))


class GoogleGeocoder(_HTTPProvider):
    """Google Maps geocoding API."""

    name = "google"
    error_class = GeocodingError

    def __init__(self, api_key: str, base_url: str = GOOGLE_GEOCODE_URL, **kwargs) -> None:
        super().__init__(base_url, **kwargs)
        self.api_key = api_key

    def lookup_coordinates(self, address: AddressQuery) -> Coordinates:
        response = self._get(self.base_url, {"address": address.one_line, "key": self.api_key})
        data = self._json(response)
        status = data.get("status")
        if status != "OK" or not data.get("results"):
            raise GeocodingError(self.name, data.get("error_message") or status or "no result")
        location = data["results"][0]["geometry"]["location"]
        try:
            return Coordinates(_decimal(location["lat"]), _decimal(location["lng"]))
        except (KeyError, InvalidOperation) as exc:
            raise GeocodingError(self.name, "malformed coordinates in response") from exc


class CensusGeocoder(_HTTPProvider):
    """
    US Census Bureau geocoder.

    One ``geographies/address`` request yields the matched (standardized)
    address, its coordinates and its census tract, so this client serves
    all three provider roles.
    """

    name = "census"
    error_class = CensusLookupError

    def __init__(
        self,
        base_url: str = CENSUS_GEOCODER_URL,
        benchmark: str = "Public_AR_Current",
        **kwargs,
    ) -> None:
        super().__init__(base_url, **kwargs)
        self.benchmark = benchmark

    def _match(self, address: AddressQuery, vintage: str, error_class) -> dict | None:
        if address.country != "US":
            raise error_class(self.name, f"only US addresses are supported, not {address.country}")
        params = {
            "street": address.address1,
            "city": address.city or "",
            "state": address.state or "",
            "zip": address.zip or "",
            "benchmark": self.benchmark,
            "vintage": vintage,
            "format": "json",
        }
        try:
            response = self._get(f"{self.base_url}/geographies/address", params)
        except ExternalServiceError as exc:
            raise error_class(self.name, exc.detail) from exc
        data = self._json(response)
        matches = (data.get("result") or {}).get("addressMatches") or []
        return matches[0] if matches else None

    def lookup_coordinates(self, address: AddressQuery) -> Coordinates:
        match = self._match(address, "Current_Current", GeocodingError)
        if match is None:
            raise GeocodingError(self.name, f"no match for {address.one_line}")
        coords = match.get("coordinates") or {}
        return Coordinates(_decimal(coords["y"]), _decimal(coords["x"]))

    def census_tract(self, address: AddressQuery, year: int) -> str | None:
        match = self._match(address, f"Census{year}_Current", CensusLookupError)
        if match is None:
            return None
        tracts = (match.get("geographies") or {}).get("Census Tracts") or []
        if not tracts:
            return None
        try:
            return canonicalize_census_tract(tracts[0].get("GEOID"))
        except ValueError as exc:
            raise CensusLookupError(self.name, str(exc)) from exc

    def standardize(self, address: AddressQuery) -> StandardizedAddress:
        match = self._match(address, "Current_Current", StandardizationError)
        if match is None:
            raise StandardizationError(self.name, f"no match for {address.one_line}")
        parts = match.get("addressComponents") or {}
        street = " ".join(
            parts[key]
            for key in ("fromAddress", "preDirection", "preType", "streetName",
                        "suffixType", "suffixDirection")
            if parts.get(key)
        )
        coords = match.get("coordinates") or {}
        return StandardizedAddress(
            address1=street or address.address1,
            address2=address.address2,
            city=parts.get("city") or address.city,
            county=address.county,
            state=parts.get("state") or address.state,
            zip=parts.get("zip") or address.zip,
            country=address.country,
            latitude=_decimal(coords["y"]) if "y" in coords else None,
            longitude=_decimal(coords["x"]) if "x" in coords else None,
        )


class WashingtonDistrictProvider(_HTTPProvider):
    """Washington State Department of Revenue address-rates lookup."""

    name = "wa_dor"
    error_class = TaxDistrictLookupError

    def __init__(self, base_url: str = WA_DOR_URL, **kwargs) -> None:
        super().__init__(base_url, **kwargs)

    def district(self, address: AddressQuery) -> str | None:
        params = {
            "output": "xml",
            "addr": address.address1,
            "city": address.city or "",
            "zip": address.zip or "",
        }
        response = self._get(self.base_url, params)
        try:
            root = ET.fromstring(response.text)
        except ET.ParseError as exc:
            raise TaxDistrictLookupError(self.name, "response is not XML") from exc
        code = root.get("code")
        if code not in _WA_MATCH_CODES:
            logger.info(
                "tax_district_not_found",
                extra={"provider": self.name, "result_code": code},
            )
            return None
        return root.get("loccode") or None
