"""Tests for the HTTP provider clients, against httpx.MockTransport."""

from decimal import Decimal

import httpx
import pytest

from billing_kernel.exceptions import (
    CensusLookupError,
    GeocodingError,
    StandardizationError,
    TaxDistrictLookupError,
)
from billing_kernel.providers.base import AddressQuery
from billing_kernel.providers.http import (
    CensusGeocoder,
    GoogleGeocoder,
    WashingtonDistrictProvider,
)

ADDRESS = AddressQuery(address1="123 Main St", city="Springfield", state="IL", zip="62701")


def census_match(**overrides) -> dict:
    match = {
        "coordinates": {"x": -89.650148, "y": 39.781721},
        "addressComponents": {
            "fromAddress": "123",
            "streetName": "MAIN",
            "suffixType": "ST",
            "city": "SPRINGFIELD",
            "state": "IL",
            "zip": "62701",
        },
        "geographies": {"Census Tracts": [{"GEOID": "17167000100"}]},
    }
    match.update(overrides)
    return {"result": {"addressMatches": [match]}}


class Responder:
    """MockTransport handler that replays responses and records requests."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, Exception):
            raise response
        # the last response may be replayed, so hand out a fresh copy
        return httpx.Response(
            response.status_code, headers=response.headers, content=response.content,
        )


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def connect(sleeps):
    """Build a provider whose client answers from a Responder."""
    clients = []

    def _connect(provider_class, *responses, **kwargs):
        responder = Responder(*responses)
        client = httpx.Client(transport=httpx.MockTransport(responder))
        clients.append(client)
        provider = provider_class(client=client, sleep=sleeps.append, **kwargs)
        return provider, responder

    yield _connect
    for client in clients:
        client.close()


class TestGoogleGeocoder:
    def test_coordinates(self, connect):
        body = {"status": "OK", "results": [{"geometry": {"location": {"lat": 39.78, "lng": -89.65}}}]}
        geocoder, responder = connect(GoogleGeocoder, httpx.Response(200, json=body), api_key="k")

        coords = geocoder.lookup_coordinates(ADDRESS)

        assert coords.latitude == Decimal("39.78")
        assert coords.longitude == Decimal("-89.65")
        params = responder.requests[0].url.params
        assert params["address"] == "123 Main St, Springfield, IL 62701, US"
        assert params["key"] == "k"

    def test_zero_results(self, connect):
        body = {"status": "ZERO_RESULTS", "results": []}
        geocoder, _ = connect(GoogleGeocoder, httpx.Response(200, json=body), api_key="k")

        with pytest.raises(GeocodingError) as exc_info:
            geocoder.lookup_coordinates(ADDRESS)
        assert exc_info.value.detail == "ZERO_RESULTS"
        assert exc_info.value.provider == "google"

    def test_error_message_preferred(self, connect):
        body = {"status": "REQUEST_DENIED", "error_message": "The provided API key is invalid."}
        geocoder, _ = connect(GoogleGeocoder, httpx.Response(200, json=body), api_key="k")

        with pytest.raises(GeocodingError, match="API key is invalid"):
            geocoder.lookup_coordinates(ADDRESS)

    def test_not_json(self, connect):
        geocoder, _ = connect(GoogleGeocoder, httpx.Response(200, text="<html>"), api_key="k")

        with pytest.raises(GeocodingError, match="response is not JSON"):
            geocoder.lookup_coordinates(ADDRESS)


class TestCensusGeocoder:
    def test_coordinates(self, connect):
        census, responder = connect(CensusGeocoder, httpx.Response(200, json=census_match()))

        coords = census.lookup_coordinates(ADDRESS)

        assert coords.latitude == Decimal("39.781721")
        assert coords.longitude == Decimal("-89.650148")
        request = responder.requests[0]
        assert request.url.path.endswith("/geographies/address")
        assert request.url.params["vintage"] == "Current_Current"

    def test_census_tract_for_year(self, connect):
        census, responder = connect(CensusGeocoder, httpx.Response(200, json=census_match()))

        assert census.census_tract(ADDRESS, 2010) == "171670001.00"
        assert responder.requests[0].url.params["vintage"] == "Census2010_Current"

    def test_unmatched_tract_is_none(self, connect):
        body = {"result": {"addressMatches": []}}
        census, _ = connect(CensusGeocoder, httpx.Response(200, json=body))

        assert census.census_tract(ADDRESS, 2020) is None

    def test_unmatched_coordinates_raise(self, connect):
        body = {"result": {"addressMatches": []}}
        census, _ = connect(CensusGeocoder, httpx.Response(200, json=body))

        with pytest.raises(GeocodingError, match="no match for 123 Main St"):
            census.lookup_coordinates(ADDRESS)

    def test_standardize(self, connect):
        census, _ = connect(CensusGeocoder, httpx.Response(200, json=census_match()))

        result = census.standardize(ADDRESS)

        assert result.address1 == "123 MAIN ST"
        assert result.city == "SPRINGFIELD"
        assert result.zip == "62701"
        assert result.latitude == Decimal("39.781721")
        assert result.addr_clean is True

    def test_only_us_addresses(self, connect):
        census, responder = connect(CensusGeocoder, httpx.Response(200, json=census_match()))

        with pytest.raises(StandardizationError, match="only US addresses"):
            census.standardize(AddressQuery(address1="1 Rue Principale", country="CA"))
        assert responder.requests == []

    def test_transport_error_uses_the_role_error(self, connect):
        census, _ = connect(CensusGeocoder, httpx.Response(400))

        with pytest.raises(GeocodingError, match="HTTP 400"):
            census.lookup_coordinates(ADDRESS)
        with pytest.raises(CensusLookupError, match="HTTP 400"):
            census.census_tract(ADDRESS, 2020)


class TestWashingtonDistrictProvider:
    def test_matched_district(self, connect):
        xml = '<response loccode="1726" code="0" rate="0.103" />'
        provider, responder = connect(WashingtonDistrictProvider, httpx.Response(200, text=xml))

        district = provider.district(
            AddressQuery(address1="400 Pine St", city="Seattle", state="WA", zip="98101")
        )

        assert district == "1726"
        assert responder.requests[0].url.params["addr"] == "400 Pine St"

    def test_unmatched_code(self, connect):
        xml = '<response loccode="" code="5" />'
        provider, _ = connect(WashingtonDistrictProvider, httpx.Response(200, text=xml))

        assert provider.district(ADDRESS) is None

    def test_not_xml(self, connect):
        provider, _ = connect(WashingtonDistrictProvider, httpx.Response(200, text="{oops"))

        with pytest.raises(TaxDistrictLookupError, match="response is not XML"):
            provider.district(ADDRESS)


class TestRetries:
    XML = '<response loccode="1726" code="0" />'

    def test_server_error_is_retried(self, connect, sleeps):
        provider, responder = connect(
            WashingtonDistrictProvider,
            httpx.Response(503),
            httpx.Response(200, text=self.XML),
        )

        assert provider.district(ADDRESS) == "1726"
        assert len(responder.requests) == 2
        assert sleeps == [1.0]

    def test_rate_limit_is_retried(self, connect, sleeps):
        provider, _ = connect(
            WashingtonDistrictProvider,
            httpx.Response(429),
            httpx.Response(200, text=self.XML),
        )

        assert provider.district(ADDRESS) == "1726"

    def test_retries_exhausted(self, connect, sleeps):
        provider, responder = connect(WashingtonDistrictProvider, httpx.Response(503))

        with pytest.raises(TaxDistrictLookupError, match="HTTP 503"):
            provider.district(ADDRESS)
        assert len(responder.requests) == 3
        assert sleeps == [1.0, 2.0]

    def test_client_error_is_not_retried(self, connect, sleeps):
        provider, responder = connect(WashingtonDistrictProvider, httpx.Response(404))

        with pytest.raises(TaxDistrictLookupError, match="HTTP 404"):
            provider.district(ADDRESS)
        assert len(responder.requests) == 1
        assert sleeps == []

    def test_connection_error(self, connect, sleeps):
        provider, _ = connect(
            WashingtonDistrictProvider,
            httpx.ConnectError("connection refused"),
            max_retries=1,
            backoff_seconds=0.25,
        )

        with pytest.raises(TaxDistrictLookupError, match="connection refused"):
            provider.district(ADDRESS)
        assert sleeps == [0.25]


def test_base_url_required():
    with pytest.raises(ValueError, match="base URL is not configured"):
        WashingtonDistrictProvider(base_url="")
