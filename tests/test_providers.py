import asyncio

import httpx
import pytest

from geopricing.errors import ConfigurationError, DistanceMatrixError, GeocodingFailure
from geopricing.models.domain import DriveTimeOptions, Location
from geopricing.services.geocoding import GoogleGeocodingClient
from geopricing.services.routing.distance_matrix import (
    GoogleDistanceMatrixClient,
    OSRMDistanceMatrixClient,
    check_health,
    format_distance,
    format_duration,
)

ORIGIN = Location(lat=43.6532, lng=-79.3832)
DESTINATIONS = [Location(lat=43.6629, lng=-79.3957), Location(lat=43.8561, lng=-79.3370)]


def _http(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def test_google_matrix_parses_elements_and_marks_unroutable():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen.update(request.url.params)
        return httpx.Response(
            200,
            json={
                "status": "OK",
                "rows": [
                    {
                        "elements": [
                            {
                                "status": "OK",
                                "duration": {"value": 400, "text": "7 mins"},
                                "duration_in_traffic": {"value": 480, "text": "8 mins"},
                                "distance": {"value": 2500, "text": "2.5 km"},
                            },
                            {"status": "ZERO_RESULTS"},
                        ]
                    }
                ],
            },
        )

    client = GoogleDistanceMatrixClient(api_key="test-key", client=_http(handler))
    options = DriveTimeOptions(traffic_model="pessimistic", avoid_tolls=True)

    elements = asyncio.run(client.matrix(ORIGIN, DESTINATIONS, options))

    assert elements[0].duration_seconds == 480.0
    assert elements[0].duration_text == "8 mins"
    assert elements[1] is None
    assert seen["traffic_model"] == "pessimistic"
    assert seen["avoid"] == "tolls"
    assert seen["key"] == "test-key"


def test_google_matrix_bad_status_raises():
    client = GoogleDistanceMatrixClient(
        api_key="k", client=_http(lambda request: httpx.Response(200, json={"status": "REQUEST_DENIED"}))
    )

    with pytest.raises(DistanceMatrixError):
        asyncio.run(client.matrix(ORIGIN, DESTINATIONS, DriveTimeOptions()))


def test_google_matrix_requires_api_key(monkeypatch):
    from geopricing.services.routing import distance_matrix

    monkeypatch.setattr(distance_matrix.settings, "google_maps_api_key", None)

    with pytest.raises(ConfigurationError):
        GoogleDistanceMatrixClient()


def test_server_errors_are_retried_then_raised():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(503)

    client = GoogleDistanceMatrixClient(api_key="k", client=_http(handler), max_retries=2, backoff_seconds=0)

    with pytest.raises(DistanceMatrixError):
        asyncio.run(client.matrix(ORIGIN, DESTINATIONS, DriveTimeOptions()))
    assert len(calls) == 3


def test_client_errors_are_not_retried():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(403)

    client = GoogleDistanceMatrixClient(api_key="k", client=_http(handler), max_retries=2, backoff_seconds=0)

    with pytest.raises(DistanceMatrixError):
        asyncio.run(client.matrix(ORIGIN, DESTINATIONS, DriveTimeOptions()))
    assert len(calls) == 1


def test_osrm_table_uses_origin_as_source():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["params"] = dict(request.url.params)
        return httpx.Response(
            200,
            json={"code": "Ok", "durations": [[420.0, None]], "distances": [[2500.0, None]]},
        )

    client = OSRMDistanceMatrixClient(base_url="http://osrm.test", profile="driving", client=_http(handler))

    elements = asyncio.run(client.matrix(ORIGIN, DESTINATIONS, DriveTimeOptions()))

    assert seen["path"].startswith("/table/v1/driving/-79.3832,43.6532;")
    assert seen["params"]["sources"] == "0"
    assert seen["params"]["destinations"] == "1;2"
    assert elements[0].duration_text == "7 mins"
    assert elements[0].distance_text == "2.5 km"
    assert elements[1] is None


def test_check_health_reports_provider_failure():
    client = GoogleDistanceMatrixClient(
        api_key="k", client=_http(lambda request: httpx.Response(200, json={"status": "OVER_QUERY_LIMIT"}))
    )

    assert asyncio.run(check_health(client)) is False


def test_format_helpers():
    assert format_duration(60) == "1 min"
    assert format_duration(3600) == "1 hour"
    assert format_duration(5400) == "1 hour 30 mins"
    assert format_distance(850) == "850 m"
    assert format_distance(12345) == "12.3 km"


def test_geocoder_extracts_components():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.params["region"] == "ca"
        return httpx.Response(
            200,
            json={
                "status": "OK",
                "results": [
                    {
                        "formatted_address": "27 King's College Cir, Toronto, ON M5S 1A1, Canada",
                        "geometry": {"location": {"lat": 43.6629, "lng": -79.3957}},
                        "address_components": [
                            {"long_name": "Toronto", "types": ["locality", "political"]},
                            {"long_name": "Ontario", "types": ["administrative_area_level_1", "political"]},
                            {"long_name": "M5S 1A1", "types": ["postal_code"]},
                        ],
                    }
                ],
            },
        )

    geocoder = GoogleGeocodingClient(api_key="k", region="ca", client=_http(handler))

    location = asyncio.run(geocoder.geocode("27 King's College Circle"))

    assert location.lat == 43.6629
    assert location.city == "Toronto"
    assert location.region == "Ontario"
    assert location.postal_code == "M5S 1A1"


@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(200, json={"status": "ZERO_RESULTS", "results": []}),
        httpx.Response(200, json={"status": "OK", "results": [{"formatted_address": "x"}]}),
        httpx.Response(200, json={"status": "OK", "results": [{"geometry": {"location": {"lat": "n/a"}}}]}),
        httpx.Response(500),
    ],
)
def test_geocoder_failures_raise_geocoding_failure(response):
    geocoder = GoogleGeocodingClient(api_key="k", client=_http(lambda request: response))

    with pytest.raises(GeocodingFailure):
        asyncio.run(geocoder.geocode("nowhere"))


def test_geocoder_rejects_blank_address():
    geocoder = GoogleGeocodingClient(api_key="k", client=_http(lambda request: httpx.Response(200)))

    with pytest.raises(GeocodingFailure):
        asyncio.run(geocoder.geocode("   "))
