from unittest.mock import MagicMock

import pytest
import requests
from googlemaps import exceptions as gmaps_exceptions

from local_explorer.api.errors import ResolutionError
from local_explorer.api.geocoding import GoogleGeocoder, NominatimGeocoder, build_geocoder

from tests.conftest import FakeResponse, FakeSession


def nominatim(session):
    return NominatimGeocoder("https://geo.example/search", "tests", 2.0, session=session)


def test_nominatim_returns_first_match_as_floats():
    session = FakeSession([FakeResponse(200, [{"lat": "38.7077", "lon": "-9.1365"}])])

    assert nominatim(session).geocode("Lisbon") == (38.7077, -9.1365)

    method, url, kwargs = session.calls[0]
    assert method == "GET"
    assert kwargs["params"] == {"format": "json", "limit": 1, "q": "Lisbon"}
    assert kwargs["headers"]["User-Agent"] == "tests"


def test_nominatim_no_match_is_none():
    assert nominatim(FakeSession([FakeResponse(200, [])])).geocode("Atlantis") is None


def test_nominatim_http_error_raises_resolution_error():
    with pytest.raises(ResolutionError) as exc_info:
        nominatim(FakeSession([FakeResponse(503, None)])).geocode("Lisbon")

    assert exc_info.value.attempts == ["nominatim: HTTP 503"]


def test_nominatim_retries_transient_errors():
    session = FakeSession([
        requests.ConnectionError("reset"),
        FakeResponse(200, [{"lat": "1", "lon": "2"}]),
    ])

    assert nominatim(session).geocode("Lisbon") == (1.0, 2.0)
    assert len(session.calls) == 2


def test_nominatim_gives_up_after_three_attempts():
    session = FakeSession([requests.Timeout("slow")] * 3)

    with pytest.raises(ResolutionError):
        nominatim(session).geocode("Lisbon")

    assert len(session.calls) == 3


def test_nominatim_malformed_result():
    with pytest.raises(ResolutionError):
        nominatim(FakeSession([FakeResponse(200, [{"display_name": "x"}])])).geocode("x")


def test_google_geocoder_reads_geometry():
    client = MagicMock()
    client.geocode.return_value = [{"geometry": {"location": {"lat": 41.15, "lng": -8.61}}}]

    assert GoogleGeocoder("unused", 2.0, client=client).geocode("Porto") == (41.15, -8.61)
    client.geocode.assert_called_once_with("Porto", language="en")


def test_google_geocoder_no_results():
    client = MagicMock()
    client.geocode.return_value = []

    assert GoogleGeocoder("unused", 2.0, client=client).geocode("Atlantis") is None


def test_google_geocoder_transport_error():
    client = MagicMock()
    client.geocode.side_effect = gmaps_exceptions.TransportError("down")

    with pytest.raises(ResolutionError):
        GoogleGeocoder("unused", 2.0, client=client).geocode("Porto")


def test_build_geocoder_defaults_to_nominatim(monkeypatch):
    monkeypatch.delenv("GOOGLE_MAPS_API_KEY", raising=False)

    assert isinstance(build_geocoder(), NominatimGeocoder)
