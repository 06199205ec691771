"""Shared fixtures and fakes for the test suite."""

import pytest
import requests

from local_explorer.api.cache import MemoryCacheBackend, QueryCache
from local_explorer.api.db import Store
from local_explorer.api.geocoding import Geocoder
from local_explorer.api.models import Place
from local_explorer.api.poi import AttemptFailure, PoiProvider
from local_explorer.api.services.container import Services
from local_explorer.api.services.itinerary_service import ItineraryGenerator, ItineraryService
from local_explorer.api.services.place_resolver import PlaceResolver, PlaceSearchService


class FakeClock:
    def __init__(self, now=1_000_000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class FakeGeocoder(Geocoder):
    name = "fake-geocoder"

    def __init__(self, result=(38.7223, -9.1393)):
        self.result = result
        self.calls = []

    def geocode(self, query):
        self.calls.append(query)
        return self.result


class FakeProvider(PoiProvider):
    """Returns a canned outcome per radius; unknown radii fail with HTTP 503."""

    def __init__(self, name, outcomes=None, log=None):
        self.name = name
        self.outcomes = outcomes or {}
        self.calls = []
        self.log = log if log is not None else []

    def search(self, lat, lon, radius, limit, timeout):
        self.calls.append(radius)
        self.log.append((self.name, radius))
        outcome = self.outcomes.get(radius, AttemptFailure("HTTP 503"))
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class FakeResponse:
    def __init__(self, status_code=200, json_data=None, headers=None, text=""):
        self.status_code = status_code
        self._json = json_data
        self.headers = headers if headers is not None else {"Content-Type": "application/json"}
        self.text = text

    @property
    def ok(self):
        return 200 <= self.status_code < 400

    def json(self):
        if self._json is None:
            raise ValueError("No JSON object could be decoded")
        return self._json


class FakeSession:
    """Stands in for requests.Session; each call pops the next outcome."""

    def __init__(self, outcomes):
        self.outcomes = list(outcomes)
        self.calls = []

    def _next(self, method, url, **kwargs):
        self.calls.append((method, url, kwargs))
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    def get(self, url, **kwargs):
        return self._next("GET", url, **kwargs)

    def post(self, url, **kwargs):
        return self._next("POST", url, **kwargs)


def osm_element(i, lat=None, lon=None, **tags):
    element = {"type": "node", "id": i, "tags": {"name": f"Spot {i}", **tags}}
    if lat is not None:
        element["lat"] = lat
    if lon is not None:
        element["lon"] = lon
    return element


def make_place(store, name, category=None, lat=None, lon=None):
    return store.upsert_place(Place(
        name=name,
        provider="osm",
        provider_id=f"node/{name}",
        category=category,
        lat=lat,
        lon=lon,
    ))


def item_key(item):
    return (item.day_index, item.order, item.place_id)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    store = Store(database_url="sqlite://")
    store.create_all()
    yield store
    store.close()


@pytest.fixture
def memory_cache(clock):
    return QueryCache([MemoryCacheBackend(clock=clock)])


@pytest.fixture
def geocoder():
    return FakeGeocoder()


@pytest.fixture
def provider():
    return FakeProvider("primary", {
        5000: [
            osm_element(1, 38.71, -9.14, tourism="museum"),
            osm_element(2, 38.72, -9.13, leisure="park"),
            {"type": "way", "id": 3, "tags": {"tourism": "attraction"}},
        ],
    })


@pytest.fixture
def services(store, memory_cache, geocoder, provider):
    resolver = PlaceResolver(geocoder, [provider], radii=[5000, 1000], timeout=1.0)
    return Services(
        store=store,
        cache=memory_cache,
        places=PlaceSearchService(resolver, memory_cache, ttl_seconds=3600),
        itineraries=ItineraryService(
            store, ItineraryGenerator(store, per_day_cap=6), memory_cache, 300
        ),
    )


@pytest.fixture
def client(services):
    from main import create_app

    app = create_app(services)
    app.testing = True
    return app.test_client()


@pytest.fixture
def timeout_error():
    return requests.Timeout("read timed out")
