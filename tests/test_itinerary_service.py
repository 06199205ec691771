import pytest

from local_explorer.api.cache import items_cache_key
from local_explorer.api.errors import NotFoundError, TransactionError, ValidationError
from local_explorer.api.models import Place
from local_explorer.api.services.itinerary_service import ItineraryGenerator, ItineraryService

from tests.conftest import item_key, make_place


@pytest.fixture
def itinerary(store):
    return store.create_itinerary("user-1", title="Lisbon", days_count=2)


@pytest.fixture
def places(store):
    coords = [
        (38.711, -9.136), (38.713, -9.139), (38.715, -9.133),
        (38.760, -9.100), (38.762, -9.104), (38.764, -9.099), (38.700, -9.200),
    ]
    return [
        make_place(store, f"Spot {i}", category="Museum", lat=lat, lon=lon)
        for i, (lat, lon) in enumerate(coords)
    ]


def assert_contiguous_orders(items, days_count):
    for day in range(days_count):
        orders = [item.order for item in items if item.day_index == day]
        assert orders == list(range(len(orders)))


def test_generate_persists_every_candidate_in_day_order(store, itinerary, places):
    generator = ItineraryGenerator(store, per_day_cap=6)

    items = generator.generate(itinerary.id, places, 2)

    assert len(items) == len(places)
    assert sorted(i.place_id for i in items) == sorted(p.id for p in places)
    assert [(i.day_index, i.order) for i in items] == sorted((i.day_index, i.order) for i in items)
    assert {i.day_index for i in items} == {0, 1}
    assert_contiguous_orders(items, 2)
    assert all(item.place is not None for item in items)


def test_generate_truncates_to_days_times_cap_in_input_order(store, itinerary, places):
    generator = ItineraryGenerator(store, per_day_cap=2)

    items = generator.generate(itinerary.id, places, 2)

    assert sorted(i.place_id for i in items) == sorted(p.id for p in places[:4])


def test_generate_is_repeatable(store, itinerary, places):
    generator = ItineraryGenerator(store, per_day_cap=6)

    first = [item_key(i) for i in generator.generate(itinerary.id, places, 2)]
    second = [item_key(i) for i in generator.generate(itinerary.id, places, 2)]

    assert first == second


def test_generate_replaces_previous_items(store, itinerary, places):
    old = store.add_item(itinerary, places[0].id, 1, note="lunch")
    generator = ItineraryGenerator(store, per_day_cap=6)

    items = generator.generate(itinerary.id, places[1:3], 2)

    assert old.id not in {i.id for i in items}
    assert len(store.list_items(itinerary.id)) == 2


@pytest.mark.parametrize("days", [0, 31, "3", 2.5])
def test_generate_rejects_bad_day_counts(store, itinerary, places, days):
    with pytest.raises(ValidationError):
        ItineraryGenerator(store).generate(itinerary.id, places, days)


def test_generate_requires_stored_places(store, itinerary):
    with pytest.raises(ValidationError):
        ItineraryGenerator(store).generate(itinerary.id, [Place(name="loose")], 1)


def test_generator_rejects_zero_cap(store):
    with pytest.raises(ValidationError):
        ItineraryGenerator(store, per_day_cap=0)


def test_failed_replace_surfaces_transaction_error(store, itinerary, places, monkeypatch):
    generator = ItineraryGenerator(store)
    generator.generate(itinerary.id, places[:3], 2)
    before = [item_key(i) for i in store.list_items(itinerary.id)]

    def broken_plan(itinerary_id, candidates, days_count):
        items = ItineraryGenerator.plan(generator, itinerary_id, candidates, days_count)
        items[-1].order = None  # violates NOT NULL on insert
        return items

    monkeypatch.setattr(generator, "plan", broken_plan)

    with pytest.raises(TransactionError):
        generator.generate(itinerary.id, places, 2)

    assert [item_key(i) for i in store.list_items(itinerary.id)] == before


@pytest.fixture
def service(store, memory_cache):
    return ItineraryService(store, ItineraryGenerator(store), memory_cache, 300)


def test_list_items_is_cached_until_a_write(service, store, itinerary, places, memory_cache):
    assert service.list_items("user-1", itinerary.id) == []

    # A write that bypasses the service is not visible through the cache
    store.add_item(itinerary, places[0].id, 0)
    assert service.list_items("user-1", itinerary.id) == []

    service.add_item("user-1", itinerary.id, places[1].id, 1, note="  ")
    items = service.list_items("user-1", itinerary.id)
    assert [(i["placeId"], i["dayIndex"], i["order"]) for i in items] == [
        (places[0].id, 0, 0),
        (places[1].id, 1, 0),
    ]
    assert items[1]["note"] is None

    service.delete_item("user-1", itinerary.id, items[0]["id"])
    assert memory_cache.get(items_cache_key("user-1", itinerary.id)) is None
    assert len(service.list_items("user-1", itinerary.id)) == 1


def test_items_of_another_user_are_not_found(service, itinerary):
    with pytest.raises(NotFoundError):
        service.list_items("someone-else", itinerary.id)


@pytest.mark.parametrize("place_id, day_index", [
    ("", 0), (None, 0), ("p", None), ("p", True), ("p", "x"), ("p", "1.5"), ("p", 0.5),
    ("p", float("inf")),
])
def test_add_item_validates_input(service, itinerary, place_id, day_index):
    with pytest.raises(ValidationError):
        service.add_item("user-1", itinerary.id, place_id, day_index)


def test_add_item_accepts_integral_day_strings(service, itinerary, places):
    first = service.add_item("user-1", itinerary.id, places[0].id, "1")
    second = service.add_item("user-1", itinerary.id, places[1].id, 1.0)

    assert (first.day_index, first.order) == (1, 0)
    assert (second.day_index, second.order) == (1, 1)


def test_add_item_rejects_day_outside_itinerary(service, itinerary, places):
    with pytest.raises(ValidationError):
        service.add_item("user-1", itinerary.id, places[0].id, 2)


def test_generate_for_user_uses_saved_places_newest_first(service, store, itinerary):
    for i in range(14):
        store.save_place("user-1", Place(name=f"Saved {i:02d}", provider="osm",
                                         provider_id=f"node/{i}", category="Park"))
    service.generator.per_day_cap = 3

    result = service.generate_for_user("user-1", itinerary.id)

    assert result["ok"] is True
    assert result["count"] == 6
    assert len(result["days"]) == 2
    picked = {item["place"]["name"] for item in result["items"]}
    assert picked == {f"Saved {i:02d}" for i in range(8, 14)}


def test_generate_for_user_invalidates_items_cache(service, store, itinerary, places):
    assert service.list_items("user-1", itinerary.id) == []
    store.save_place("user-1", places[0])

    service.generate_for_user("user-1", itinerary.id)

    assert len(service.list_items("user-1", itinerary.id)) == 1


@pytest.mark.parametrize("days", ["three", [3], float("inf"), float("nan")])
def test_create_itinerary_rejects_non_numeric_days(service, days):
    with pytest.raises(ValidationError):
        service.create_itinerary("user-2", days_count=days)


def test_create_itinerary_parses_and_clamps(service):
    itinerary = service.create_itinerary("user-2", title=None, days_count="45", start_date="2026-05-01")

    assert itinerary.title == "My Trip"
    assert itinerary.days_count == 30
    assert itinerary.start_date.isoformat() == "2026-05-01"


@pytest.mark.parametrize("kwargs", [{"days_count": "many"}, {"start_date": "May 1st"}])
def test_create_itinerary_rejects_bad_input(service, kwargs):
    with pytest.raises(ValidationError):
        service.create_itinerary("user-2", **kwargs)
