import random

from local_explorer.api.models import Place
from local_explorer.api.routing import order_within_day, squared_distance


def names(places):
    return [p.name for p in places]


def test_squared_distance():
    assert squared_distance(Place(name="a", lat=0, lon=0), Place(name="b", lat=3, lon=4)) == 25


def test_two_points_or_fewer_keep_input_order():
    day = [
        Place(name="far", lat=10.0, lon=10.0),
        Place(name="no coords"),
        Place(name="near", lat=0.0, lon=0.0),
    ]

    assert names(order_within_day(day)) == ["far", "near", "no coords"]


def test_empty_day():
    assert order_within_day([]) == []


def test_nearest_neighbour_walk_starts_at_first_point():
    day = [
        Place(name="A", lat=0.0, lon=0.0),
        Place(name="B", lat=0.0, lon=10.0),
        Place(name="C", lat=0.0, lon=1.0),
        Place(name="D", lat=0.0, lon=2.0),
    ]

    assert names(order_within_day(day)) == ["A", "C", "D", "B"]


def test_equal_distance_prefers_earlier_place():
    day = [
        Place(name="start", lat=0.0, lon=0.0),
        Place(name="east", lat=0.0, lon=1.0),
        Place(name="west", lat=0.0, lon=-1.0),
    ]

    assert names(order_within_day(day)) == ["start", "east", "west"]


def test_places_without_coordinates_trail_in_original_order():
    day = [
        Place(name="x1"),
        Place(name="A", lat=0.0, lon=0.0),
        Place(name="x2", lat=1.0),
        Place(name="B", lat=0.0, lon=5.0),
        Place(name="x3"),
        Place(name="C", lat=0.0, lon=1.0),
    ]

    assert names(order_within_day(day)) == ["A", "C", "B", "x1", "x2", "x3"]


def test_walk_is_a_permutation_visiting_each_point_once():
    rng = random.Random(7)
    day = [
        Place(name=f"P{i}", lat=rng.uniform(-1, 1), lon=rng.uniform(-1, 1))
        for i in range(12)
    ]
    day.insert(4, Place(name="loose"))

    ordered = order_within_day(day)

    assert sorted(names(ordered)) == sorted(names(day))
    assert len(set(names(ordered))) == len(day)
    assert ordered[0].name == "P0"
    assert ordered[-1].name == "loose"


def test_ordering_is_deterministic():
    rng = random.Random(3)
    day = [Place(name=f"P{i}", lat=rng.random(), lon=rng.random()) for i in range(8)]

    assert names(order_within_day(day)) == names(order_within_day(list(day)))
