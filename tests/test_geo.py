import math
import random

import pytest

from event_detection.core import geo
from event_detection.models import Coordinate


def test_distance_of_one_degree_along_equator():
    assert geo.distance_meters(0, 0, 0, 1) == pytest.approx(111_195, abs=1)


def test_distance_to_self_is_zero():
    assert geo.distance_meters(36.1316, -115.1536, 36.1316, -115.1536) == 0.0


@pytest.mark.parametrize("seed", range(5))
def test_distance_is_symmetric_and_non_negative(seed):
    rng = random.Random(seed)
    for _ in range(50):
        a = (rng.uniform(-89, 89), rng.uniform(-179, 179))
        b = (rng.uniform(-89, 89), rng.uniform(-179, 179))
        forward = geo.distance_meters(*a, *b)
        backward = geo.distance_meters(*b, *a)
        assert forward >= 0
        assert forward == pytest.approx(backward)


def test_distance_propagates_nan():
    assert math.isnan(geo.distance_meters(float("nan"), 0, 0, 0))


def test_round_coordinate_half_up():
    assert geo.round_coordinate(36.1316) == 36.132
    assert geo.round_coordinate(36.13161) == 36.132
    assert geo.round_coordinate(-115.1536) == -115.154


def test_round_coordinate_non_finite_is_nan():
    assert math.isnan(geo.round_coordinate(float("inf")))
    assert math.isnan(geo.round_coordinate(float("nan")))


def test_grid_key_merges_nearby_points():
    assert geo.grid_key(36.1316, -115.1536) == geo.grid_key(36.13161, -115.15361)


@pytest.mark.parametrize(
    "lat, lng, expected",
    [
        (36.1, -115.1, True),
        (90, 180, True),
        (91, 0, False),
        (0, -181, False),
        ("36.1", -115.1, False),
        (None, 0, False),
        (True, 0, False),
        (float("nan"), 0, False),
        (0, float("inf"), False),
    ],
)
def test_is_valid_coordinate(lat, lng, expected):
    assert geo.is_valid_coordinate(lat, lng) is expected


def test_centroid():
    assert geo.centroid([]) is None
    center = geo.centroid([Coordinate(0, 0), Coordinate(2, 4)])
    assert center == Coordinate(1, 2)


def test_pairwise_and_max_distance():
    points = [Coordinate(0, 0), Coordinate(0, 0.001), Coordinate(0, 0.002)]
    distances = geo.pairwise_distances(points)
    assert len(distances) == 3
    assert max(distances) == pytest.approx(222.4, abs=0.5)
    assert geo.max_distance_from(points[0], points) == pytest.approx(222.4, abs=0.5)
    assert geo.max_distance_from(points[0], []) == 0.0


def test_group_by_proximity_seeds_in_order_and_drops_small_groups():
    points = [Coordinate(0, 0), Coordinate(0, 0.001), Coordinate(10, 10), Coordinate(0, 0.0015)]

    groups = geo.group_by_proximity(points, lambda p: p, threshold_meters=150)

    # the last point is 167m from the first seed and too lonely to seed its own group
    assert groups == [[points[0], points[1]]]


def test_group_by_proximity_min_size_one_keeps_singletons():
    points = [Coordinate(0, 0), Coordinate(10, 10)]
    groups = geo.group_by_proximity(points, lambda p: p, threshold_meters=100, min_size=1)
    assert groups == [[points[0]], [points[1]]]
