import math

import pytest

from GeoDispatch.utils.geo_utils import haversine_distance, is_valid_coordinate


@pytest.mark.parametrize(
    "a, b",
    [
        ((0.0, 0.0), (10.0, 10.0)),
        ((51.5074, -0.1278), (40.7128, -74.0060)),
        ((-33.8688, 151.2093), (35.6762, 139.6503)),
        ((89.9, 179.9), (-89.9, -179.9)),
    ],
)
def test_distance_is_symmetric(a, b):
    assert haversine_distance(*a, *b) == pytest.approx(haversine_distance(*b, *a))


def test_distance_to_self_is_zero():
    assert haversine_distance(25.0478, 121.5170, 25.0478, 121.5170) == pytest.approx(0.0, abs=1e-9)


def test_distance_known_value_in_km():
    assert haversine_distance(0.0, 0.0, 10.0, 10.0) == pytest.approx(1568.5, abs=1.0)
    # One degree of longitude on the equator
    assert haversine_distance(0.0, 0.0, 0.0, 1.0) == pytest.approx(111.19, abs=0.01)


def test_antipodal_points_do_not_raise():
    assert haversine_distance(0.0, 0.0, 0.0, 180.0) == pytest.approx(math.pi * 6371.0, rel=1e-9)


@pytest.mark.parametrize("bad", [math.nan, math.inf, -math.inf])
def test_non_finite_input_gives_nan(bad):
    assert math.isnan(haversine_distance(bad, 0.0, 0.0, 0.0))
    assert math.isnan(haversine_distance(0.0, 0.0, 0.0, bad))


def test_is_valid_coordinate():
    assert is_valid_coordinate(90.0, -180.0)
    assert not is_valid_coordinate(90.1, 0.0)
    assert not is_valid_coordinate(0.0, 180.5)
    assert not is_valid_coordinate(math.nan, 0.0)
