"""Distance helpers."""

import math

import pytest

from vicinity.services.geo import degrees_for_meters, format_distance, haversine_m


def test_haversine_zero_for_same_point():
    assert haversine_m(40.0, -73.0, 40.0, -73.0) == 0


def test_haversine_one_degree_of_latitude():
    d = haversine_m(0.0, 0.0, 1.0, 0.0)
    assert d == pytest.approx(111_195, rel=1e-3)


def test_haversine_is_symmetric():
    a = haversine_m(51.5, -0.12, 48.85, 2.35)
    b = haversine_m(48.85, 2.35, 51.5, -0.12)
    assert a == pytest.approx(b)
    assert a == pytest.approx(343_500, rel=1e-2)


def test_haversine_antipodal_does_not_fail():
    d = haversine_m(0.0, 0.0, 0.0, 180.0)
    assert d == pytest.approx(math.pi * 6_371_008.8, rel=1e-6)


@pytest.mark.parametrize(
    "meters, label",
    [(0, "0m"), (849.6, "850m"), (999.4, "999m"), (1000, "1.0km"), (1234, "1.2km"), (15_500, "15.5km")],
)
def test_format_distance(meters, label):
    assert format_distance(meters) == label


def test_degrees_for_meters_widens_with_latitude():
    dlat0, dlon0 = degrees_for_meters(1000, 0.0)
    dlat60, dlon60 = degrees_for_meters(1000, 60.0)
    assert dlat0 == pytest.approx(dlat60)
    assert dlon60 == pytest.approx(dlon0 * 2, rel=1e-3)


def test_degrees_for_meters_at_pole_is_unbounded():
    _, dlon = degrees_for_meters(1000, 90.0)
    assert math.isinf(dlon)
