"""Distance, walking-time and map-link helpers."""
import sys, os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import pytest

from utils.geo import (
    build_directions_link,
    build_maps_search_link,
    centroid,
    estimate_walking_minutes,
    haversine_m,
)
from utils.time_utils import round_up_to_10, to_clock, to_minutes

TOKYO_STATION = (35.6812, 139.7671)
SHIBUYA_STATION = (35.6580, 139.7016)


def test_tokyo_to_shibuya_distance():
    d = haversine_m(*TOKYO_STATION, *SHIBUYA_STATION)
    assert 6300 <= d <= 6600, f"Expected ~6.4 km, got {d:.0f} m"


def test_distance_is_symmetric_and_zero_for_same_point():
    there = haversine_m(*TOKYO_STATION, *SHIBUYA_STATION)
    back = haversine_m(*SHIBUYA_STATION, *TOKYO_STATION)
    assert there == pytest.approx(back)
    assert haversine_m(*TOKYO_STATION, *TOKYO_STATION) == 0


def test_walking_minutes():
    assert estimate_walking_minutes(1000) == 12
    assert estimate_walking_minutes(0) == 1, "Walking time never drops below one minute"
    assert estimate_walking_minutes(1800) == 22


def test_directions_link_requires_both_points():
    assert build_directions_link(None, SHIBUYA_STATION) is None
    assert build_directions_link(TOKYO_STATION, (None, None)) is None

    url = build_directions_link(TOKYO_STATION, SHIBUYA_STATION)
    assert url.startswith("https://www.google.com/maps/dir/?api=1")
    assert "travelmode=transit" in url
    assert "35.6812%2C139.7671" in url


def test_maps_search_link_encodes_query():
    url = build_maps_search_link("浅草寺 浅草")
    assert url.startswith("https://www.google.com/maps/search/?api=1&query=")
    assert " " not in url


def test_centroid():
    assert centroid([]) is None
    assert centroid([(35.0, 139.0), (36.0, 140.0)]) == (35.5, 139.5)
    assert centroid([(35.0, 139.0), (None, None)]) == (35.0, 139.0)


def test_clock_helpers():
    assert to_minutes("09:05") == 545
    assert to_minutes("19：30") == 1170, "Full-width colon is accepted"
    assert to_minutes("noon") is None
    assert to_minutes(None) is None
    assert to_clock(545) == "09:05"
    assert to_clock(24 * 60 + 10) == "23:59", "Times past midnight stay on the same day"
    assert to_clock(-5) == "00:00"
    assert round_up_to_10(721) == 730
    assert round_up_to_10(720) == 720
