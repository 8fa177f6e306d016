"""Unit tests for haversine distance, travel time and the H3 prefilter."""

import logging

import pytest

from slidebid.domain.distance import distance, haversine_km, travel_time
from slidebid.domain.spatial import cells_within, pickup_cell, ring_size


class TestDistance:
    def test_same_point_is_zero(self):
        assert distance(13.7563, 100.5018, 13.7563, 100.5018) == 0

    def test_bangkok_short_hop(self):
        # Democracy Monument -> Siam Paragon
        assert distance(13.7563, 100.5018, 13.7469, 100.5349) == pytest.approx(3.72, abs=0.05)

    def test_rounded_to_two_decimals(self):
        d = distance(13.7563, 100.5018, 13.6900, 100.7501)
        assert d == round(d, 2)

    def test_symmetric(self):
        a = distance(13.7563, 100.5018, 13.6900, 100.7501)
        b = distance(13.6900, 100.7501, 13.7563, 100.5018)
        assert a == b

    def test_missing_coordinate_returns_zero(self, caplog):
        with caplog.at_level(logging.WARNING):
            assert distance(None, 100.5018, 13.7469, 100.5349) == 0
        assert "Missing coordinates" in caplog.text

    def test_non_numeric_returns_zero(self):
        assert distance("abc", 100.5018, 13.7469, 100.5349) == 0

    def test_numeric_strings_accepted(self):
        assert distance("13.7563", "100.5018", "13.7469", "100.5349") == distance(
            13.7563, 100.5018, 13.7469, 100.5349
        )

    def test_one_degree_latitude(self):
        assert haversine_km(0, 0, 1, 0) == pytest.approx(111.19, abs=0.01)


class TestTravelTime:
    def test_thirty_kmh_default(self):
        assert travel_time(10) == 20

    def test_rounds_to_nearest_minute(self):
        assert travel_time(12.4) == 25  # 24.8 min

    def test_custom_speed(self):
        assert travel_time(60, avg_speed_kmh=60) == 60

    def test_unknown_distance_is_zero(self):
        assert travel_time(0) == 0
        assert travel_time(-3) == 0


class TestSpatialPrefilter:
    def test_pickup_cell_is_stable(self):
        assert pickup_cell(13.7563, 100.5018) == pickup_cell(13.7563, 100.5018)

    def test_ring_grows_with_radius(self):
        assert ring_size(20) > ring_size(2)

    def test_disk_covers_nearby_pickup(self):
        cells = cells_within(13.7563, 100.5018, radius_km=5)
        assert pickup_cell(13.7469, 100.5349) in cells

    def test_disk_excludes_far_pickup(self):
        cells = cells_within(13.7563, 100.5018, radius_km=5)
        # Chiang Mai
        assert pickup_cell(18.7883, 98.9853) not in cells

    def test_huge_radius_skips_prefilter(self):
        assert cells_within(13.7563, 100.5018, radius_km=5000, max_ring=40) is None
