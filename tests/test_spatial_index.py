"""
Tests for the grid spatial index.

Covers:
- Cell sizing and bounds margin
- Out-of-bounds inserts are dropped and counted
- Radius queries match a brute-force scan (incl. antimeridian)
- Stats / summary
"""

from __future__ import annotations

import random

import pytest
from factories import make_event

from quakecluster.pipeline.geo import BoundingBox, haversine_km
from quakecluster.pipeline.spatial_index import (
    MIN_CELL_SIZE_DEG,
    SpatialIndex,
    extent_with_margin,
    optimal_cell_size,
)


def _brute_force(events, lat, lon, radius_km) -> set[str]:
    return {
        e.id for e in events
        if haversine_km(lat, lon, e.latitude, e.longitude) <= radius_km
    }


class TestSizing:
    def test_cell_size_grows_with_density(self) -> None:
        sparse = optimal_cell_size(10, 100.0)
        dense = optimal_cell_size(5000, 100.0)
        assert dense > sparse
        # density factor is capped at 2 → at most 3x the base size
        assert dense == pytest.approx(100.0 / 110.574 * 3)

    def test_cell_size_floor(self) -> None:
        assert optimal_cell_size(5, 0.5) == MIN_CELL_SIZE_DEG

    def test_cell_size_for_empty_input(self) -> None:
        assert optimal_cell_size(0, 100.0) == 1.0

    def test_margin_is_ten_percent_of_span(self) -> None:
        events = [make_event("a", 0.0, 0.0), make_event("b", 10.0, 20.0)]
        box = extent_with_margin(events)
        assert box.south == pytest.approx(-1.0)
        assert box.north == pytest.approx(11.0)
        assert box.west == pytest.approx(-2.0)
        assert box.east == pytest.approx(22.0)

    def test_margin_floor_for_single_point(self) -> None:
        box = extent_with_margin([make_event("a", 5.0, 5.0)])
        assert box.north - box.south == pytest.approx(0.2)
        assert box.east - box.west == pytest.approx(0.2)

    def test_invalid_cell_size_rejected(self) -> None:
        with pytest.raises(ValueError):
            SpatialIndex(bounds=BoundingBox(1.0, 0.0, 1.0, 0.0), cell_size=0.0)


class TestBuildAndInsert:
    def test_build_empty_returns_none(self) -> None:
        assert SpatialIndex.build([], 100.0) is None

    def test_build_indexes_every_event(self) -> None:
        events = [make_event(f"e{i}", i * 0.5, i * 0.5) for i in range(20)]
        index = SpatialIndex.build(events, 50.0)
        assert index is not None
        assert index.size == 20
        assert index.stats.dropped_out_of_bounds == 0
        assert sum(len(v) for v in index.cells.values()) == 20

    def test_out_of_bounds_insert_is_dropped(self) -> None:
        index = SpatialIndex.build([make_event("a", 0.0, 0.0), make_event("b", 1.0, 1.0)], 50.0)
        assert index is not None
        assert index.insert(make_event("far", 40.0, 40.0)) is False
        assert index.size == 2
        assert index.stats.dropped_out_of_bounds == 1

    def test_cell_of(self) -> None:
        index = SpatialIndex(bounds=BoundingBox(north=10.0, south=0.0, east=10.0, west=0.0), cell_size=1.0)
        assert index.cell_of(0.5, 0.5) == (0, 0)
        assert index.cell_of(3.2, 7.9) == (3, 7)


class TestQuery:
    def test_query_matches_brute_force(self) -> None:
        rng = random.Random(7)
        events = [
            make_event(f"e{i}", rng.uniform(30.0, 40.0), rng.uniform(-125.0, -115.0))
            for i in range(300)
        ]
        index = SpatialIndex.build(events, 75.0)
        assert index is not None
        for center in events[:40]:
            found = {n.event.id for n in index.query(center.latitude, center.longitude, 75.0)}
            assert found == _brute_force(events, center.latitude, center.longitude, 75.0)

    def test_query_returns_distances(self) -> None:
        events = [make_event("a", 0.0, 0.0), make_event("b", 0.0, 0.5)]
        index = SpatialIndex.build(events, 100.0)
        assert index is not None
        neighbours = {n.event.id: n.distance_km for n in index.query(0.0, 0.0, 100.0)}
        assert neighbours["a"] == 0.0
        assert neighbours["b"] == pytest.approx(55.6, abs=0.1)

    def test_query_across_antimeridian(self) -> None:
        events = [
            make_event("east", 0.0, 179.8),
            make_event("west", 0.0, -179.8),
            make_event("mid", 0.0, 0.0),
        ]
        index = SpatialIndex.build(events, 100.0)
        assert index is not None
        found = {n.event.id for n in index.query(0.0, 179.8, 100.0)}
        assert found == {"east", "west"}

    def test_query_near_pole(self) -> None:
        events = [make_event("p1", 89.5, 0.0), make_event("p2", 89.5, 180.0), make_event("x", 80.0, 0.0)]
        index = SpatialIndex.build(events, 150.0)
        assert index is not None
        found = {n.event.id for n in index.query(89.5, 0.0, 150.0)}
        assert found == _brute_force(events, 89.5, 0.0, 150.0) == {"p1", "p2"}

    def test_stats_and_summary(self) -> None:
        events = [make_event(f"e{i}", i * 2.0, 0.0) for i in range(10)]
        index = SpatialIndex.build(events, 50.0)
        assert index is not None
        index.query(0.0, 0.0, 50.0)
        summary = index.summary()
        assert summary["events"] == 10
        assert summary["queries"] == 1
        assert summary["distance_calculations"] + summary["distance_calculations_saved"] == 10
        assert summary["distance_calculations_saved"] > 0
