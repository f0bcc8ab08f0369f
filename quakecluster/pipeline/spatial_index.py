"""
Uniform grid index over event coordinates.

Points are bucketed into square cells (in degrees) sized from the clustering
radius. A radius query visits only the cells overlapping the query's
bounding box and then filters those candidates by exact Haversine distance,
so it returns exactly what a full scan would while touching only nearby
points.

Known boundary condition: the grid bounds are fixed at build time (data
extent plus a margin) and a point outside them is dropped on insert instead
of growing the grid. `build()` derives the bounds from the same points it
inserts, so this only matters for callers that insert later.
"""

from __future__ import annotations

import math
from collections import defaultdict
from collections.abc import Iterator, Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import structlog

from quakecluster.pipeline.geo import KM_PER_DEGREE_LAT, BoundingBox, bounding_box, haversine_km

if TYPE_CHECKING:
    from quakecluster.pipeline.events import Event
    from quakecluster.pipeline.profiler import DistanceProfiler

logger = structlog.get_logger(__name__)

MIN_CELL_SIZE_DEG = 0.1
MIN_MARGIN_DEG = 0.1
MARGIN_FRACTION = 0.1
MAX_DENSITY_FACTOR = 2.0
DENSITY_REFERENCE_POINTS = 1000

Cell = tuple[int, int]


@dataclass(frozen=True)
class Neighbor:
    """An indexed event and its distance from the query centre."""

    event: Event
    distance_km: float


@dataclass
class IndexStats:
    insertions: int = 0
    dropped_out_of_bounds: int = 0
    queries: int = 0
    distance_calculations: int = 0
    distance_calculations_saved: int = 0


def optimal_cell_size(point_count: int, radius_km: float) -> float:
    """Cell edge in degrees: about one clustering radius, widened as density grows."""
    if point_count <= 0:
        return 1.0
    base = radius_km / KM_PER_DEGREE_LAT
    density_factor = min(MAX_DENSITY_FACTOR, point_count / DENSITY_REFERENCE_POINTS)
    return max(MIN_CELL_SIZE_DEG, base * (1 + density_factor))


def extent_with_margin(events: Sequence[Event]) -> BoundingBox:
    """Bounding box of `events` padded by 10% of each span (at least 0.1 deg)."""
    lats = [e.latitude for e in events]
    lons = [e.longitude for e in events]
    min_lat, max_lat = min(lats), max(lats)
    min_lon, max_lon = min(lons), max(lons)
    lat_margin = max(MIN_MARGIN_DEG, (max_lat - min_lat) * MARGIN_FRACTION)
    lon_margin = max(MIN_MARGIN_DEG, (max_lon - min_lon) * MARGIN_FRACTION)
    return BoundingBox(
        north=max_lat + lat_margin,
        south=min_lat - lat_margin,
        east=max_lon + lon_margin,
        west=min_lon - lon_margin,
    )


@dataclass
class SpatialIndex:
    """Grid of (row, col) cells holding events."""

    bounds: BoundingBox
    cell_size: float
    cells: dict[Cell, list[Event]] = field(default_factory=lambda: defaultdict(list))
    stats: IndexStats = field(default_factory=IndexStats)
    size: int = 0

    def __post_init__(self) -> None:
        if not self.cell_size > 0 or not math.isfinite(self.cell_size):
            raise ValueError(f"cell_size must be a positive finite number, got {self.cell_size!r}")
        self._max_row = math.floor((self.bounds.north - self.bounds.south) / self.cell_size)
        self._max_col = math.floor((self.bounds.east - self.bounds.west) / self.cell_size)

    @classmethod
    def build(
        cls, events: Sequence[Event], clustering_radius_km: float
    ) -> SpatialIndex | None:
        """Index `events` on a grid sized for `clustering_radius_km`. None if empty."""
        if not events:
            return None
        index = cls(
            bounds=extent_with_margin(events),
            cell_size=optimal_cell_size(len(events), clustering_radius_km),
        )
        for event in events:
            index.insert(event)
        logger.debug(
            "spatial_index_built",
            events=index.size,
            cells=len(index.cells),
            cell_size_deg=round(index.cell_size, 4),
        )
        return index

    def cell_of(self, lat: float, lon: float) -> Cell:
        row = math.floor((lat - self.bounds.south) / self.cell_size)
        col = math.floor((lon - self.bounds.west) / self.cell_size)
        return row, col

    def insert(self, event: Event) -> bool:
        """Add an event to its cell. Returns False if it lies outside the grid."""
        if not self.bounds.contains(event.latitude, event.longitude):
            self.stats.dropped_out_of_bounds += 1
            logger.debug("spatial_index_point_dropped", event_id=event.id)
            return False
        self.cells[self.cell_of(event.latitude, event.longitude)].append(event)
        self.size += 1
        self.stats.insertions += 1
        return True

    def _row_range(self, box: BoundingBox) -> range:
        start = max(0, math.floor((box.south - self.bounds.south) / self.cell_size))
        end = min(self._max_row, math.floor((box.north - self.bounds.south) / self.cell_size))
        return range(start, end + 1)

    def _col_range(self, west: float, east: float) -> range:
        start = max(0, math.floor((west - self.bounds.west) / self.cell_size))
        end = min(self._max_col, math.floor((east - self.bounds.west) / self.cell_size))
        return range(start, end + 1)

    def _lon_spans(self, box: BoundingBox) -> list[tuple[float, float]]:
        if box.east - box.west >= 360.0:
            return [(self.bounds.west, self.bounds.east)]
        spans = [(box.west, box.east)]
        # wrap the part of the box that crosses the antimeridian
        if box.west < -180.0:
            spans.append((box.west + 360.0, box.east + 360.0))
        if box.east > 180.0:
            spans.append((box.west - 360.0, box.east - 360.0))
        return spans

    def candidate_cells(self, box: BoundingBox) -> Iterator[Cell]:
        visited: set[Cell] = set()
        rows = self._row_range(box)
        for west, east in self._lon_spans(box):
            for row in rows:
                for col in self._col_range(west, east):
                    cell = (row, col)
                    if cell not in visited:
                        visited.add(cell)
                        yield cell

    def candidates(self, box: BoundingBox) -> list[Event]:
        found: list[Event] = []
        for cell in self.candidate_cells(box):
            found.extend(self.cells.get(cell, ()))
        return found

    def query(
        self,
        center_lat: float,
        center_lon: float,
        radius_km: float,
        profiler: DistanceProfiler | None = None,
    ) -> list[Neighbor]:
        """All indexed events within `radius_km` of the centre, with distances."""
        self.stats.queries += 1
        candidates = self.candidates(bounding_box(center_lat, center_lon, radius_km))

        results: list[Neighbor] = []
        for event in candidates:
            distance = haversine_km(
                center_lat, center_lon, event.latitude, event.longitude, profiler
            )
            if distance <= radius_km:
                results.append(Neighbor(event=event, distance_km=distance))

        self.stats.distance_calculations += len(candidates)
        self.stats.distance_calculations_saved += self.size - len(candidates)
        return results

    def summary(self) -> dict[str, Any]:
        return {
            "events": self.size,
            "cells": len(self.cells),
            "avg_events_per_cell": round(self.size / (len(self.cells) or 1), 3),
            "cell_size_deg": self.cell_size,
            "insertions": self.stats.insertions,
            "dropped_out_of_bounds": self.stats.dropped_out_of_bounds,
            "queries": self.stats.queries,
            "distance_calculations": self.stats.distance_calculations,
            "distance_calculations_saved": self.stats.distance_calculations_saved,
        }
