"""Great-circle geometry helpers (Haversine, degree bounding boxes)."""

from __future__ import annotations

import math
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from quakecluster.pipeline.profiler import DistanceProfiler

EARTH_RADIUS_KM = 6371.0
KM_PER_DEGREE_LAT = 110.574

# cos(lat) floor so longitude buffers stay finite at the poles
_MIN_COS_LAT = 1e-6


def normalize_longitude(lon: float) -> float:
    """Wrap a longitude into [-180, 180]; in-range values are returned unchanged."""
    if -180.0 <= lon <= 180.0:
        return lon
    return (lon + 180.0) % 360.0 - 180.0


@dataclass(frozen=True)
class BoundingBox:
    """Degree-aligned rectangle."""

    north: float
    south: float
    east: float
    west: float

    def contains(self, lat: float, lon: float) -> bool:
        return self.south <= lat <= self.north and self.west <= lon <= self.east


def haversine_km(
    lat1: float,
    lon1: float,
    lat2: float,
    lon2: float,
    profiler: DistanceProfiler | None = None,
) -> float:
    """Great-circle distance between two points in km."""
    started = time.perf_counter() if profiler is not None else 0.0

    lat1_r, lat2_r = math.radians(lat1), math.radians(lat2)
    dlat, dlon = math.radians(lat2 - lat1), math.radians(lon2 - lon1)
    a = (
        math.sin(dlat / 2) ** 2
        + math.cos(lat1_r) * math.cos(lat2_r) * math.sin(dlon / 2) ** 2
    )
    # rounding can push `a` a hair outside [0, 1] for antipodal points
    a = min(1.0, max(0.0, a))
    distance = EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    if profiler is not None:
        profiler.track_distance(time.perf_counter() - started)
    return distance


def bounding_box(lat: float, lon: float, radius_km: float) -> BoundingBox:
    """Rectangle in degrees that encloses the circle of `radius_km` around a point.

    The box may extend past +/-180 longitude; callers that index raw
    longitudes wrap it themselves. A circle that reaches a pole gets the
    full longitude range.
    """
    angular = radius_km / EARTH_RADIUS_KM
    lat_buffer = max(radius_km / KM_PER_DEGREE_LAT, math.degrees(angular))
    north, south = lat + lat_buffer, lat - lat_buffer

    if north >= 90.0 or south <= -90.0 or angular >= math.pi / 2:
        lon_buffer = 180.0
    else:
        cos_lat = max(_MIN_COS_LAT, math.cos(math.radians(lat)))
        spread = math.sin(angular) / cos_lat
        if spread >= 1.0:
            lon_buffer = 180.0
        else:
            # the widest longitude of a small circle sits poleward of its centre
            lon_buffer = max(
                radius_km / (KM_PER_DEGREE_LAT * cos_lat),
                math.degrees(math.asin(spread)),
            )

    return BoundingBox(north=north, south=south, east=lon + lon_buffer, west=lon - lon_buffer)
