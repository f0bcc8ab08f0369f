"""
Feature and event builders shared by the test modules.
"""

from __future__ import annotations

from typing import Any

from quakecluster.pipeline.events import Event

BASE_TIME_MS = 1_718_000_000_000
HOUR_MS = 3_600_000


def make_feature(
    event_id: str | None,
    lat: float,
    lon: float,
    mag: float | None = 3.0,
    time_ms: int | None = BASE_TIME_MS,
    place: str | None = "10km NE of Ridgecrest, CA",
    depth: float | None = 8.0,
) -> dict[str, Any]:
    """USGS-shaped GeoJSON feature."""
    coordinates: list[Any] = [lon, lat]
    if depth is not None:
        coordinates.append(depth)
    feature: dict[str, Any] = {
        "type": "Feature",
        "properties": {"mag": mag, "time": time_ms, "place": place},
        "geometry": {"type": "Point", "coordinates": coordinates},
    }
    if event_id is not None:
        feature["id"] = event_id
    return feature


def make_event(
    event_id: str,
    lat: float,
    lon: float,
    mag: float = 3.0,
    time_ms: int = BASE_TIME_MS,
    place: str | None = "10km NE of Ridgecrest, CA",
    depth: float | None = 8.0,
) -> Event:
    return Event(
        id=event_id,
        magnitude=mag,
        time_ms=time_ms,
        latitude=lat,
        longitude=lon,
        place=place,
        depth_km=depth,
    )


def two_clumps(per_clump: int = 75) -> list[dict[str, Any]]:
    """Two tight groups roughly 1000 km apart (Ridgecrest area and Oregon coast).

    Members sit on a small grid (<= ~15 km across) so every group is well
    inside a 100 km radius of any of its members.
    """
    features = []
    for clump, (lat0, lon0) in enumerate([(35.7, -117.6), (44.5, -124.0)]):
        for i in range(per_clump):
            features.append(
                make_feature(
                    f"c{clump}-{i:03d}",
                    lat0 + (i % 10) * 0.01,
                    lon0 + (i // 10) * 0.01,
                    mag=round(2.0 + (i % 7) * 0.3, 1),
                    time_ms=BASE_TIME_MS + i * 60_000,
                )
            )
    return features
