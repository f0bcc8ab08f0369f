"""
Event parsing — turns raw GeoJSON features into typed `Event` records.

Every input element is parsed exactly once into either a `ValidEvent` or an
`InvalidEvent` carrying the reason. Clustering only ever sees valid events;
invalid ones are reported back as diagnostics and never fail the request.

Expected element shape (USGS GeoJSON feature):
{
  "id": "ci40123456",
  "properties": {"mag": 4.2, "time": 1718000000000, "place": "10km NE of Ridgecrest, CA"},
  "geometry": {"coordinates": [-117.6, 35.7, 8.2]}
}
"""

from __future__ import annotations

import math
from collections.abc import Iterable
from dataclasses import dataclass, field, replace
from typing import Any

import structlog

from quakecluster.pipeline.geo import normalize_longitude

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class Event:
    """An immutable geolocated earthquake record."""

    id: str
    magnitude: float
    time_ms: int
    latitude: float
    longitude: float
    place: str | None = None
    depth_km: float | None = None
    # The caller's original object, returned untouched in cluster output
    feature: dict[str, Any] = field(default_factory=dict, compare=False, repr=False, hash=False)

    def to_feature(self) -> dict[str, Any]:
        if self.feature:
            return self.feature
        coordinates: list[float] = [self.longitude, self.latitude]
        if self.depth_km is not None:
            coordinates.append(self.depth_km)
        return {
            "type": "Feature",
            "id": self.id,
            "properties": {"mag": self.magnitude, "time": self.time_ms, "place": self.place},
            "geometry": {"type": "Point", "coordinates": coordinates},
        }


@dataclass(frozen=True)
class ValidEvent:
    index: int
    event: Event


@dataclass(frozen=True)
class InvalidEvent:
    index: int
    reason: str
    event_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"index": self.index, "reason": self.reason, "id": self.event_id}


ParseResult = ValidEvent | InvalidEvent


@dataclass
class ParsedEvents:
    """Outcome of parsing a whole request payload."""

    valid: list[Event] = field(default_factory=list)
    skipped: list[InvalidEvent] = field(default_factory=list)

    @property
    def skipped_count(self) -> int:
        return len(self.skipped)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _finite(value: Any) -> bool:
    return _is_number(value) and math.isfinite(value)


def with_wrapped_longitude(event: Event) -> Event:
    """The same event with its longitude wrapped into [-180, 180]."""
    lon = normalize_longitude(event.longitude)
    if lon == event.longitude:
        return event
    return replace(event, longitude=lon)


def parse_event(raw: Any, index: int = 0) -> ParseResult:
    """Parse one raw element into a tagged result."""
    if isinstance(raw, Event):
        if not -90.0 <= raw.latitude <= 90.0:
            return InvalidEvent(index=index, reason="latitude out of range", event_id=raw.id)
        return ValidEvent(index=index, event=with_wrapped_longitude(raw))

    if not isinstance(raw, dict):
        return InvalidEvent(index=index, reason="not an object")

    raw_id = raw.get("id")
    if raw_id is None or raw_id == "":
        return InvalidEvent(index=index, reason="missing id")
    event_id = str(raw_id)

    geometry = raw.get("geometry")
    coords = geometry.get("coordinates") if isinstance(geometry, dict) else None
    if not isinstance(coords, (list, tuple)) or len(coords) < 2:
        return InvalidEvent(index=index, reason="missing coordinates", event_id=event_id)

    lon, lat = coords[0], coords[1]
    if not (_finite(lon) and _finite(lat)):
        return InvalidEvent(index=index, reason="non-finite coordinates", event_id=event_id)
    if not -90.0 <= lat <= 90.0:
        return InvalidEvent(index=index, reason="latitude out of range", event_id=event_id)

    depth = coords[2] if len(coords) > 2 and _finite(coords[2]) else None

    props = raw.get("properties")
    if not isinstance(props, dict):
        props = {}

    mag = props.get("mag")
    time_ms = props.get("time")
    place = props.get("place")

    return ValidEvent(
        index=index,
        event=Event(
            id=event_id,
            # missing magnitudes sort as 0, same as an unmeasured event
            magnitude=float(mag) if _finite(mag) else 0.0,
            time_ms=int(time_ms) if _finite(time_ms) else 0,
            latitude=float(lat),
            longitude=normalize_longitude(float(lon)),
            place=place if isinstance(place, str) and place else None,
            depth_km=float(depth) if depth is not None else None,
            feature=raw,
        ),
    )


def parse_events(items: Iterable[Any], log_skipped: bool = True) -> ParsedEvents:
    """Parse a request payload, keeping the first occurrence of each id."""
    parsed = ParsedEvents()
    seen_ids: set[str] = set()

    for index, raw in enumerate(items):
        result = parse_event(raw, index)
        if isinstance(result, ValidEvent) and result.event.id in seen_ids:
            result = InvalidEvent(index=index, reason="duplicate id", event_id=result.event.id)

        if isinstance(result, InvalidEvent):
            parsed.skipped.append(result)
            continue

        seen_ids.add(result.event.id)
        parsed.valid.append(result.event)

    if parsed.skipped and log_skipped:
        logger.warning(
            "events_skipped",
            skipped=parsed.skipped_count,
            valid=len(parsed.valid),
            reasons=sorted({s.reason for s in parsed.skipped}),
        )
    return parsed
