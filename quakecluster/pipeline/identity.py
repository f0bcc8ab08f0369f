"""
Cluster identity — stable keys, slugs and descriptive metadata.

A clustering run is recomputed on every request, so the same swarm shows up
with slightly different members each time (one more aftershock, one event
aged out of the window). The stable key is deliberately coarse so those
variants map to one persisted definition:

    v1_{location}_{6h time bucket}_{lat.1f}-{lon.1f}

The slug is the public, URL-facing name. It is derived from the stable key
once, when a definition is first stored, and never regenerated.
"""

from __future__ import annotations

import math
import re
from dataclasses import asdict, dataclass
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from quakecluster.pipeline.events import Event

STABLE_KEY_VERSION = "v1"
TIME_BUCKET_MS = 6 * 60 * 60 * 1000
MS_PER_HOUR = 60 * 60 * 1000

UNKNOWN_LOCATION_SLUG = "unknown-location"
UNKNOWN_LOCATION_NAME = "Unknown Location"
LOCATION_SLUG_MAX_LEN = 30
GEO_PART_MAX_LEN = 15

_NON_SLUG_CHARS = re.compile(r"[^a-z0-9\s-]")
_WHITESPACE = re.compile(r"\s+")
_HYPHEN_RUNS = re.compile(r"-+")
_NON_GEO_CHARS = re.compile(r"[^a-z0-9-]")
_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


@dataclass(frozen=True)
class ClusterSummary:
    """Aggregate metrics for one cluster."""

    strongest: Event
    event_ids: list[str]
    event_count: int
    max_magnitude: float
    min_magnitude: float
    mean_magnitude: float
    start_time_ms: int
    end_time_ms: int
    duration_hours: float
    depth_range: str
    centroid_lat: float
    centroid_lon: float
    location_name: str
    significance_score: float


@dataclass
class ClusterDefinitionData:
    """Every persisted field of a definition except id, version and timestamps."""

    stable_key: str
    slug: str
    title: str
    description: str
    strongest_event_id: str
    event_ids: list[str]
    event_count: int
    max_magnitude: float
    min_magnitude: float
    mean_magnitude: float
    start_time_ms: int
    end_time_ms: int
    duration_hours: float
    location_name: str
    centroid_lat: float
    centroid_lon: float
    depth_range: str
    significance_score: float
    radius_km: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    def mutable_fields(self) -> dict[str, Any]:
        """Fields refreshed on every re-observation (slug and stable key stay fixed)."""
        data = self.to_dict()
        data.pop("slug")
        data.pop("stable_key")
        return data


# ── Metrics ───────────────────────────────────────────


def strongest_event(cluster: list[Event]) -> Event:
    """Highest magnitude member; the first one wins a tie."""
    best = cluster[0]
    for event in cluster[1:]:
        if event.magnitude > best.magnitude:
            best = event
    return best


def depth_range(cluster: list[Event]) -> str:
    depths = [e.depth_km for e in cluster if e.depth_km is not None]
    if not depths:
        return "Unknown"
    return f"{min(depths):.1f}-{max(depths):.1f}km"


def significance_score(max_magnitude: float, event_count: int) -> float:
    if event_count <= 0:
        return 0.0
    return max_magnitude * math.log10(event_count)


def summarize_cluster(cluster: list[Event]) -> ClusterSummary:
    """Compute the metrics a definition is built from."""
    if not cluster:
        raise ValueError("cannot summarize an empty cluster")

    strongest = strongest_event(cluster)
    magnitudes = [e.magnitude for e in cluster]
    times = [e.time_ms for e in cluster]
    start, end = min(times), max(times)
    count = len(cluster)

    return ClusterSummary(
        strongest=strongest,
        event_ids=[e.id for e in cluster],
        event_count=count,
        max_magnitude=strongest.magnitude,
        min_magnitude=min(magnitudes),
        mean_magnitude=sum(magnitudes) / count,
        start_time_ms=start,
        end_time_ms=end,
        duration_hours=(end - start) / MS_PER_HOUR if end > start else 0.0,
        depth_range=depth_range(cluster),
        # strongest event's position, not a geometric mean
        centroid_lat=strongest.latitude,
        centroid_lon=strongest.longitude,
        location_name=strongest.place or UNKNOWN_LOCATION_NAME,
        significance_score=significance_score(strongest.magnitude, count),
    )


def is_significant(summary: ClusterSummary, min_members: int, min_magnitude: float) -> bool:
    return summary.event_count >= min_members and summary.max_magnitude >= min_magnitude


# ── Keys and slugs ────────────────────────────────────


def location_slug(place: str | None) -> str:
    """General area of a USGS place string: "10km NE of Ridgecrest, CA" → "ridgecrest-ca"."""
    if not place:
        return UNKNOWN_LOCATION_SLUG
    general = place.split(" of ")[-1]
    slug = _NON_SLUG_CHARS.sub("", general.lower()).strip()
    slug = _WHITESPACE.sub("-", slug)[:LOCATION_SLUG_MAX_LEN]
    return slug or UNKNOWN_LOCATION_SLUG


def stable_key(summary: ClusterSummary) -> str:
    """Coarse identity that survives small membership changes."""
    strongest = summary.strongest
    location = location_slug(strongest.place)
    time_bucket = summary.start_time_ms // TIME_BUCKET_MS
    geo = f"{strongest.latitude:.1f}-{strongest.longitude:.1f}"
    return f"{STABLE_KEY_VERSION}_{location}_{time_bucket}_{geo}"


def _js_string_hash(value: str) -> int:
    """31-multiplier string hash with signed 32-bit wraparound."""
    h = 0
    data = value.encode("utf-16-le")
    for i in range(0, len(data), 2):
        code_unit = data[i] | (data[i + 1] << 8)
        h = ((h << 5) - h + code_unit) & 0xFFFFFFFF
    return h - 0x100000000 if h >= 0x80000000 else h


def _base36(number: int) -> str:
    if number == 0:
        return "0"
    digits = []
    while number:
        number, rem = divmod(number, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def stable_key_suffix(key: str) -> str:
    """`{timeBucket}-{geo}` from a well-formed key, else `skh` + short hash."""
    parts = key.split("_")
    if len(parts) >= 4:
        time_part = parts[2]
        geo_part = _NON_GEO_CHARS.sub("", parts[3].replace(".", "d"))[:GEO_PART_MAX_LEN]
        return f"{time_part}-{geo_part}"
    return "skh" + _base36(abs(_js_string_hash(key)))[:6]


def generate_slug(event_count: int, location: str, max_magnitude: float, key: str) -> str:
    """URL slug, e.g. "5-quakes-near-ridgecrest-ca-m4.5-79512-35d7--117d6"."""
    loc = _HYPHEN_RUNS.sub("-", location)[:LOCATION_SLUG_MAX_LEN].strip("-")
    loc = loc or UNKNOWN_LOCATION_SLUG
    return f"{event_count}-quakes-near-{loc}-m{max_magnitude:.1f}-{stable_key_suffix(key)}"


def generate_title(event_count: int, location_name: str, max_magnitude: float) -> str:
    location_name = location_name or UNKNOWN_LOCATION_NAME
    return f"Cluster: {event_count} events near {location_name}, max M{max_magnitude:.1f}"


def generate_description(
    event_count: int, location_name: str, max_magnitude: float, duration_hours: float
) -> str:
    duration = f"approx {duration_hours:.1f} hours" if duration_hours > 0 else "a short period"
    return (
        f"A cluster of {event_count} earthquakes occurred near {location_name}. "
        f"Strongest: M{max_magnitude:.1f}. Duration: {duration}."
    )


def build_definition(summary: ClusterSummary) -> ClusterDefinitionData:
    """Full definition payload for a significant cluster."""
    key = stable_key(summary)
    return ClusterDefinitionData(
        stable_key=key,
        slug=generate_slug(
            summary.event_count,
            location_slug(summary.strongest.place),
            summary.max_magnitude,
            key,
        ),
        title=generate_title(summary.event_count, summary.location_name, summary.max_magnitude),
        description=generate_description(
            summary.event_count,
            summary.location_name,
            summary.max_magnitude,
            summary.duration_hours,
        ),
        strongest_event_id=summary.strongest.id,
        event_ids=list(summary.event_ids),
        event_count=summary.event_count,
        max_magnitude=summary.max_magnitude,
        min_magnitude=summary.min_magnitude,
        mean_magnitude=summary.mean_magnitude,
        start_time_ms=summary.start_time_ms,
        end_time_ms=summary.end_time_ms,
        duration_hours=summary.duration_hours,
        location_name=summary.location_name,
        centroid_lat=summary.centroid_lat,
        centroid_lon=summary.centroid_lon,
        depth_range=summary.depth_range,
        significance_score=summary.significance_score,
    )
