"""
Clustering module — greedy seed-and-radius grouping of earthquake events.

Deterministic: same inputs → same cluster membership.

Algorithm:
1. Sort valid events by magnitude DESC (stable, so ties keep input order)
2. Take the strongest unprocessed event as a seed
3. Pull every other unprocessed event within `max_distance_km` of the seed
   into the seed's cluster and mark all of them processed
4. Keep the cluster only if it has at least `min_members` events
5. Drop a cluster whose member-id set was already emitted in this run

Neighbour discovery runs either as a direct scan over all events or through
a `SpatialIndex`; both return the same membership. The indexed strategy is
picked above a size threshold, and any index failure falls back to the
direct scan.
"""

from __future__ import annotations

import enum
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import structlog

from quakecluster.pipeline.events import (
    Event,
    InvalidEvent,
    parse_events,
    with_wrapped_longitude,
)
from quakecluster.pipeline.geo import haversine_km
from quakecluster.pipeline.spatial_index import SpatialIndex

if TYPE_CHECKING:
    from quakecluster.pipeline.profiler import DistanceProfiler

logger = structlog.get_logger(__name__)

DEFAULT_INDEX_THRESHOLD = 100

Cluster = list[Event]


class Strategy(str, enum.Enum):
    """Neighbour-discovery strategy used for a run."""

    DIRECT = "direct"
    INDEXED = "indexed"


@dataclass
class ClusterRun:
    """Result of one clustering call."""

    clusters: list[Cluster]
    strategy: Strategy
    skipped: list[InvalidEvent] = field(default_factory=list)
    valid_count: int = 0

    @property
    def skipped_count(self) -> int:
        return len(self.skipped)

    def to_features(self) -> list[list[dict[str, Any]]]:
        """Clusters as arrays of the caller's original feature objects."""
        return [[event.to_feature() for event in cluster] for cluster in self.clusters]


def cluster_key(cluster: Iterable[Event]) -> frozenset[str]:
    """Canonical identity of a cluster's membership (order-free)."""
    return frozenset(event.id for event in cluster)


def _by_magnitude(events: Sequence[Event]) -> list[Event]:
    # sorted() is stable, so equal magnitudes keep their input order
    return sorted(events, key=lambda e: e.magnitude, reverse=True)


NeighbourFinder = Callable[[Event, set[str]], list[Event]]


def _greedy_clusters(
    ordered: list[Event],
    min_members: int,
    neighbours_of: NeighbourFinder,
) -> list[Cluster]:
    """Seed loop shared by both strategies."""
    processed: set[str] = set()
    emitted: set[frozenset[str]] = set()
    clusters: list[Cluster] = []

    for seed in ordered:
        if seed.id in processed:
            continue
        processed.add(seed.id)

        members = [seed]
        for other in neighbours_of(seed, processed):
            if other.id in processed:
                continue
            members.append(other)
            processed.add(other.id)

        if len(members) < min_members:
            continue

        # cannot fire while every cluster holds a previously unprocessed seed
        key = cluster_key(members)
        if key in emitted:
            logger.debug("duplicate_cluster_suppressed", seed_id=seed.id, size=len(members))
            continue
        emitted.add(key)
        clusters.append(members)

    return clusters


def find_clusters_direct(
    events: Sequence[Event],
    max_distance_km: float,
    min_members: int,
    profiler: DistanceProfiler | None = None,
) -> list[Cluster]:
    """Pairwise scan: compare each seed against every unprocessed event."""
    ordered = _by_magnitude([with_wrapped_longitude(e) for e in events])

    def neighbours_of(seed: Event, processed: set[str]) -> list[Event]:
        found: list[Event] = []
        for other in ordered:
            if other.id in processed:
                continue
            distance = haversine_km(
                seed.latitude, seed.longitude, other.latitude, other.longitude, profiler
            )
            if distance <= max_distance_km:
                found.append(other)
        return found

    return _greedy_clusters(ordered, min_members, neighbours_of)


def find_clusters_indexed(
    events: Sequence[Event],
    max_distance_km: float,
    min_members: int,
    profiler: DistanceProfiler | None = None,
) -> list[Cluster]:
    """Same grouping as `find_clusters_direct`, with neighbours from a spatial index."""
    if not events or len(events) < min_members:
        return []

    # grid cells assume longitudes in [-180, 180]
    wrapped = [with_wrapped_longitude(e) for e in events]
    index = SpatialIndex.build(wrapped, max_distance_km)
    if index is None:
        return []
    ordered = _by_magnitude(wrapped)

    def neighbours_of(seed: Event, processed: set[str]) -> list[Event]:
        return [
            n.event
            for n in index.query(seed.latitude, seed.longitude, max_distance_km, profiler)
            if n.event.id not in processed
        ]

    clusters = _greedy_clusters(ordered, min_members, neighbours_of)
    logger.debug("indexed_clustering_stats", **index.summary())
    return clusters


def cluster_events(
    items: Iterable[Any],
    max_distance_km: float,
    min_members: int,
    *,
    index_threshold: int = DEFAULT_INDEX_THRESHOLD,
    profiler: DistanceProfiler | None = None,
) -> ClusterRun:
    """
    Parse raw features and cluster the valid ones.

    Args:
        items: Raw GeoJSON features (or already-parsed `Event` objects).
        max_distance_km: Neighbour radius around each seed.
        min_members: Minimum cluster size to keep.
        index_threshold: Valid-event count at which the spatial index is used.
        profiler: Optional per-call distance profiler.

    Returns:
        ClusterRun with the clusters, the strategy used and skipped elements.
    """
    if max_distance_km <= 0:
        raise ValueError(f"max_distance_km must be > 0, got {max_distance_km!r}")
    if min_members <= 0:
        raise ValueError(f"min_members must be > 0, got {min_members!r}")

    parsed = parse_events(items)
    events = parsed.valid

    strategy = Strategy.INDEXED if len(events) >= index_threshold else Strategy.DIRECT
    clusters: list[Cluster]

    if strategy is Strategy.INDEXED:
        try:
            clusters = find_clusters_indexed(events, max_distance_km, min_members, profiler)
        except Exception as e:
            logger.warning(
                "spatial_index_failed_falling_back",
                error=str(e),
                events=len(events),
            )
            strategy = Strategy.DIRECT
            clusters = find_clusters_direct(events, max_distance_km, min_members, profiler)
    else:
        clusters = find_clusters_direct(events, max_distance_km, min_members, profiler)

    logger.info(
        "clustering_complete",
        strategy=strategy.value,
        total_events=len(events),
        skipped=parsed.skipped_count,
        num_clusters=len(clusters),
        largest_cluster=max((len(c) for c in clusters), default=0),
    )
    return ClusterRun(
        clusters=clusters,
        strategy=strategy,
        skipped=parsed.skipped,
        valid_count=len(events),
    )
