"""
Cluster Worker Service — batch clustering of an earthquake feed.

For one feed snapshot:
1. Load GeoJSON features (FeatureCollection or bare feature array)
2. Cluster them with the spatial index
3. Persist definitions for the significant clusters
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import orjson
import structlog

from quakecluster.pipeline.cluster import cluster_events
from quakecluster.pipeline.persist import PersistStats, store_cluster_definitions

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from quakecluster.config.settings import Settings
    from quakecluster.pipeline.profiler import DistanceProfiler

logger = structlog.get_logger(__name__)


class FeedFormatError(ValueError):
    """Input is neither a FeatureCollection nor a feature array."""


def load_features(raw: bytes | str) -> list[Any]:
    """Features from a FeatureCollection document or a bare JSON array."""
    try:
        data = orjson.loads(raw)
    except orjson.JSONDecodeError as e:
        raise FeedFormatError(f"feed is not valid JSON: {e}") from e

    if isinstance(data, dict):
        data = data.get("features")
    if not isinstance(data, list):
        raise FeedFormatError("expected a FeatureCollection or an array of features")
    return data


@dataclass
class BatchResult:
    valid_events: int
    skipped_events: int
    clusters: int
    persist: PersistStats


class ClusterBatchService:
    """Clusters a feed snapshot and stores significant cluster definitions."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] | None,
        settings: Settings,
    ) -> None:
        self.session_factory = session_factory
        self.settings = settings

    async def process(
        self,
        features: list[Any],
        max_distance_km: float | None = None,
        min_members: int | None = None,
        profiler: DistanceProfiler | None = None,
    ) -> BatchResult:
        max_distance_km = max_distance_km or self.settings.cluster_max_distance_km
        min_members = min_members or self.settings.cluster_min_members

        # index_threshold=0: the batch job always uses the spatial index
        run = cluster_events(
            features,
            max_distance_km,
            min_members,
            index_threshold=0,
            profiler=profiler,
        )

        persist = await store_cluster_definitions(
            self.session_factory,
            run.clusters,
            self.settings.significant_cluster_min_members,
            self.settings.significant_cluster_min_magnitude,
        )

        logger.info(
            "feed_batch_processed",
            valid_events=run.valid_count,
            skipped_events=run.skipped_count,
            clusters=len(run.clusters),
            **persist.to_dict(),
        )
        return BatchResult(
            valid_events=run.valid_count,
            skipped_events=run.skipped_count,
            clusters=len(run.clusters),
            persist=persist,
        )
