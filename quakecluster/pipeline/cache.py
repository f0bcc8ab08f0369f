"""
Cluster result cache backed by the `cluster_cache` table.

Clustering output is stored under a fingerprint of the request parameters
and served for `ttl_seconds` after it was written. The fingerprint covers
the event count and thresholds only, so two requests with the same number
of events and the same parameters share an entry even when the events
differ. Callers that need tighter keys pass extra fields (fetch time, time
window) through `extra_fingerprint`.

The store is optional: without a session factory every call computes.
Store failures never fail a request; reads degrade to a miss and writes
are dropped.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import orjson
import structlog

from quakecluster.db.repositories import ClusterCacheRepo
from quakecluster.pipeline.cluster import (
    DEFAULT_INDEX_THRESHOLD,
    Cluster,
    ClusterRun,
    cluster_events,
)
from quakecluster.pipeline.events import parse_events

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from quakecluster.pipeline.profiler import DistanceProfiler

logger = structlog.get_logger(__name__)

CACHE_KEY_PREFIX = "clusters-"
DEFAULT_TTL_SECONDS = 3600
STORE_NOT_CONFIGURED = "store not configured"


class CorruptCachePayload(ValueError):
    """Stored payload is not a list of clusters of valid features."""


@dataclass
class CacheResult:
    clusters: list[Cluster]
    cache_hit: bool
    cache_info: str | None = None
    run: ClusterRun | None = None

    @property
    def skipped_count(self) -> int | None:
        """Elements skipped while parsing; unknown on a cache hit."""
        return self.run.skipped_count if self.run is not None else None

    def to_features(self) -> list[list[dict[str, Any]]]:
        return [[event.to_feature() for event in cluster] for cluster in self.clusters]


def request_params(
    num_events: int,
    max_distance_km: float,
    min_members: int,
    extra: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Fields the cache key is built from. None-valued extras are left out."""
    params: dict[str, Any] = {
        "numEvents": num_events,
        "maxDistanceKm": max_distance_km,
        "minMembers": min_members,
    }
    for key, value in (extra or {}).items():
        if value is not None:
            params[key] = value
    return params


def fingerprint(params: dict[str, Any]) -> str:
    """Deterministic cache key for a parameter set (key order does not matter)."""
    return CACHE_KEY_PREFIX + orjson.dumps(params, option=orjson.OPT_SORT_KEYS).decode()


def encode_clusters(clusters: list[Cluster]) -> str:
    return orjson.dumps(
        [[event.to_feature() for event in cluster] for cluster in clusters]
    ).decode()


def decode_clusters(payload: str | bytes) -> list[Cluster]:
    """Inverse of `encode_clusters`. Raises CorruptCachePayload on any mismatch."""
    try:
        data = orjson.loads(payload)
    except orjson.JSONDecodeError as e:
        raise CorruptCachePayload(f"payload is not JSON: {e}") from e

    if not isinstance(data, list):
        raise CorruptCachePayload("payload is not a list")

    clusters: list[Cluster] = []
    for position, group in enumerate(data):
        if not isinstance(group, list):
            raise CorruptCachePayload(f"cluster {position} is not a list")
        parsed = parse_events(group, log_skipped=False)
        if parsed.skipped_count:
            raise CorruptCachePayload(
                f"cluster {position} has {parsed.skipped_count} invalid features"
            )
        clusters.append(parsed.valid)
    return clusters


class ClusterCache:
    """Read-through cache in front of `cluster_events`."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] | None,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        index_threshold: int = DEFAULT_INDEX_THRESHOLD,
    ) -> None:
        self.session_factory = session_factory
        self.ttl_seconds = ttl_seconds
        self.index_threshold = index_threshold

    @property
    def enabled(self) -> bool:
        return self.session_factory is not None

    async def get_or_compute(
        self,
        raw_items: Sequence[Any],
        max_distance_km: float,
        min_members: int,
        extra_fingerprint: dict[str, Any] | None = None,
        profiler: DistanceProfiler | None = None,
    ) -> CacheResult:
        """
        Serve clusters from the cache or compute and store them.

        Args:
            raw_items: Raw GeoJSON features as received.
            max_distance_km: Neighbour radius.
            min_members: Minimum cluster size.
            extra_fingerprint: Additional request fields folded into the key.
            profiler: Optional distance profiler for the compute path.

        Returns:
            CacheResult; `run` is set only when clusters were computed.
        """
        if not self.enabled:
            run = self._compute(raw_items, max_distance_km, min_members, profiler)
            return CacheResult(
                clusters=run.clusters,
                cache_hit=False,
                cache_info=STORE_NOT_CONFIGURED,
                run=run,
            )

        params = request_params(len(raw_items), max_distance_km, min_members, extra_fingerprint)
        key = fingerprint(params)

        cached = await self._read(key)
        if cached is not None:
            return CacheResult(clusters=cached, cache_hit=True)

        run = self._compute(raw_items, max_distance_km, min_members, profiler)
        await self._write(key, encode_clusters(run.clusters), params)
        return CacheResult(clusters=run.clusters, cache_hit=False, run=run)

    def _compute(
        self,
        raw_items: Sequence[Any],
        max_distance_km: float,
        min_members: int,
        profiler: DistanceProfiler | None,
    ) -> ClusterRun:
        return cluster_events(
            raw_items,
            max_distance_km,
            min_members,
            index_threshold=self.index_threshold,
            profiler=profiler,
        )

    async def _read(self, key: str) -> list[Cluster] | None:
        try:
            async with self.session_factory() as session:
                payload = await ClusterCacheRepo(session).get_fresh(key, self.ttl_seconds)
        except Exception as e:
            logger.warning("cache_read_failed", cache_key=key, error=str(e))
            return None

        if payload is None:
            logger.debug("cache_miss", cache_key=key)
            return None

        try:
            clusters = decode_clusters(payload)
        except CorruptCachePayload as e:
            logger.warning("cache_payload_corrupt", cache_key=key, error=str(e))
            return None

        logger.info("cache_hit", cache_key=key, num_clusters=len(clusters))
        return clusters

    async def _write(self, key: str, payload: str, params: dict[str, Any]) -> None:
        try:
            async with self.session_factory() as session:
                await ClusterCacheRepo(session).upsert(key, payload, params)
                await session.commit()
        except Exception as e:
            logger.warning("cache_write_failed", cache_key=key, error=str(e))
            return
        logger.debug("cache_stored", cache_key=key, payload_bytes=len(payload))

    async def cache_stats(self) -> dict[str, Any]:
        """Entry counts and payload sizes; `{"enabled": False}` without a store."""
        if not self.enabled:
            return {"enabled": False}
        async with self.session_factory() as session:
            stats = await ClusterCacheRepo(session).stats(self.ttl_seconds)
        return {"enabled": True, "ttl_seconds": self.ttl_seconds, **stats}

    async def purge_expired(self) -> int:
        if not self.enabled:
            return 0
        async with self.session_factory() as session:
            deleted = await ClusterCacheRepo(session).purge_expired(self.ttl_seconds)
            await session.commit()
        logger.info("cache_purged", deleted=deleted)
        return deleted
