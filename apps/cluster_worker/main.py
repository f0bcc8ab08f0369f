"""
Cluster Worker CLI — standalone entry point.

    python -m apps.cluster_worker.main feed.geojson
    curl -s "$FEED_URL" | python -m apps.cluster_worker.main -
"""

from __future__ import annotations

import asyncio
import sys
from typing import BinaryIO

import click
import structlog

from quakecluster.config import get_settings
from quakecluster.config.logging import setup_logging

logger = structlog.get_logger(__name__)


async def run_batch(
    raw: bytes,
    max_distance_km: float | None = None,
    min_members: int | None = None,
    purge_cache: bool = False,
) -> None:
    """Cluster one feed snapshot and persist significant definitions."""
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_format)

    from apps.cluster_worker.service import ClusterBatchService, load_features
    from quakecluster.db.engine import get_optional_session_factory

    session_factory = get_optional_session_factory()
    if session_factory is None:
        logger.warning("store_not_configured", detail="definitions will not be persisted")

    features = load_features(raw)
    if not features:
        logger.info("no_events_to_cluster")
        return

    svc = ClusterBatchService(session_factory, settings)
    result = await svc.process(features, max_distance_km, min_members)

    if purge_cache and session_factory is not None:
        from quakecluster.pipeline.cache import ClusterCache

        cache = ClusterCache(session_factory, ttl_seconds=settings.cache_ttl_seconds)
        await cache.purge_expired()

    if result.persist.errors:
        logger.warning("cluster_definitions_partially_failed", errors=result.persist.errors)


@click.command()
@click.argument("feed", type=click.File("rb"))
@click.option("--max-distance-km", type=float, default=None, help="Neighbour radius (km)")
@click.option("--min-members", type=int, default=None, help="Minimum cluster size")
@click.option("--purge-cache", is_flag=True, help="Delete expired cache rows afterwards")
def cli(
    feed: BinaryIO,
    max_distance_km: float | None,
    min_members: int | None,
    purge_cache: bool,
) -> None:
    """Cluster a GeoJSON earthquake feed and store significant clusters."""
    raw = feed.read()
    try:
        asyncio.run(run_batch(raw, max_distance_km, min_members, purge_cache))
    except Exception:
        logger.exception("cluster_worker_crashed")
        sys.exit(1)


if __name__ == "__main__":
    cli()
