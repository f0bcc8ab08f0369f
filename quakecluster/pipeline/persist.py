"""
Cluster definition persistence.

Runs after the clustering response has been sent. Every significant cluster
is summarized, keyed and upserted into `cluster_definitions`:

  - unseen stable key  → new row, version 1, slug generated once
  - known stable key   → all mutable fields rewritten, version + 1, slug kept

Each cluster gets its own session and transaction. A failing cluster is
logged and counted; the rest of the batch still runs and nothing is raised.
"""

from __future__ import annotations

import uuid
from collections.abc import Sequence
from dataclasses import asdict, dataclass
from typing import TYPE_CHECKING

import structlog

from quakecluster.db.repositories import ClusterDefinitionRepo
from quakecluster.pipeline.identity import build_definition, is_significant, summarize_cluster

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from quakecluster.pipeline.cluster import Cluster
    from quakecluster.pipeline.identity import ClusterDefinitionData

logger = structlog.get_logger(__name__)


@dataclass
class PersistStats:
    significant: int = 0
    created: int = 0
    updated: int = 0
    errors: int = 0

    @property
    def processed(self) -> int:
        return self.created + self.updated

    def to_dict(self) -> dict[str, int]:
        return {**asdict(self), "processed": self.processed}


def new_definition_id() -> str:
    return uuid.uuid4().hex


async def upsert_definition(
    repo: ClusterDefinitionRepo, definition: ClusterDefinitionData
) -> bool:
    """Insert or update one definition. Returns True when a row was created."""
    existing = await repo.get_by_stable_key(definition.stable_key)
    if existing is None:
        await repo.insert(new_definition_id(), definition.to_dict())
        return True
    await repo.update_fields(existing.id, definition.mutable_fields())
    return False


async def store_cluster_definitions(
    session_factory: async_sessionmaker[AsyncSession] | None,
    clusters: Sequence[Cluster],
    min_members: int,
    min_magnitude: float,
) -> PersistStats:
    """
    Persist definitions for every significant cluster.

    Args:
        session_factory: Store session factory; None skips persistence.
        clusters: Clusters from one clustering run.
        min_members: Minimum member count for a cluster to be significant.
        min_magnitude: Minimum strongest-event magnitude to be significant.

    Returns:
        PersistStats with significant / created / updated / error counts.
    """
    stats = PersistStats()
    if session_factory is None or not clusters:
        return stats

    for cluster in clusters:
        if not cluster:
            continue
        summary = summarize_cluster(cluster)
        if not is_significant(summary, min_members, min_magnitude):
            continue
        stats.significant += 1

        try:
            definition = build_definition(summary)
            async with session_factory() as session:
                created = await upsert_definition(ClusterDefinitionRepo(session), definition)
                await session.commit()
        except Exception as e:
            stats.errors += 1
            logger.error(
                "cluster_definition_failed",
                strongest_event_id=summary.strongest.id,
                event_count=summary.event_count,
                error=str(e),
            )
            continue

        if created:
            stats.created += 1
        else:
            stats.updated += 1
        logger.debug(
            "cluster_definition_stored",
            stable_key=definition.stable_key,
            created=created,
        )

    logger.info("cluster_definitions_persisted", **stats.to_dict())
    return stats
