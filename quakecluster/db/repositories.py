"""
Database repository layer — async CRUD for the cluster store.

  cluster_cache        read fresh entries, upsert by cache key, stats, purge
  cluster_definitions  lookup by stable_key / id / slug, insert, update, upsert by id
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Any

import structlog
from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert

from quakecluster.db.engine import retry_on_disconnect
from quakecluster.db.models import ClusterCacheEntry, ClusterDefinition

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = structlog.get_logger(__name__)


class ClusterCacheRepo:
    """CRUD for cluster_cache."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    @retry_on_disconnect()
    async def get_fresh(self, cache_key: str, ttl_seconds: int) -> str | None:
        """Payload for `cache_key` if it was written within the last `ttl_seconds`."""
        cutoff = datetime.now(UTC) - timedelta(seconds=ttl_seconds)
        result = await self.session.execute(
            select(ClusterCacheEntry.payload).where(
                ClusterCacheEntry.cache_key == cache_key,
                ClusterCacheEntry.created_at > cutoff,
            )
        )
        return result.scalar_one_or_none()

    @retry_on_disconnect()
    async def upsert(
        self, cache_key: str, payload: str, request_params: dict[str, Any]
    ) -> None:
        """Insert or replace; a rewrite also resets created_at."""
        now = datetime.now(UTC)
        stmt = pg_insert(ClusterCacheEntry).values(
            cache_key=cache_key,
            payload=payload,
            request_params=request_params,
            created_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[ClusterCacheEntry.cache_key],
            set_={
                "payload": payload,
                "request_params": request_params,
                "created_at": now,
            },
        )
        await self.session.execute(stmt)

    async def stats(self, ttl_seconds: int) -> dict[str, Any]:
        """Entry counts split by freshness plus payload sizes in bytes."""
        cutoff = datetime.now(UTC) - timedelta(seconds=ttl_seconds)
        size = func.length(ClusterCacheEntry.payload)
        row = (
            await self.session.execute(
                select(
                    func.count(),
                    func.count().filter(ClusterCacheEntry.created_at > cutoff),
                    func.coalesce(func.sum(size), 0),
                    func.coalesce(func.avg(size), 0),
                    func.min(ClusterCacheEntry.created_at),
                    func.max(ClusterCacheEntry.created_at),
                )
            )
        ).one()
        total, active = int(row[0]), int(row[1])
        return {
            "total_entries": total,
            "active_entries": active,
            "expired_entries": total - active,
            "total_payload_bytes": int(row[2]),
            "avg_payload_bytes": float(row[3]),
            "oldest_entry": row[4].isoformat() if row[4] else None,
            "newest_entry": row[5].isoformat() if row[5] else None,
        }

    async def purge_expired(self, ttl_seconds: int) -> int:
        cutoff = datetime.now(UTC) - timedelta(seconds=ttl_seconds)
        result = await self.session.execute(
            delete(ClusterCacheEntry).where(ClusterCacheEntry.created_at <= cutoff)
        )
        return result.rowcount or 0


class ClusterDefinitionRepo:
    """CRUD for cluster_definitions."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    @retry_on_disconnect()
    async def get_by_stable_key(self, stable_key: str) -> ClusterDefinition | None:
        result = await self.session.execute(
            select(ClusterDefinition).where(ClusterDefinition.stable_key == stable_key)
        )
        return result.scalar_one_or_none()

    @retry_on_disconnect()
    async def get_by_id_or_slug(self, id_or_slug: str) -> ClusterDefinition | None:
        result = await self.session.execute(
            select(ClusterDefinition).where(
                or_(
                    ClusterDefinition.id == id_or_slug,
                    ClusterDefinition.slug == id_or_slug,
                )
            )
        )
        return result.scalars().first()

    async def insert(self, definition_id: str, fields: dict[str, Any]) -> ClusterDefinition:
        row = ClusterDefinition(id=definition_id, version=1, **fields)
        self.session.add(row)
        await self.session.flush()
        return row

    @retry_on_disconnect()
    async def upsert_by_id(self, definition_id: str, fields: dict[str, Any]) -> int:
        """Insert, or replace every field of the row with this id. Returns the stored version."""
        now = datetime.now(UTC)
        stmt = pg_insert(ClusterDefinition).values(id=definition_id, version=1, **fields)
        stmt = stmt.on_conflict_do_update(
            index_elements=[ClusterDefinition.id],
            set_={
                **fields,
                "version": ClusterDefinition.version + 1,
                "updated_at": now,
            },
        ).returning(ClusterDefinition.version)
        result = await self.session.execute(stmt)
        return result.scalar_one()

    async def update_fields(self, definition_id: str, fields: dict[str, Any]) -> None:
        """Overwrite mutable fields and bump the version by one."""
        stmt = (
            update(ClusterDefinition)
            .where(ClusterDefinition.id == definition_id)
            .values(
                version=ClusterDefinition.version + 1,
                updated_at=datetime.now(UTC),
                **fields,
            )
        )
        await self.session.execute(stmt)
