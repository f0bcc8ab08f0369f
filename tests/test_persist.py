"""
Tests for cluster definition persistence.

Covers:
- Insert on first sighting (version 1, generated id + slug)
- Update on later sightings (version + 1, slug kept, fields refreshed)
- Non-significant clusters are ignored
- A failing cluster does not stop the batch
- No store configured
"""

from __future__ import annotations

import asyncio
from types import SimpleNamespace
from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from factories import BASE_TIME_MS, HOUR_MS, make_event

from quakecluster.pipeline.persist import PersistStats, store_cluster_definitions


class FakeDefinitionStore:
    """Dict-backed replacement for the cluster_definitions table."""

    def __init__(self) -> None:
        self.rows: dict[str, dict[str, Any]] = {}
        self.fail_for: set[str] = set()

    def repo(self, session: Any) -> FakeDefinitionStore:
        return self

    async def get_by_stable_key(self, stable_key: str):
        for row in self.rows.values():
            if row["stable_key"] == stable_key:
                return SimpleNamespace(**row)
        return None

    async def insert(self, definition_id: str, fields: dict[str, Any]):
        if fields["strongest_event_id"] in self.fail_for:
            raise RuntimeError("unique violation")
        self.rows[definition_id] = {"id": definition_id, "version": 1, **fields}

    async def update_fields(self, definition_id: str, fields: dict[str, Any]) -> None:
        row = self.rows[definition_id]
        row.update(fields)
        row["version"] += 1


@pytest.fixture
def store():
    fake = FakeDefinitionStore()
    with patch("quakecluster.pipeline.persist.ClusterDefinitionRepo", side_effect=fake.repo):
        yield fake


@pytest.fixture
def session_factory():
    factory = MagicMock()
    factory.return_value.__aenter__.return_value = AsyncMock()
    factory.return_value.__aexit__.return_value = False
    return factory


def _swarm(prefix: str, lat: float, lon: float, mags: list[float], place: str) -> list:
    return [
        make_event(f"{prefix}{i}", lat + i * 0.01, lon, mag=m, time_ms=BASE_TIME_MS + i * HOUR_MS, place=place)
        for i, m in enumerate(mags)
    ]


class TestStoreClusterDefinitions:
    def test_first_sighting_inserts(self, store, session_factory) -> None:
        cluster = _swarm("a", 35.7, -117.6, [4.5, 3.1, 2.8], "10km NE of Ridgecrest, CA")
        stats = asyncio.run(store_cluster_definitions(session_factory, [cluster], 3, 3.0))

        assert stats == PersistStats(significant=1, created=1, updated=0, errors=0)
        (row,) = store.rows.values()
        assert row["version"] == 1
        assert len(row["id"]) == 32
        assert row["slug"].startswith("3-quakes-near-ridgecrest-ca-m4.5-")
        assert row["event_ids"] == ["a0", "a1", "a2"]

    def test_second_sighting_updates_and_keeps_slug(self, store, session_factory) -> None:
        cluster = _swarm("a", 35.7, -117.6, [4.5, 3.1, 2.8], "10km NE of Ridgecrest, CA")
        asyncio.run(store_cluster_definitions(session_factory, [cluster], 3, 3.0))
        (row,) = store.rows.values()
        slug = row["slug"]

        grown = [*cluster, make_event("a9", 35.72, -117.61, mag=2.0, time_ms=BASE_TIME_MS + 4 * HOUR_MS)]
        stats = asyncio.run(store_cluster_definitions(session_factory, [grown], 3, 3.0))

        assert stats.updated == 1
        assert stats.created == 0
        assert len(store.rows) == 1
        (row,) = store.rows.values()
        assert row["version"] == 2
        assert row["slug"] == slug
        assert row["event_count"] == 4
        assert row["title"].startswith("Cluster: 4 events")

    def test_non_significant_clusters_skipped(self, store, session_factory) -> None:
        weak = _swarm("w", 10.0, 10.0, [2.0, 1.5, 1.2], "Somewhere")
        small = _swarm("s", 20.0, 20.0, [5.0, 4.0], "Elsewhere")
        stats = asyncio.run(store_cluster_definitions(session_factory, [weak, small, []], 3, 3.0))
        assert stats == PersistStats()
        assert store.rows == {}

    def test_failure_is_counted_and_batch_continues(self, store, session_factory) -> None:
        bad = _swarm("bad", 35.7, -117.6, [4.5, 3.1, 2.8], "10km NE of Ridgecrest, CA")
        good = _swarm("good", 44.5, -124.0, [3.5, 3.0, 2.5], "20km W of Bandon, Oregon")
        store.fail_for.add("bad0")

        stats = asyncio.run(store_cluster_definitions(session_factory, [bad, good], 3, 3.0))

        assert stats.significant == 2
        assert stats.errors == 1
        assert stats.created == 1
        assert stats.to_dict()["processed"] == 1
        (row,) = store.rows.values()
        assert row["strongest_event_id"] == "good0"

    def test_session_failure_is_counted(self, store) -> None:
        factory = MagicMock(side_effect=ConnectionRefusedError("db down"))
        cluster = _swarm("a", 35.7, -117.6, [4.5, 3.1, 2.8], "Ridgecrest, CA")
        stats = asyncio.run(store_cluster_definitions(factory, [cluster], 3, 3.0))
        assert stats.errors == 1

    def test_no_store(self) -> None:
        cluster = _swarm("a", 35.7, -117.6, [4.5, 3.1, 2.8], "Ridgecrest, CA")
        assert asyncio.run(store_cluster_definitions(None, [cluster], 3, 3.0)) == PersistStats()
