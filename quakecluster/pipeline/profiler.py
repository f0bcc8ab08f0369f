"""
Per-call instrumentation for distance calculations.

A `DistanceProfiler` is created by whoever wants timings (the benchmark
script, a debug request) and passed explicitly into the geometry and
clustering functions. Nothing here is module-level state, so concurrent
requests never see each other's counters.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any


@dataclass
class ProfileRecord:
    """Timings collected for one named profile."""

    name: str
    started_at: float
    finished_at: float | None = None
    distance_calculations: int = 0
    distance_time_s: float = 0.0
    result: dict[str, Any] | None = None

    @property
    def elapsed_s(self) -> float:
        end = self.finished_at if self.finished_at is not None else time.perf_counter()
        return end - self.started_at

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "elapsed_ms": round(self.elapsed_s * 1000, 3),
            "distance_calculations": self.distance_calculations,
            "distance_time_ms": round(self.distance_time_s * 1000, 3),
            "result": self.result,
        }


@dataclass
class DistanceProfiler:
    """Counts and times haversine calls for the active profile."""

    records: dict[str, ProfileRecord] = field(default_factory=dict)
    _active: str | None = None

    def start(self, name: str) -> None:
        self.records[name] = ProfileRecord(name=name, started_at=time.perf_counter())
        self._active = name

    def stop(self, clusters: list[list[Any]] | None = None) -> ProfileRecord | None:
        if self._active is None:
            return None
        record = self.records[self._active]
        record.finished_at = time.perf_counter()
        if clusters is not None:
            sizes = [len(c) for c in clusters]
            record.result = {
                "clusters_found": len(sizes),
                "clustered_events": sum(sizes),
                "largest_cluster": max(sizes, default=0),
            }
        self._active = None
        return record

    def track_distance(self, duration_s: float) -> None:
        if self._active is None:
            return
        record = self.records[self._active]
        record.distance_calculations += 1
        record.distance_time_s += duration_s

    def summary(self) -> list[dict[str, Any]]:
        return [r.to_dict() for r in self.records.values()]
