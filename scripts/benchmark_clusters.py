"""
Benchmark the direct and indexed clustering strategies on synthetic swarms.

Generates N events spread over a handful of swarms plus uniform background
noise, runs both strategies under a DistanceProfiler, and checks that they
produced the same cluster membership.

Usage:
    python scripts/benchmark_clusters.py                    # 1000 events
    python scripts/benchmark_clusters.py --events 5000 --swarms 12
    python scripts/benchmark_clusters.py --seed 7 --max-distance-km 50
"""

from __future__ import annotations

import sys

import click
import numpy as np
import orjson

# ── Ensure project root is on sys.path ────────────────
sys.path.insert(0, ".")

from quakecluster.pipeline.cluster import (
    cluster_key,
    find_clusters_direct,
    find_clusters_indexed,
)
from quakecluster.pipeline.events import parse_events
from quakecluster.pipeline.profiler import DistanceProfiler

BASE_TIME_MS = 1_760_000_000_000
HOUR_MS = 3_600_000


def synthetic_features(
    n_events: int,
    n_swarms: int,
    noise_fraction: float,
    seed: int,
) -> list[dict]:
    """GeoJSON features: gaussian swarms (~0.3° spread) plus uniform noise."""
    rng = np.random.default_rng(seed)
    n_noise = int(n_events * noise_fraction)
    n_swarm_events = n_events - n_noise

    centers = np.column_stack([
        rng.uniform(-60, 60, n_swarms),
        rng.uniform(-170, 170, n_swarms),
    ])
    which = rng.integers(0, n_swarms, n_swarm_events)
    swarm_pts = centers[which] + rng.normal(0, 0.3, (n_swarm_events, 2))
    noise_pts = np.column_stack([
        rng.uniform(-70, 70, n_noise),
        rng.uniform(-180, 180, n_noise),
    ])
    points = np.vstack([swarm_pts, noise_pts])
    points[:, 0] = np.clip(points[:, 0], -89.9, 89.9)
    points[:, 1] = (points[:, 1] + 180.0) % 360.0 - 180.0

    mags = np.round(rng.gamma(2.0, 0.9, n_events) + 1.0, 1)
    depths = np.round(rng.uniform(0, 40, n_events), 1)
    times = BASE_TIME_MS + rng.integers(0, 72 * HOUR_MS, n_events)

    return [
        {
            "type": "Feature",
            "id": f"syn{i:06d}",
            "properties": {
                "mag": float(mags[i]),
                "time": int(times[i]),
                "place": f"{int(rng.integers(1, 40))}km N of Synthetic Site {i % max(n_swarms, 1)}",
            },
            "geometry": {
                "type": "Point",
                "coordinates": [float(points[i, 1]), float(points[i, 0]), float(depths[i])],
            },
        }
        for i in range(n_events)
    ]


@click.command()
@click.option("--events", "n_events", default=1000, show_default=True, help="Number of events")
@click.option("--swarms", "n_swarms", default=8, show_default=True, help="Number of swarms")
@click.option("--noise", "noise_fraction", default=0.2, show_default=True, help="Background share")
@click.option("--max-distance-km", default=100.0, show_default=True)
@click.option("--min-members", default=3, show_default=True)
@click.option("--seed", default=42, show_default=True)
@click.option("--json", "as_json", is_flag=True, help="Print the profile summary as JSON")
def main(
    n_events: int,
    n_swarms: int,
    noise_fraction: float,
    max_distance_km: float,
    min_members: int,
    seed: int,
    as_json: bool,
) -> None:
    """Compare direct vs indexed clustering on synthetic data."""
    features = synthetic_features(n_events, n_swarms, noise_fraction, seed)
    events = parse_events(features).valid
    profiler = DistanceProfiler()

    profiler.start("direct")
    direct = find_clusters_direct(events, max_distance_km, min_members, profiler)
    profiler.stop(clusters=direct)

    profiler.start("indexed")
    indexed = find_clusters_indexed(events, max_distance_km, min_members, profiler)
    profiler.stop(clusters=indexed)

    equivalent = {cluster_key(c) for c in direct} == {cluster_key(c) for c in indexed}
    summary = profiler.summary()

    if as_json:
        payload = {"profiles": summary, "equivalent": equivalent}
        click.echo(orjson.dumps(payload, option=orjson.OPT_INDENT_2).decode())
    else:
        click.echo(f"\n  events={n_events}  swarms={n_swarms}  radius={max_distance_km}km\n")
        for record in summary:
            click.echo(
                f"  {record['name']:<8} {record['elapsed_ms']:>10.1f} ms  "
                f"{record['distance_calculations']:>10} distance calls  "
                f"clusters={record['result']['clusters_found']}"
            )
        click.echo(f"\n  membership identical: {equivalent}\n")

    if not equivalent:
        sys.exit(1)


if __name__ == "__main__":
    main()
