"""
Cluster API — FastAPI application.

Endpoints:
    GET  /health                                 Liveness check
    POST /api/calculate-clusters                 Cluster a set of GeoJSON earthquakes
    GET  /api/cluster-definitions/{id_or_slug}   Stored definition of a significant cluster
    POST /api/cluster-definitions                Create or replace a definition by id
    GET  /api/cache-stats                        Cluster cache statistics
"""

from __future__ import annotations

from contextlib import asynccontextmanager

import click
import orjson
import structlog
import uvicorn
from fastapi import BackgroundTasks, Depends, FastAPI, HTTPException, Request, Response
from pydantic import ValidationError
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from quakecluster.config import get_settings
from quakecluster.config.logging import setup_logging
from quakecluster.db.engine import get_optional_session_factory
from quakecluster.db.repositories import ClusterDefinitionRepo
from quakecluster.pipeline.cache import ClusterCache
from quakecluster.pipeline.persist import store_cluster_definitions

from .schemas import (
    CacheStatsResponse,
    CalculateClustersRequest,
    ClusterDefinitionResponse,
    ClusterDefinitionWrite,
    ClusterDefinitionWriteResponse,
    HealthResponse,
)

logger = structlog.get_logger(__name__)


# ── Dependencies ─────────────────────────────────────────────


def get_session_factory() -> async_sessionmaker[AsyncSession] | None:
    """Store session factory, None when DATABASE_URL is unset."""
    return get_optional_session_factory()


def get_cluster_cache(
    session_factory: async_sessionmaker[AsyncSession] | None = Depends(get_session_factory),
) -> ClusterCache:
    settings = get_settings()
    return ClusterCache(
        session_factory,
        ttl_seconds=settings.cache_ttl_seconds,
        index_threshold=settings.cluster_index_threshold,
    )


# ── Lifespan ─────────────────────────────────────────────────


@asynccontextmanager
async def lifespan(app: FastAPI):  # noqa: ARG001
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_format)
    if not settings.store_enabled:
        logger.warning("store_not_configured", detail="cache and definitions disabled")
    logger.info("api_started", port=settings.port, store_enabled=settings.store_enabled)
    yield
    logger.info("api_shutdown")


# ── App ──────────────────────────────────────────────────────

app = FastAPI(
    title="Quake Cluster API",
    version="0.1.0",
    lifespan=lifespan,
)


# ── Endpoints ────────────────────────────────────────────────


@app.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    return HealthResponse(store_enabled=get_settings().store_enabled)


@app.post("/api/calculate-clusters")
async def calculate_clusters(
    body: CalculateClustersRequest,
    background_tasks: BackgroundTasks,
    cache: ClusterCache = Depends(get_cluster_cache),
) -> Response:
    """Cluster the posted earthquakes.

    Returns an array of clusters, each an array of the posted feature
    objects. Significant clusters are persisted after the response is sent.
    """
    settings = get_settings()
    structlog.contextvars.bind_contextvars(
        num_events=len(body.earthquakes),
        max_distance_km=body.max_distance_km,
        min_quakes=body.min_quakes,
    )
    try:
        result = await cache.get_or_compute(
            body.earthquakes,
            body.max_distance_km,
            body.min_quakes,
            extra_fingerprint=body.fingerprint_extra(),
        )
    finally:
        structlog.contextvars.clear_contextvars()

    headers = {"X-Cache-Hit": "true" if result.cache_hit else "false"}
    if result.cache_info:
        headers["X-Cache-Info"] = result.cache_info
    if result.skipped_count is not None:
        headers["X-Skipped-Events"] = str(result.skipped_count)

    # cached results were already persisted when they were computed
    if not result.cache_hit and result.clusters and cache.enabled:
        background_tasks.add_task(
            store_cluster_definitions,
            cache.session_factory,
            result.clusters,
            settings.significant_cluster_min_members,
            settings.significant_cluster_min_magnitude,
        )

    return Response(
        content=orjson.dumps(result.to_features()),
        media_type="application/json",
        headers=headers,
    )


@app.get("/api/cluster-definitions/{id_or_slug}", response_model=ClusterDefinitionResponse)
async def get_cluster_definition(
    id_or_slug: str,
    session_factory: async_sessionmaker[AsyncSession] | None = Depends(get_session_factory),
) -> ClusterDefinitionResponse:
    """Look up a stored definition by id or slug."""
    if session_factory is None:
        raise HTTPException(status_code=503, detail="Cluster store not configured")

    async with session_factory() as session:
        definition = await ClusterDefinitionRepo(session).get_by_id_or_slug(id_or_slug)

    if definition is None:
        raise HTTPException(status_code=404, detail=f"Cluster definition {id_or_slug} not found")

    return ClusterDefinitionResponse(**definition.to_dict())


@app.post(
    "/api/cluster-definitions",
    status_code=201,
    response_model=ClusterDefinitionWriteResponse,
)
async def upsert_cluster_definition(
    request: Request,
    session_factory: async_sessionmaker[AsyncSession] | None = Depends(get_session_factory),
) -> ClusterDefinitionWriteResponse:
    """Create or replace a definition by id.

    Invalid JSON or fields are a 400 (not FastAPI's 422). The version starts
    at 1 and goes up by one on every replace.
    """
    if session_factory is None:
        raise HTTPException(status_code=503, detail="Cluster store not configured")

    try:
        body = ClusterDefinitionWrite.model_validate_json(await request.body())
    except ValidationError as exc:
        raise HTTPException(
            status_code=400,
            detail=exc.errors(include_url=False, include_context=False, include_input=False),
        ) from exc

    try:
        async with session_factory() as session:
            version = await ClusterDefinitionRepo(session).upsert_by_id(
                body.id, body.definition_fields()
            )
            await session.commit()
    except IntegrityError as exc:
        logger.warning("cluster_definition_conflict", definition_id=body.id, error=str(exc))
        raise HTTPException(
            status_code=409, detail="slug or stable_key already used by another definition"
        ) from exc
    except Exception as exc:
        logger.exception("cluster_definition_store_failed", definition_id=body.id, error=str(exc))
        raise HTTPException(status_code=500, detail="Failed to store cluster definition") from exc

    logger.info("cluster_definition_stored", definition_id=body.id, version=version)
    return ClusterDefinitionWriteResponse(id=body.id, version=version, created=version == 1)


@app.get("/api/cache-stats", response_model=CacheStatsResponse)
async def cache_stats(cache: ClusterCache = Depends(get_cluster_cache)) -> CacheStatsResponse:
    try:
        stats = await cache.cache_stats()
    except Exception as exc:
        logger.exception("cache_stats_failed", error=str(exc))
        raise HTTPException(status_code=500, detail="Failed to read cache statistics") from exc
    return CacheStatsResponse(**stats)


# ── CLI ──────────────────────────────────────────────────────


@click.command()
@click.option("--host", default="0.0.0.0", help="Bind host")
@click.option("--port", default=None, type=int, help="Bind port (defaults to PORT env)")
def cli(host: str, port: int | None) -> None:
    """Start the Cluster API server."""
    settings = get_settings()
    port = port or settings.port
    uvicorn.run(
        "apps.api.main:app",
        host=host,
        port=port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    cli()
