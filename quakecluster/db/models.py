"""
SQLAlchemy ORM models for the cluster store.

Two tables, both managed by Alembic migrations:

  cluster_cache        short-lived cache of clustering results keyed by a
                       request fingerprint (overwritten on every write)
  cluster_definitions  durable, versioned identity of recurring significant
                       clusters, looked up by stable_key
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import (
    BigInteger,
    DateTime,
    Float,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Declarative base for all models."""

    type_annotation_map = {
        dict: JSONB,
        list: JSONB,
    }


class ClusterCacheEntry(Base):
    """Cached clustering output for one request fingerprint."""

    __tablename__ = "cluster_cache"

    cache_key: Mapped[str] = mapped_column(String(512), primary_key=True)
    payload: Mapped[str] = mapped_column(
        Text, nullable=False,
        comment="JSON array of clusters, each an array of GeoJSON features",
    )
    request_params: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), index=True
    )


class ClusterDefinition(Base):
    """Persisted identity of a significant cluster.

    Created the first time a stable_key is seen, updated in place (and
    version bumped) on every later sighting. slug is fixed at creation.
    """

    __tablename__ = "cluster_definitions"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    stable_key: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    slug: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    title: Mapped[str | None] = mapped_column(Text)
    description: Mapped[str | None] = mapped_column(Text)
    strongest_event_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    event_ids: Mapped[list] = mapped_column(JSONB, nullable=False)
    event_count: Mapped[int] = mapped_column(Integer, nullable=False)
    max_magnitude: Mapped[float] = mapped_column(Float, nullable=False, index=True)
    min_magnitude: Mapped[float | None] = mapped_column(Float)
    mean_magnitude: Mapped[float | None] = mapped_column(Float)
    start_time_ms: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)
    end_time_ms: Mapped[int] = mapped_column(BigInteger, nullable=False)
    duration_hours: Mapped[float | None] = mapped_column(Float)
    location_name: Mapped[str | None] = mapped_column(Text)
    centroid_lat: Mapped[float | None] = mapped_column(Float)
    centroid_lon: Mapped[float | None] = mapped_column(Float)
    radius_km: Mapped[float | None] = mapped_column(Float, default=0.0)
    depth_range: Mapped[str | None] = mapped_column(String(64))
    significance_score: Mapped[float | None] = mapped_column(Float, index=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), index=True
    )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "stable_key": self.stable_key,
            "slug": self.slug,
            "title": self.title,
            "description": self.description,
            "strongest_event_id": self.strongest_event_id,
            "event_ids": list(self.event_ids or []),
            "event_count": self.event_count,
            "max_magnitude": self.max_magnitude,
            "min_magnitude": self.min_magnitude,
            "mean_magnitude": self.mean_magnitude,
            "start_time_ms": self.start_time_ms,
            "end_time_ms": self.end_time_ms,
            "duration_hours": self.duration_hours,
            "location_name": self.location_name,
            "centroid_lat": self.centroid_lat,
            "centroid_lon": self.centroid_lon,
            "radius_km": self.radius_km,
            "depth_range": self.depth_range,
            "significance_score": self.significance_score,
            "version": self.version,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }
