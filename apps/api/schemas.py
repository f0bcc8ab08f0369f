"""Pydantic schemas for the Cluster API."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class CalculateClustersRequest(BaseModel):
    """Request body for POST /api/calculate-clusters.

    Field names follow the public camelCase wire format; snake_case
    names are accepted too.
    """

    model_config = ConfigDict(populate_by_name=True)

    earthquakes: list[Any] = Field(
        min_length=1,
        description="GeoJSON features; malformed elements are skipped, not rejected",
    )
    max_distance_km: float = Field(alias="maxDistanceKm", gt=0)
    min_quakes: int = Field(alias="minQuakes", gt=0)
    last_fetch_time: int | str | None = Field(
        default=None,
        alias="lastFetchTime",
        description="Caller freshness marker, folded into the cache key",
    )
    time_window_hours: float | None = Field(default=None, alias="timeWindowHours")

    def fingerprint_extra(self) -> dict[str, Any]:
        return {
            "lastFetchTime": self.last_fetch_time,
            "timeWindowHours": self.time_window_hours,
        }


class ClusterDefinitionResponse(BaseModel):
    """Stored definition of a significant cluster."""

    id: str
    stable_key: str
    slug: str
    title: str | None = None
    description: str | None = None
    strongest_event_id: str
    event_ids: list[str]
    event_count: int
    max_magnitude: float
    min_magnitude: float | None = None
    mean_magnitude: float | None = None
    start_time_ms: int
    end_time_ms: int
    duration_hours: float | None = None
    location_name: str | None = None
    centroid_lat: float | None = None
    centroid_lon: float | None = None
    radius_km: float | None = None
    depth_range: str | None = None
    significance_score: float | None = None
    version: int
    created_at: datetime | None = None
    updated_at: datetime | None = None


class ClusterDefinitionWrite(BaseModel):
    """Request body for POST /api/cluster-definitions.

    Strict types: ids must be JSON strings and times JSON integers.
    A missing stable_key falls back to the id.
    """

    model_config = ConfigDict(strict=True, extra="ignore")

    id: str = Field(min_length=1, max_length=64)
    slug: str = Field(min_length=1, max_length=255)
    strongest_event_id: str = Field(min_length=1)
    event_ids: list[str]
    max_magnitude: float
    start_time_ms: int
    end_time_ms: int
    event_count: int = Field(ge=0)

    stable_key: str | None = Field(default=None, min_length=1, max_length=255)
    title: str | None = None
    description: str | None = None
    min_magnitude: float | None = None
    mean_magnitude: float | None = None
    duration_hours: float | None = None
    location_name: str | None = None
    centroid_lat: float | None = None
    centroid_lon: float | None = None
    radius_km: float | None = None
    depth_range: str | None = None
    significance_score: float | None = None

    def definition_fields(self) -> dict[str, Any]:
        """Column values for every field except id (version is server-managed)."""
        fields = self.model_dump(exclude={"id"})
        fields["stable_key"] = self.stable_key or self.id
        return fields


class ClusterDefinitionWriteResponse(BaseModel):
    """Response body for POST /api/cluster-definitions."""

    id: str
    version: int
    created: bool


class CacheStatsResponse(BaseModel):
    """Response body for GET /api/cache-stats."""

    enabled: bool
    ttl_seconds: int | None = None
    total_entries: int = 0
    active_entries: int = 0
    expired_entries: int = 0
    total_payload_bytes: int = 0
    avg_payload_bytes: float = 0.0
    oldest_entry: str | None = None
    newest_entry: str | None = None


class HealthResponse(BaseModel):
    """Response body for GET /health."""

    status: str = "ok"
    version: str = "0.1.0"
    store_enabled: bool = False
