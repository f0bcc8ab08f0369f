"""
Pydantic Settings — single source of truth for all configuration.

Reads from environment variables (and .env file in dev).
Every component imports `get_settings()` to resolve its config.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application-wide settings loaded from env vars."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ── Database ──────────────────────────────────────
    database_url: str = Field(
        default="",
        description="Async Postgres DSN (postgresql+asyncpg://...). Empty disables the store",
    )
    db_pool_size: int = 10
    db_max_overflow: int = 5

    # ── Clustering ───────────────────────────────────
    cluster_max_distance_km: float = Field(
        default=100.0,
        gt=0,
        description="Default neighbour radius when the caller does not pass one",
    )
    cluster_min_members: int = Field(default=3, gt=0)
    cluster_index_threshold: int = Field(
        default=100,
        ge=0,
        description="Valid-event count at which the spatial index replaces the pairwise scan",
    )

    # ── Cache ────────────────────────────────────────
    cache_ttl_seconds: int = Field(
        default=3600,
        gt=0,
        description="Freshness window for cached cluster results",
    )

    # ── Significant clusters ─────────────────────────
    significant_cluster_min_members: int = Field(default=3, gt=0)
    significant_cluster_min_magnitude: float = 3.0

    # ── Logging ──────────────────────────────────────
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_format: Literal["json", "console"] = "json"

    # ── Runtime ──────────────────────────────────────
    port: int = 8080

    @property
    def store_enabled(self) -> bool:
        return bool(self.database_url)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Cached singleton settings instance."""
    return Settings()
