"""
Tests for configuration and settings.

Covers:
- Default values
- Environment variable loading
- Derived property store_enabled
- Validation of thresholds
"""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from quakecluster.config.settings import Settings, get_settings


class TestDefaults:
    """Test settings defaults."""

    def test_clustering_defaults(self) -> None:
        s = Settings(database_url="")
        assert s.cluster_max_distance_km == 100.0
        assert s.cluster_min_members == 3
        assert s.cluster_index_threshold == 100

    def test_cache_and_significance_defaults(self) -> None:
        s = Settings(database_url="")
        assert s.cache_ttl_seconds == 3600
        assert s.significant_cluster_min_members == 3
        assert s.significant_cluster_min_magnitude == 3.0

    def test_store_disabled_without_url(self) -> None:
        assert not Settings(database_url="").store_enabled

    def test_store_enabled_with_url(self) -> None:
        assert Settings(database_url="postgresql+asyncpg://x").store_enabled


class TestEnvironment:
    def test_reads_env_vars(self, monkeypatch) -> None:
        monkeypatch.setenv("CLUSTER_INDEX_THRESHOLD", "250")
        monkeypatch.setenv("CACHE_TTL_SECONDS", "60")
        monkeypatch.setenv("LOG_FORMAT", "console")
        s = Settings()
        assert s.cluster_index_threshold == 250
        assert s.cache_ttl_seconds == 60
        assert s.log_format == "console"

    def test_unread_env_vars_are_ignored(self, monkeypatch) -> None:
        monkeypatch.setenv("DATABASE_URL_SYNC", "postgresql://x")
        monkeypatch.setenv("ENVIRONMENT", "production")
        s = Settings()
        assert "database_url_sync" not in Settings.model_fields
        assert not hasattr(s, "environment")

    def test_get_settings_is_cached(self) -> None:
        assert get_settings() is get_settings()


class TestValidation:
    def test_rejects_non_positive_distance(self) -> None:
        with pytest.raises(ValidationError):
            Settings(cluster_max_distance_km=0)

    def test_rejects_bad_log_level(self) -> None:
        with pytest.raises(ValidationError):
            Settings(log_level="LOUD")
