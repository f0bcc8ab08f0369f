"""
Shared test fixtures.
"""

from __future__ import annotations

from typing import Any

import pytest
from factories import BASE_TIME_MS, HOUR_MS, make_feature, two_clumps

from quakecluster.config.settings import get_settings


@pytest.fixture(autouse=True)
def _isolated_settings(monkeypatch):
    """Keep tests off the real .env / environment store."""
    monkeypatch.setenv("DATABASE_URL", "")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def ridgecrest_features() -> list[dict[str, Any]]:
    """Three events within a few km of each other."""
    return [
        make_feature("a", 35.70, -117.60, mag=4.5, time_ms=BASE_TIME_MS),
        make_feature("b", 35.72, -117.58, mag=3.1, time_ms=BASE_TIME_MS + HOUR_MS),
        make_feature("c", 35.69, -117.63, mag=2.8, time_ms=BASE_TIME_MS + 2 * HOUR_MS),
    ]


@pytest.fixture
def clump_features() -> list[dict[str, Any]]:
    return two_clumps()
