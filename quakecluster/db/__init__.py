"""Database package — engine, session, models, repositories."""

from quakecluster.db.engine import get_async_engine, get_async_session, get_optional_session_factory
from quakecluster.db.models import Base, ClusterCacheEntry, ClusterDefinition

__all__ = [
    "Base",
    "ClusterCacheEntry",
    "ClusterDefinition",
    "get_async_engine",
    "get_async_session",
    "get_optional_session_factory",
]
