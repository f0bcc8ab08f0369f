"""SQLAlchemy async engine + session factory."""

from __future__ import annotations

import asyncio
import functools
from collections.abc import Callable
from functools import lru_cache
from typing import Any

import structlog
from sqlalchemy.exc import DBAPIError, DisconnectionError, OperationalError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from quakecluster.config import get_settings

logger = structlog.get_logger(__name__)


SessionFactory = async_sessionmaker[AsyncSession]


@lru_cache(maxsize=1)
def get_async_engine() -> AsyncEngine:
    """Create and cache an async engine for DATABASE_URL."""
    settings = get_settings()
    if not settings.database_url:
        raise RuntimeError("DATABASE_URL is not configured")
    return create_async_engine(
        settings.database_url,
        echo=False,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        pool_pre_ping=True,
        pool_recycle=300,
    )


def get_async_session() -> SessionFactory:
    """Return an async session factory."""
    return async_sessionmaker(
        get_async_engine(),
        class_=AsyncSession,
        expire_on_commit=False,
    )


def get_optional_session_factory() -> SessionFactory | None:
    """Session factory, or None when no store is configured.

    The cluster endpoints still work without a store; they just skip the
    cache and definition persistence.
    """
    if not get_settings().store_enabled:
        return None
    return get_async_session()


_TRANSIENT_ERRORS = (
    ConnectionResetError,
    ConnectionRefusedError,
    ConnectionAbortedError,
    BrokenPipeError,
    OSError,
)


def _is_disconnect(exc: BaseException) -> bool:
    """Check if an exception chain indicates a transient disconnect."""
    if isinstance(exc, (DisconnectionError, *_TRANSIENT_ERRORS)):
        return True
    if isinstance(exc, (DBAPIError, OperationalError)):
        if getattr(exc, "connection_invalidated", False):
            return True
        cause = exc.__cause__
        while cause is not None:
            if isinstance(cause, _TRANSIENT_ERRORS):
                return True
            # asyncpg-specific error names
            if type(cause).__name__ in (
                "ConnectionDoesNotExistError",
                "InterfaceError",
                "InternalClientError",
            ):
                return True
            cause = cause.__cause__
    return False


def retry_on_disconnect(
    max_retries: int = 2,
    base_delay: float = 0.5,
) -> Callable[..., Any]:
    """Retry an async repository method on transient DB disconnects.

    The failed connection is invalidated so the pool replaces it, then the
    call is retried with exponential backoff: base_delay * 2^attempt seconds.
    Any other error propagates immediately.
    """

    def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
        @functools.wraps(fn)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            for attempt in range(max_retries + 1):
                try:
                    return await fn(*args, **kwargs)
                except Exception as exc:
                    if not _is_disconnect(exc) or attempt == max_retries:
                        raise
                    delay = base_delay * (2 ** attempt)
                    logger.warning(
                        "transient_db_disconnect_retrying",
                        operation=fn.__qualname__,
                        attempt=attempt + 1,
                        max_retries=max_retries,
                        delay_s=delay,
                        error=str(exc),
                    )
                    session = _find_session(args, kwargs)
                    if session is not None:
                        await session.rollback()
                    await asyncio.sleep(delay)
            raise AssertionError("unreachable")

        return wrapper
    return decorator


def _find_session(args: tuple[Any, ...], kwargs: dict[str, Any]) -> AsyncSession | None:
    """Try to extract an AsyncSession from method args (self.session pattern)."""
    if "session" in kwargs and isinstance(kwargs["session"], AsyncSession):
        return kwargs["session"]
    if args and hasattr(args[0], "session") and isinstance(args[0].session, AsyncSession):
        return args[0].session
    return None
