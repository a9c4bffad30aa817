"""Async database engine and session management.

Provides async PostgreSQL connections via SQLModel and asyncpg.
Includes connection pool instrumentation for diagnostics.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from sqlalchemy import event
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool
from sqlmodel.ext.asyncio.session import AsyncSession

from ticketsync.config import get_settings

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from sqlalchemy.ext.asyncio import AsyncEngine
    from sqlalchemy.pool import _ConnectionRecord

logger = logging.getLogger(__name__)
_pool_logger = logging.getLogger(f"{__name__}.pool")


def _pool_status(pool: object) -> str:
    """Format current pool status for logging."""

    # QueuePool exposes these as methods; NullPool does not have them
    def _get(name: str) -> object:
        attr = getattr(pool, name, None)
        if attr is None:
            return "?"
        return attr() if callable(attr) else attr

    return (
        f"size={_get('size')} checked_in={_get('checkedin')}"
        f" checked_out={_get('checkedout')} overflow={_get('overflow')}"
    )


def _install_pool_listeners(engine: AsyncEngine) -> None:
    """Log pool connect, checkout and invalidation events.

    Invalidations are what a dropped database connection looks like from
    here, so they are logged at WARNING.
    """
    pool = engine.sync_engine.pool

    @event.listens_for(pool, "checkout")
    def _on_checkout(
        _dbapi_conn: object, _rec: _ConnectionRecord, _proxy: object
    ) -> None:
        _pool_logger.debug("CHECKOUT %s", _pool_status(pool))

    @event.listens_for(pool, "connect")
    def _on_connect(_dbapi_conn: object, _rec: _ConnectionRecord) -> None:
        _pool_logger.info("NEW_CONN %s", _pool_status(pool))

    @event.listens_for(pool, "invalidate")
    def _on_invalidate(
        _dbapi_conn: object,
        _rec: _ConnectionRecord,
        exception: BaseException | None,
        _soft: bool,
    ) -> None:
        _pool_logger.warning(
            "INVALIDATE soft=%s exception=%s %s",
            _soft,
            type(exception).__name__ if exception else None,
            _pool_status(pool),
        )


@dataclass
class _DatabaseState:
    """Internal state holder for database engine and session factory."""

    engine: AsyncEngine | None = field(default=None)
    session_factory: async_sessionmaker[AsyncSession] | None = field(default=None)


# Module-level state (initialized on startup)
_state = _DatabaseState()


def get_database_url() -> str:
    """Get database URL from Settings.

    Returns:
        PostgreSQL connection string with asyncpg driver.

    Raises:
        ValueError: If DATABASE__URL is not configured.
    """
    url = get_settings().database.url
    if not url:
        msg = (
            "DATABASE__URL is not configured. "
            "Set it in your .env file or as an environment variable."
        )
        raise ValueError(msg)
    return url


def get_engine() -> AsyncEngine | None:
    """Get the database engine for direct access.

    Primarily for test fixtures that need to call create_all/drop_all.

    Returns:
        The async engine if initialized, None otherwise.
    """
    return _state.engine


async def init_db() -> None:
    """Initialize database engine and session factory.

    Call this on application startup. Creates the async engine with
    connection pooling configured, or NullPool when
    DATABASE__USE_NULL_POOL is set.
    """
    settings = get_settings()
    pool_args: dict[str, Any] = (
        {"poolclass": NullPool}
        if settings.database.use_null_pool
        else {
            "pool_size": 5,
            "max_overflow": 10,
            "pool_pre_ping": True,
            "pool_recycle": 3600,  # Recycle stale connections after 1 hour
        }
    )
    _state.engine = create_async_engine(
        get_database_url(),
        echo=settings.database.echo,
        connect_args={
            "timeout": 10,  # Connection timeout in seconds
            "command_timeout": 30,  # Query timeout in seconds
        },
        **pool_args,
    )

    _install_pool_listeners(_state.engine)

    _state.session_factory = async_sessionmaker(
        _state.engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


async def close_db() -> None:
    """Close database connections.

    Call this on application shutdown. Disposes of the engine and clears
    module state.
    """
    if _state.engine:
        await _state.engine.dispose()
        _state.engine = None
        _state.session_factory = None


@asynccontextmanager
async def get_session() -> AsyncIterator[AsyncSession]:
    """Get an async database session.

    Yields a session that auto-commits on success and rolls back on error.
    Exceptions are logged before re-raising.

    Lazily initializes the database engine on first use if not already
    initialized, so the engine is created in the current event loop.

    Usage:
        async with get_session() as session:
            await session.execute(stmt)

    Yields:
        AsyncSession: Database session for executing queries.

    Raises:
        ValueError: If DATABASE__URL is not configured.
    """
    if _state.session_factory is None:
        await init_db()

    session_factory = _state.session_factory
    assert session_factory is not None  # For type narrowing

    async with session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            logger.exception("Database session error, rolling back transaction")
            await session.rollback()
            raise
