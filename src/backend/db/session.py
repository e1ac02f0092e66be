"""
Async database engine and session management.

The engine is created by init_db() at startup because the database URL is
only known once settings and the group configuration are loaded.
"""

from typing import AsyncGenerator, Optional

import structlog
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from core.config import settings
from db.base import Base

logger = structlog.get_logger(__name__)

_engine: Optional[AsyncEngine] = None
_session_maker: Optional[async_sessionmaker[AsyncSession]] = None


def create_engine_for_url(database_url: str) -> AsyncEngine:
    """Create an async engine; in-memory SQLite shares one connection."""
    kwargs: dict = {"echo": settings.DEBUG}
    if database_url.startswith("sqlite") and ":memory:" in database_url:
        kwargs["poolclass"] = StaticPool
        kwargs["connect_args"] = {"check_same_thread": False}
    elif not database_url.startswith("sqlite"):
        kwargs["pool_pre_ping"] = True
    return create_async_engine(database_url, **kwargs)


async def init_db(database_url: str | None = None) -> async_sessionmaker[AsyncSession]:
    """
    Create the engine and session factory and make sure all tables exist.

    Safe to call more than once; an existing engine is disposed first.
    """
    global _engine, _session_maker

    # Import models so their tables are registered on Base.metadata
    import models  # noqa: F401

    url = database_url or settings.database_url
    if _engine is not None:
        await _engine.dispose()

    _engine = create_engine_for_url(url)
    _session_maker = async_sessionmaker(_engine, expire_on_commit=False)

    async with _engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    logger.info("Database initialized", dialect=_engine.dialect.name)
    return _session_maker


async def close_db() -> None:
    """Dispose of the engine and its connection pool."""
    global _engine, _session_maker

    if _engine is not None:
        await _engine.dispose()
        logger.info("Database connections closed")
    _engine = None
    _session_maker = None


def get_session_maker() -> async_sessionmaker[AsyncSession]:
    """Get the session factory created by init_db()."""
    if _session_maker is None:
        raise RuntimeError("Database is not initialized; call init_db() first")
    return _session_maker


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency yielding a session per request."""
    async with get_session_maker()() as session:
        yield session
