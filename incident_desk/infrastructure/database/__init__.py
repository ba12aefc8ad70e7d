"""
Database Infrastructure
=======================

Engine and session factory for the ticket store.

PostgreSQL through asyncpg in deployments; SQLite through aiosqlite for
local runs and the test suite. Both go through SQLAlchemy 2.0's async API.
"""

from typing import Optional

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from incident_desk.config import settings
from incident_desk.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


class Base(DeclarativeBase):
    """Declarative base shared by every ORM model."""
    pass


_engine: Optional[AsyncEngine] = None
_session_maker: Optional[async_sessionmaker[AsyncSession]] = None


def build_engine(database_url: str, echo: bool = False) -> AsyncEngine:
    """
    Create an async engine for ``database_url``.

    Pool sizing applies to server databases only. For asyncpg the libpq
    style ``sslmode=`` query parameter is rewritten to ``ssl=``.
    """
    if database_url.startswith("sqlite"):
        # Writers wait on the file lock instead of failing immediately
        return create_async_engine(database_url, echo=echo, connect_args={"timeout": 30})

    return create_async_engine(
        database_url.replace("sslmode=", "ssl="),
        echo=echo,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        pool_pre_ping=True,
    )


def build_session_maker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    # Entities are built from rows inside the session, never lazily afterwards
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


def init_database(database_url: Optional[str] = None) -> AsyncEngine:
    """Create the process-wide engine and session factory. Called at startup."""
    global _engine, _session_maker

    url = database_url or settings.database_url
    _engine = build_engine(url, echo=settings.debug)
    _session_maker = build_session_maker(_engine)
    logger.info("Database engine initialized", extra={"dialect": _engine.dialect.name})
    return _engine


def get_engine() -> AsyncEngine:
    if _engine is None:
        raise RuntimeError("Database engine not initialized. Call init_database() first.")
    return _engine


def get_session_maker() -> async_sessionmaker[AsyncSession]:
    if _session_maker is None:
        raise RuntimeError("Database not initialized. Call init_database() first.")
    return _session_maker


async def close_database() -> None:
    """Dispose of pooled connections. Called at shutdown."""
    global _engine, _session_maker

    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _session_maker = None


async def create_tables(engine: Optional[AsyncEngine] = None) -> None:
    """
    Create missing tables.

    Meant for development and tests; deployments manage the schema with
    migrations.
    """
    # Importing the models registers them on Base.metadata
    import incident_desk.incidents.infrastructure.models  # noqa: F401

    async with (engine or get_engine()).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
