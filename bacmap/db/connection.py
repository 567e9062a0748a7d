"""Database connection and session management for bacmap.

Provides async SQLAlchemy session management with connection pooling.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from bacmap.config import DBConfig, get_config
from bacmap.db.models import Base

# Global engine instance
_engine: AsyncEngine | None = None
_session_factory: sessionmaker | None = None


def create_engine(db_config: DBConfig) -> AsyncEngine:
    """Create an async engine for a database configuration.

    In-memory SQLite uses a single shared connection so every session sees
    the same database.
    """
    url = db_config.url
    engine_kwargs: dict[str, Any] = {"echo": db_config.echo}

    if "sqlite" in url.lower():
        if ":memory:" in url:
            engine_kwargs.update(
                {"poolclass": StaticPool, "connect_args": {"check_same_thread": False}}
            )
    else:
        # SQLite doesn't support connection pooling parameters
        engine_kwargs.update({
            "pool_size": db_config.pool_size,
            "max_overflow": db_config.pool_max_overflow,
            "pool_timeout": db_config.pool_timeout,
            "pool_pre_ping": True,  # Verify connections before using
            "pool_recycle": 3600,  # Recycle connections after 1 hour
        })

    return create_async_engine(url, **engine_kwargs)


def get_engine() -> AsyncEngine:
    """Get or create singleton async engine.

    Returns:
        AsyncEngine: SQLAlchemy async engine
    """
    global _engine

    if _engine is None:
        _engine = create_engine(get_config().db)

    return _engine


def make_session_factory(engine: AsyncEngine) -> sessionmaker:
    return sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,  # Don't expire objects after commit
    )


def get_session_factory() -> sessionmaker:
    """Get or create session factory.

    Returns:
        sessionmaker: Session factory for creating AsyncSession instances
    """
    global _session_factory

    if _session_factory is None:
        _session_factory = make_session_factory(get_engine())

    return _session_factory


async def init_db(engine: AsyncEngine | None = None) -> None:
    """Create all tables.

    Raises:
        SQLAlchemyError: If table creation fails
    """
    engine = engine or get_engine()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    """Close database engine and dispose connections.

    Call this on application shutdown.
    """
    global _engine, _session_factory

    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _session_factory = None
