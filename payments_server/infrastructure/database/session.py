"""Async SQLAlchemy engine and session management."""

from __future__ import annotations

from collections.abc import AsyncGenerator
from typing import Any

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from payments_server.core.config import DatabaseSettings, get_settings
from payments_server.infrastructure.database.base import Base

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def engine_options(database: DatabaseSettings, *, debug: bool = False) -> dict[str, Any]:
    """Keyword arguments for ``create_async_engine`` from the database section."""
    options: dict[str, Any] = {"echo": database.echo or debug}
    if make_url(database.url).get_backend_name() == "sqlite":
        # writers for different owners run side by side; let them queue on the file lock
        options["connect_args"] = {"timeout": database.busy_timeout_seconds}
        return options
    if database.pool_size is not None:
        options["pool_size"] = database.pool_size
    if database.max_overflow is not None:
        options["max_overflow"] = database.max_overflow
    options["pool_pre_ping"] = True
    return options


def get_engine() -> AsyncEngine:
    global _engine, _session_factory
    if _engine is None:
        settings = get_settings()
        _engine = create_async_engine(
            settings.database_url,
            **engine_options(settings.database, debug=settings.debug),
        )
        _session_factory = async_sessionmaker(bind=_engine, class_=AsyncSession, expire_on_commit=False)
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    get_engine()
    assert _session_factory is not None
    return _session_factory


async def reset_engine() -> None:
    """Dispose the engine so the next ``get_engine`` call rebuilds it from settings."""
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _session_factory = None


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """One session per request; committed when the request finishes cleanly."""
    async with get_session_factory()() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def init_db() -> None:
    """Create missing tables; deployed databases are managed by Alembic."""
    from payments_server.db import models  # noqa: F401

    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
