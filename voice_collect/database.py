"""Database engine and session management for snapshot persistence."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from voice_collect.config.settings import DatabaseConfig
from voice_collect.models import Base

logger = logging.getLogger(__name__)


def _ensure_sqlite_directory(url: str) -> None:
    """Create the parent directory of a file-backed SQLite database."""

    parsed = make_url(url)
    if not parsed.drivername.startswith("sqlite"):
        return
    database = parsed.database
    if not database or database == ":memory:":
        return
    Path(database).expanduser().resolve().parent.mkdir(parents=True, exist_ok=True)


def _create_engine(config: DatabaseConfig) -> AsyncEngine:
    """Create an async engine with driver-appropriate pooling."""

    engine_options: dict[str, Any] = {
        "echo": config.echo,
        "future": True,
    }

    if make_url(config.url).drivername.startswith("sqlite"):
        _ensure_sqlite_directory(config.url)
    else:
        engine_options["pool_pre_ping"] = True
        engine_options["poolclass"] = NullPool

    return create_async_engine(config.url, **engine_options)


class Database:
    """Owns the engine and hands out sessions."""

    def __init__(self, config: DatabaseConfig) -> None:
        self.engine: AsyncEngine = _create_engine(config)
        self.session_factory = async_sessionmaker(
            self.engine,
            expire_on_commit=False,
            class_=AsyncSession,
        )

    @asynccontextmanager
    async def session_scope(self) -> AsyncIterator[AsyncSession]:
        """Async context manager that yields a configured SQLAlchemy session."""

        async with self.session_factory() as session:
            yield session

    async def init_models(self) -> None:
        """Create database tables if they do not exist."""

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Ensured database tables for %s.", self.engine.url.render_as_string(hide_password=True))

    async def dispose(self) -> None:
        """Dispose of the engine and release pooled connections."""

        await self.engine.dispose()


__all__ = ["Database"]
