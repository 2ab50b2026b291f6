"""Async engine, sessions and transaction boundaries.

A conversion chunk is one unit of work: it runs inside `transaction()`,
which commits when the chunk finishes and rolls back when the store
raises. Failures and slow units of work are reported through `db_logger`.
"""

import re
import time
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from content_converter.core.config import Settings, get_settings
from content_converter.core.logging import db_logger, get_logger

logger = get_logger(__name__)

_ASYNC_DRIVER_PREFIXES = ("postgres://", "postgresql://")

# Table names as they appear in PostgreSQL and SQLite error messages
_TABLE_PATTERNS = [
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r'relation "([^"]+)"',
        r"table '([^']+)'",
        r'INSERT INTO "?([^\s"(]+)"?',
        r'UPDATE "?([^\s"]+)"?',
        r'DELETE FROM "?([^\s"]+)"?',
    )
]


class Base(DeclarativeBase):
    """Declarative base for every table of the converter."""


def to_async_url(db_url: str) -> str:
    """Point a postgres URL at the asyncpg driver; other URLs pass through."""
    for prefix in _ASYNC_DRIVER_PREFIXES:
        if db_url.startswith(prefix):
            return "postgresql+asyncpg://" + db_url[len(prefix) :]
    return db_url


def _engine_options(settings: Settings) -> dict[str, Any]:
    connect_args: dict[str, Any] = {
        "timeout": settings.db_connect_timeout,
        "command_timeout": settings.db_command_timeout,
    }
    if settings.environment == "production":
        connect_args["ssl"] = "require"
    return {
        "pool_size": settings.db_pool_size,
        "max_overflow": settings.db_max_overflow,
        "pool_timeout": settings.db_pool_timeout,
        "pool_pre_ping": True,
        "echo": settings.debug,
        "connect_args": connect_args,
    }


class DatabaseManager:
    """Owns one async engine and the session factory bound to it.

    The application uses the module-level `db_manager`; scheduled jobs
    create their own instance because they run on a separate event loop.
    """

    def __init__(self) -> None:
        self._engine: AsyncEngine | None = None
        self._session_factory: async_sessionmaker[AsyncSession] | None = None

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            raise RuntimeError("Database not initialized. Call init_db() first.")
        return self._engine

    @property
    def session_factory(self) -> async_sessionmaker[AsyncSession]:
        if self._session_factory is None:
            raise RuntimeError("Database not initialized. Call init_db() first.")
        return self._session_factory

    def init_db(self) -> None:
        """Create the engine and session factory from settings."""
        settings = get_settings()
        db_url = to_async_url(str(settings.database_url))

        try:
            self._engine = create_async_engine(db_url, **_engine_options(settings))
        except Exception as e:
            db_logger.connection_error(e, db_url)
            raise

        self._session_factory = async_sessionmaker(
            bind=self._engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )
        logger.info(
            "Database engine ready",
            extra={"pool_size": settings.db_pool_size},
        )

    async def close(self) -> None:
        """Dispose of the engine; safe to call when never initialized."""
        if self._engine is None:
            return
        await self._engine.dispose()
        self._engine = None
        self._session_factory = None
        logger.info("Database engine disposed")

    async def check_connection(self) -> bool:
        """Run SELECT 1; False on any connection problem."""
        try:
            async with self.session_factory() as session:
                await session.execute(text("SELECT 1"))
        except (SQLAlchemyError, OSError, RuntimeError) as e:
            db_logger.connection_error(e, str(get_settings().database_url))
            return False
        return True


db_manager = DatabaseManager()


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency yielding a session committed at the end of the request."""
    async with db_manager.session_factory() as session:
        async with transaction(session, context="request session"):
            yield session


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """FastAPI dependency for handlers that open one session per chunk."""
    return db_manager.session_factory


@asynccontextmanager
async def transaction(
    session: AsyncSession,
    table: str | None = None,
    context: str | None = None,
) -> AsyncGenerator[AsyncSession, None]:
    """Commit on success; roll back, log and re-raise on SQLAlchemy errors.

    Example:
        async with transaction(session, context="notes conversion chunk 3"):
            await pipeline.convert_ids(record_ids)
    """
    label = context or table or "unnamed transaction"
    start_time = time.monotonic()

    try:
        yield session
        await session.commit()
    except SQLAlchemyError as e:
        await session.rollback()
        db_logger.transaction_failure(
            e,
            table=table or _table_from_error(e),
            context=label,
        )
        raise
    finally:
        duration_ms = (time.monotonic() - start_time) * 1000
        if duration_ms > get_settings().db_slow_query_threshold_ms:
            db_logger.slow_query(
                query=f"transaction ({label})",
                duration_ms=duration_ms,
                table=table,
            )


def _table_from_error(error: Exception) -> str | None:
    message = str(error)
    for pattern in _TABLE_PATTERNS:
        match = pattern.search(message)
        if match:
            return match.group(1)
    return None
