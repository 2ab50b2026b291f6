"""Alembic migration environment for the converter tables.

Online migrations run on an asyncpg engine built from DATABASE_URL; each
run is bracketed by `db_logger.migration_start` / `migration_end`.
"""

import asyncio
from logging.config import fileConfig

from alembic import context
from sqlalchemy import pool
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import async_engine_from_config

# Importing the package registers every model on Base.metadata
import content_converter.models  # noqa: F401
from content_converter.core.config import get_settings
from content_converter.core.database import Base, to_async_url
from content_converter.core.logging import db_logger

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)


def _configure(**kwargs: object) -> None:
    context.configure(target_metadata=Base.metadata, compare_type=True, **kwargs)


def _migrate() -> None:
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_offline() -> None:
    """Emit the migration SQL instead of executing it."""
    _configure(
        url=to_async_url(str(get_settings().database_url)),
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )
    _migrate()


def _run_on_connection(connection: Connection) -> None:
    _configure(connection=connection)
    _migrate()


async def run_migrations_online() -> None:
    """Apply migrations over a NullPool async engine."""
    settings = get_settings()
    head = context.get_head_revision()
    version = str(head) if head else "base"
    db_logger.migration_start(version=version, description=f"Upgrading to {version}")

    section = config.get_section(config.config_ini_section, {})
    section["sqlalchemy.url"] = to_async_url(str(settings.database_url))
    engine = async_engine_from_config(
        section,
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
        connect_args={
            "timeout": settings.db_connect_timeout,
            "command_timeout": settings.db_command_timeout,
        },
    )

    succeeded = False
    try:
        async with engine.connect() as connection:
            await connection.run_sync(_run_on_connection)
        succeeded = True
    finally:
        db_logger.migration_end(version=version, success=succeeded)
        await engine.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    asyncio.run(run_migrations_online())
