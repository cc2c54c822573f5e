"""Alembic environment — async migrations for the BloodMatch schema.

Invariants:
    - Target URL precedence: `alembic -x db_url=...` > Settings.database_url
      (env DATABASE_URL / .env, postgresql:// already rewritten for asyncpg)
    - Every model module is imported through bloodmatch.models before
      autogenerate reads Base.metadata

Design Decisions:
    - Settings is the single place that knows the URL; alembic.ini carries no URL
    - render_as_batch on SQLite so ALTERs work against a local file database
"""

import asyncio
from logging.config import fileConfig

from sqlalchemy import pool
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import create_async_engine

from alembic import context

from bloodmatch.config import get_settings
from bloodmatch.db.base import Base
import bloodmatch.models  # noqa: F401

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def _target_url() -> str:
    return context.get_x_argument(as_dictionary=True).get(
        "db_url", get_settings().database_url,
    )


def _configure(**kwargs) -> None:
    url = kwargs.get("url") or str(kwargs["connection"].engine.url)
    context.configure(
        target_metadata=target_metadata,
        compare_type=True,
        render_as_batch=url.startswith("sqlite"),
        **kwargs,
    )


def run_migrations_offline() -> None:
    """Emit SQL to stdout instead of touching a database."""
    _configure(
        url=_target_url(),
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )
    with context.begin_transaction():
        context.run_migrations()


def _migrate(connection: Connection) -> None:
    _configure(connection=connection)
    with context.begin_transaction():
        context.run_migrations()


async def run_migrations_online() -> None:
    engine = create_async_engine(_target_url(), poolclass=pool.NullPool)
    async with engine.connect() as connection:
        await connection.run_sync(_migrate)
    await engine.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    asyncio.run(run_migrations_online())
