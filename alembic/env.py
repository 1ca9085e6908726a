import asyncio
import logging
import sys
from logging.config import fileConfig
from os.path import abspath, dirname

from sqlalchemy import pool
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import async_engine_from_config

from alembic import context

sys.path.insert(0, dirname(dirname(abspath(__file__))))

config = context.config
if config.config_file_name is not None:
  fileConfig(config.config_file_name)

import qrbatch.schema.batch  # noqa: E402, F401
from qrbatch.core.database import DATABASE_URL, Base  # noqa: E402

target_metadata = Base.metadata
logger = logging.getLogger("alembic.runtime.migration")


def _database_url() -> str:
  if not DATABASE_URL:
    raise RuntimeError("QRBATCH_PG_DSN (or DATABASE_URL) must be set to run migrations.")
  return DATABASE_URL


def run_migrations_offline() -> None:
  context.configure(url=_database_url(), target_metadata=target_metadata, literal_binds=True, dialect_opts={"paramstyle": "named"})
  with context.begin_transaction():
    context.run_migrations()


def do_run_migrations(connection: Connection) -> None:
  context.configure(connection=connection, target_metadata=target_metadata, compare_type=True)
  with context.begin_transaction():
    context.run_migrations()
  logger.info("batch schema at %s", ", ".join(context.get_context().get_current_heads()) or "base")


async def run_async_migrations() -> None:
  """Migrate through asyncpg, the same driver the worker uses."""
  configuration = config.get_section(config.config_ini_section) or {}
  configuration["sqlalchemy.url"] = _database_url()
  connectable = async_engine_from_config(configuration, prefix="sqlalchemy.", poolclass=pool.NullPool)
  async with connectable.connect() as connection:
    await connection.run_sync(do_run_migrations)
  await connectable.dispose()


if context.is_offline_mode():
  run_migrations_offline()
else:
  asyncio.run(run_async_migrations())
