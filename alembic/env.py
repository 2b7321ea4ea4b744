import asyncio
import os
from logging.config import fileConfig

from alembic import context
from sqlalchemy import pool
from sqlalchemy.ext.asyncio import async_engine_from_config

from seller_orders import models  # noqa: F401
from seller_orders.database import Base

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name, disable_existing_loggers=False)

# DATABASE_URL overrides alembic.ini
url = os.getenv("DATABASE_URL") or config.get_main_option("sqlalchemy.url")
if not url:
    raise RuntimeError("Set DATABASE_URL or sqlalchemy.url before running migrations")
config.set_main_option("sqlalchemy.url", url.replace("%", "%%"))


def _configure_and_run(**options) -> None:
    context.configure(target_metadata=Base.metadata, compare_type=True, **options)
    with context.begin_transaction():
        context.run_migrations()


async def _run_online() -> None:
    engine = async_engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )
    async with engine.connect() as connection:
        await connection.run_sync(lambda sync_conn: _configure_and_run(connection=sync_conn))
    await engine.dispose()


if context.is_offline_mode():
    _configure_and_run(url=url, literal_binds=True, dialect_opts={"paramstyle": "named"})
else:
    asyncio.run(_run_online())
