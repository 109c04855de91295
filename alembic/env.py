from __future__ import annotations

import os
from logging.config import fileConfig

from alembic import context
from sqlalchemy.engine import Connection, Engine

from prizepool.db.engine import DEFAULT_SQLITE_URL, ROOT_DIR, make_engine
from prizepool.db.utils import resolve_sqlite_url
from prizepool.models import Base  # noqa: F401 - import populates metadata
from prizepool.models.types import UnsignedInt

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def _configured_database_url() -> str:
    env_url = os.getenv("POOL_DB_URL")
    if env_url:
        return resolve_sqlite_url(env_url, ROOT_DIR)
    return DEFAULT_SQLITE_URL


DATABASE_URL = _configured_database_url()

# Percent signs need to be escaped due to ConfigParser interpolation rules.
config.set_main_option("sqlalchemy.url", DATABASE_URL.replace("%", "%%"))


def render_item(type_, obj, autogen_context):
    """Render wide unsigned integers as the decimal text column they are stored in."""
    if type_ == "type" and isinstance(obj, UnsignedInt):
        return f"sa.String(length={obj.impl.length})"
    return False


def run_migrations_offline() -> None:
    """Emit the pool schema as SQL without a live connection."""

    context.configure(
        url=DATABASE_URL,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        compare_type=True,
        render_item=render_item,
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Apply migrations against the configured pool database."""

    connectable: Engine | Connection = make_engine(database_url=DATABASE_URL)

    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            compare_type=True,
            render_item=render_item,
            render_as_batch=connection.engine.dialect.name == "sqlite",
        )

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
