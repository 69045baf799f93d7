"""
Migrations for the userservice store
=====================================

Covers the six tables declared in :mod:`userservice.database.models`:
users, groups, ranks, group/user permission records and memberships.

The target database is ``DATABASE_URL`` (read from the environment or
``.env``, same as the service itself).  ``sqlalchemy.url`` in
``alembic.ini`` is only used when that variable is unset.
"""

from __future__ import annotations

import os
from logging.config import fileConfig

from dotenv import load_dotenv
from sqlalchemy import engine_from_config, pool

from alembic import context

load_dotenv()

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

if os.getenv("DATABASE_URL"):
    config.set_main_option("sqlalchemy.url", os.environ["DATABASE_URL"])

from userservice.database.models import Base  # noqa: E402

target_metadata = Base.metadata


def _configure(url: str, **kwargs) -> None:
    # SQLite cannot ALTER constraints in place; batch mode rebuilds the table
    context.configure(
        target_metadata=target_metadata,
        compare_type=True,
        render_as_batch=url.startswith("sqlite"),
        **kwargs,
    )


def migrate_to_script() -> None:
    """Emit the users/groups/ranks DDL as SQL instead of applying it."""
    url = config.get_main_option("sqlalchemy.url")
    _configure(url, url=url, literal_binds=True, dialect_opts={"paramstyle": "named"})
    with context.begin_transaction():
        context.run_migrations()


def migrate_database() -> None:
    """Apply pending revisions to the database at ``DATABASE_URL``."""
    url = config.get_main_option("sqlalchemy.url")
    engine = engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )
    with engine.connect() as connection:
        _configure(url, connection=connection)
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    migrate_to_script()
else:
    migrate_database()
