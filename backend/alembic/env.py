"""Alembic environment for the kudos schema.

The target database comes from ``alembic -x database_url=...`` when given,
otherwise from ``Settings.database_url`` (``KUDOS_DATABASE_URL`` or
``DATABASE_URL``). SQLite files used in development are built by
``kudos init-db`` and never migrated.
"""

from __future__ import annotations

from logging.config import fileConfig

from alembic import context
from sqlalchemy import engine_from_config, pool
from sqlalchemy.engine import make_url

from backend.app.core.config import Settings
from backend.app.db import models  # noqa: F401  # registers tables on Base.metadata
from backend.app.db.base import Base

alembic_config = context.config
if alembic_config.config_file_name is not None:
    fileConfig(alembic_config.config_file_name)

target_metadata = Base.metadata


def migration_url() -> str:
    raw = context.get_x_argument(as_dictionary=True).get("database_url") or Settings().database_url
    url = make_url(raw)
    if url.get_backend_name() != "postgresql":
        raise RuntimeError(
            f"Migrations target PostgreSQL only, got '{url.get_backend_name()}'. "
            "Create SQLite databases with `kudos init-db`."
        )
    return url.render_as_string(hide_password=False)


def _configure(**options) -> None:
    context.configure(
        target_metadata=target_metadata,
        compare_type=True,
        **options,
    )
    with context.begin_transaction():
        context.run_migrations()


def run_offline() -> None:
    _configure(url=migration_url(), literal_binds=True, dialect_opts={"paramstyle": "named"})


def run_online() -> None:
    section = alembic_config.get_section(alembic_config.config_ini_section) or {}
    section["sqlalchemy.url"] = migration_url()
    engine = engine_from_config(section, prefix="sqlalchemy.", poolclass=pool.NullPool)
    with engine.connect() as connection:
        _configure(connection=connection)


if context.is_offline_mode():
    run_offline()
else:
    run_online()
