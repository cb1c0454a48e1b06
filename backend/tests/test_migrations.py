"""The Alembic environment renders the PostgreSQL schema and refuses SQLite."""

import io
from argparse import Namespace
from pathlib import Path

import pytest
from alembic import command
from alembic.config import Config

ALEMBIC_DIR = Path(__file__).resolve().parents[1] / "alembic"


def _config(database_url: str, buffer: io.StringIO) -> Config:
    # No ini file, so the app's logging setup is left alone
    cfg = Config(output_buffer=buffer, cmd_opts=Namespace(x=[f"database_url={database_url}"]))
    cfg.set_main_option("script_location", str(ALEMBIC_DIR))
    return cfg


def test_offline_upgrade_renders_ledger_constraints() -> None:
    buffer = io.StringIO()
    command.upgrade(_config("postgresql+psycopg://kudos:secret@db:5432/kudos", buffer), "head", sql=True)

    sql = buffer.getvalue()
    for table in ("users", "points_transactions", "recognitions", "rewards", "reward_redemptions"):
        assert f"CREATE TABLE {table}" in sql
    assert "chk_recognitions_points_range" in sql
    assert "points_amount BETWEEN 1 AND 100" in sql


def test_sqlite_urls_are_refused() -> None:
    with pytest.raises(RuntimeError, match="kudos init-db"):
        command.upgrade(_config("sqlite:///kudos.db", io.StringIO()), "head", sql=True)
