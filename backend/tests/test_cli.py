import json
from pathlib import Path

import pytest
from sqlalchemy import inspect
from typer.testing import CliRunner

from backend.app.core.database import Database
from backend.app.services.points import PointsLedger
from backend.cli import app


@pytest.fixture
def runner(db_url: str, monkeypatch: pytest.MonkeyPatch) -> CliRunner:
    monkeypatch.setenv("KUDOS_DATABASE_URL", db_url)
    monkeypatch.setattr("backend.cli.setup_logging", lambda **_kwargs: None)
    return CliRunner()


def test_init_db_creates_tables(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    url = f"sqlite:///{tmp_path / 'fresh.db'}"
    monkeypatch.delenv("KUDOS_DATABASE_URL", raising=False)

    result = CliRunner().invoke(app, ["init-db", "--database-url", url])

    assert result.exit_code == 0, result.output
    db = Database(url=url)
    try:
        tables = set(inspect(db.engine).get_table_names())
    finally:
        db.dispose()
    assert {"users", "points_transactions", "rewards", "reward_redemptions", "recognitions"} <= tables


def test_create_user_with_role(runner: CliRunner, db: Database) -> None:
    result = runner.invoke(
        app,
        ["create-user", "boss@example.com", "--first-name", "Big", "--last-name", "Boss", "--role", "ADMIN"],
        input="password123\npassword123\n",
    )
    assert result.exit_code == 0, result.output
    assert "Created ADMIN boss@example.com" in result.output


def test_grant_credits_user(runner: CliRunner, db: Database, make_user) -> None:
    user = make_user()

    result = runner.invoke(app, ["grant", user.id, "30", "--description", "Conference talk"])

    assert result.exit_code == 0, result.output
    assert "new balance 30" in result.output
    assert PointsLedger(db).get_history(user.id)[0].description == "Conference talk"


def test_grant_unknown_user_fails(runner: CliRunner, db: Database) -> None:
    result = runner.invoke(app, ["grant", "missing", "30"])
    assert result.exit_code == 1
    assert "User not found" in result.output


def test_allocate_prints_report(runner: CliRunner, db: Database, make_user) -> None:
    make_user(allocation=20)
    make_user(allocation=0)

    result = runner.invoke(app, ["allocate"])

    assert result.exit_code == 0, result.output
    report = json.loads(result.stdout)
    assert report == {"credited": 1, "skipped": 1, "failed": 0, "total_points": 20}
