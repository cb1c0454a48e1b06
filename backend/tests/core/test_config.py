"""Settings resolution: env aliases, list parsing and the TOML file source."""

from pathlib import Path

import pytest

from backend.app.core.config import AppEnv, Settings


def test_defaults(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("KUDOS_SETTINGS_FILE", str(tmp_path / "absent.toml"))
    cfg = Settings()
    assert cfg.recognition_max_points == 100
    assert cfg.recognition_message_max_chars == 500
    assert cfg.history_default_limit == 50
    assert cfg.history_max_limit == 200
    assert cfg.default_monthly_allocation == 100
    assert cfg.starting_points_balance == 0
    assert cfg.allocation_day == 1
    assert cfg.allocation_timezone == "UTC"


@pytest.mark.parametrize(
    ("raw", "expected"),
    [("dev", AppEnv.DEV), ("Development", AppEnv.DEV), ("local", AppEnv.DEV), ("prod", AppEnv.PRODUCTION), ("", AppEnv.PRODUCTION)],
)
def test_app_env_normalization(monkeypatch: pytest.MonkeyPatch, raw: str, expected: AppEnv) -> None:
    monkeypatch.setenv("KUDOS_APP_ENV", raw)
    assert Settings().app_env == expected


def test_list_fields_accept_csv_and_json(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("KUDOS_ALLOWED_ORIGINS", "https://a.example, https://b.example")
    monkeypatch.setenv("KUDOS_TRUSTED_HOSTS", '["api.example.com"]')
    cfg = Settings()
    assert cfg.allowed_origins == ["https://a.example", "https://b.example"]
    assert cfg.trusted_hosts == ["api.example.com"]


def test_toml_file_sections_are_flattened(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    toml_file = tmp_path / "settings.toml"
    toml_file.write_text(
        "[recognitions]\n"
        "max_points = 40\n"
        "message_max_chars = 280\n"
        "\n"
        "[allocation]\n"
        "day = 15\n"
        "hour = 9\n"
        "timezone = \"Europe/Athens\"\n"
        "enabled = false\n"
        "default_points = 60\n",
        encoding="utf-8",
    )
    monkeypatch.setenv("KUDOS_SETTINGS_FILE", str(toml_file))
    monkeypatch.delenv("KUDOS_ALLOCATION_SCHEDULE_ENABLED", raising=False)

    cfg = Settings()

    assert cfg.recognition_max_points == 40
    assert cfg.recognition_message_max_chars == 280
    assert cfg.allocation_day == 15
    assert cfg.allocation_hour == 9
    assert cfg.allocation_timezone == "Europe/Athens"
    assert cfg.allocation_schedule_enabled is False
    assert cfg.default_monthly_allocation == 60


def test_environment_beats_toml(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    toml_file = tmp_path / "settings.toml"
    toml_file.write_text("[recognitions]\nmax_points = 40\n", encoding="utf-8")
    monkeypatch.setenv("KUDOS_SETTINGS_FILE", str(toml_file))
    monkeypatch.setenv("RECOGNITION_MAX_POINTS", "70")

    assert Settings().recognition_max_points == 70


def test_database_url_aliases(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("KUDOS_DATABASE_URL", raising=False)
    monkeypatch.setenv("DATABASE_URL", "postgresql+psycopg://u:p@db:5432/kudos")
    assert Settings().database_url == "postgresql+psycopg://u:p@db:5432/kudos"


def test_recognition_cap_cannot_exceed_schema_range(monkeypatch: pytest.MonkeyPatch) -> None:
    from pydantic import ValidationError

    monkeypatch.setenv("RECOGNITION_MAX_POINTS", "150")
    with pytest.raises(ValidationError):
        Settings()
