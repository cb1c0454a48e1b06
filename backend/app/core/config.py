"""Configuration for the kudos points backend using pydantic-settings."""

from __future__ import annotations

import os
from enum import StrEnum
from pathlib import Path
from typing import Any

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent.parent


class AppEnv(StrEnum):
    DEV = "dev"
    PRODUCTION = "production"


class TomlSettingsSource(PydanticBaseSettingsSource):
    """Reads ``config/app_settings.toml`` (or ``KUDOS_SETTINGS_FILE``)."""

    def __init__(self, settings_cls: type[BaseSettings], toml_file: str | Path):
        super().__init__(settings_cls)
        self.toml_file = Path(toml_file)

    def get_field_value(self, field_name: str, field_data: Any) -> tuple[Any, str, bool]:
        # Not used in this source style
        return None, field_name, False

    def __call__(self) -> dict[str, Any]:
        if not self.toml_file.exists():
            return {}

        import tomllib

        try:
            with open(self.toml_file, "rb") as f:
                data = tomllib.load(f)
        except Exception:
            return {}

        if not isinstance(data, dict):
            return {}

        flattened: dict[str, Any] = {}

        # [recognitions] section
        recognitions = data.get("recognitions", {})
        if isinstance(recognitions, dict):
            if "max_points" in recognitions:
                flattened["recognition_max_points"] = recognitions["max_points"]
            if "message_max_chars" in recognitions:
                flattened["recognition_message_max_chars"] = recognitions["message_max_chars"]

        # [allocation] section
        allocation = data.get("allocation", {})
        if isinstance(allocation, dict):
            for key in ("day", "hour", "minute", "timezone"):
                if key in allocation:
                    flattened[f"allocation_{key}"] = allocation[key]
            if "enabled" in allocation:
                flattened["allocation_schedule_enabled"] = allocation["enabled"]
            if "default_points" in allocation:
                flattened["default_monthly_allocation"] = allocation["default_points"]

        for k, v in data.items():
            if k not in {"recognitions", "allocation"}:
                flattened[k] = v

        return flattened


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
        populate_by_name=True,
    )

    # --- Environment ---
    app_env: AppEnv = Field(
        default=AppEnv.PRODUCTION,
        validation_alias=AliasChoices("KUDOS_APP_ENV", "APP_ENV", "ENV"),
    )

    @field_validator("app_env", mode="before")
    @classmethod
    def normalize_env(cls, v: Any) -> AppEnv:
        if v is None:
            return AppEnv.PRODUCTION
        if isinstance(v, str):
            lowered = v.strip().lower()
            if lowered in {"dev", "development", "local", "localhost"}:
                return AppEnv.DEV
        return AppEnv.PRODUCTION

    @field_validator("allowed_origins", "trusted_hosts", mode="before")
    @classmethod
    def parse_list(cls, v: Any) -> list[str]:
        if isinstance(v, str):
            v_stripped = v.strip()
            if not v_stripped:
                return []
            if v_stripped.startswith("[") and v_stripped.endswith("]"):
                import json
                try:
                    return json.loads(v_stripped)
                except Exception:
                    pass
            return [x.strip() for x in v_stripped.split(",") if x.strip()]
        return v or []

    @property
    def is_dev(self) -> bool:
        return self.app_env == AppEnv.DEV

    log_level: str = Field(default="INFO", validation_alias=AliasChoices("KUDOS_LOG_LEVEL", "LOG_LEVEL"))

    # --- Project Paths ---
    project_root: Path = PROJECT_ROOT

    # --- API & Security ---
    allowed_origins: Any = Field(default_factory=list, validation_alias="KUDOS_ALLOWED_ORIGINS")
    trusted_hosts: Any = Field(default_factory=list, validation_alias="KUDOS_TRUSTED_HOSTS")
    force_https: bool = Field(default=False, validation_alias="KUDOS_FORCE_HTTPS")
    session_ttl_seconds: int = 60 * 60 * 24 * 30

    # --- Database ---
    database_url: str = Field(
        default="postgresql+psycopg://localhost/kudos_dev",
        validation_alias=AliasChoices("KUDOS_DATABASE_URL", "DATABASE_URL"),
    )

    # --- Points ---
    starting_points_balance: int = Field(default=0, ge=0)
    default_monthly_allocation: int = Field(default=100, ge=0)
    history_default_limit: int = 50
    history_max_limit: int = 200

    # --- Recognitions ---
    recognition_max_points: int = Field(default=100, ge=1, le=100)
    recognition_message_max_chars: int = 500

    # --- Monthly allocation job ---
    allocation_schedule_enabled: bool = Field(
        default=True,
        validation_alias=AliasChoices("KUDOS_ALLOCATION_SCHEDULE_ENABLED", "allocation_schedule_enabled"),
    )
    allocation_day: int = Field(default=1, ge=1, le=28)
    allocation_hour: int = Field(default=0, ge=0, le=23)
    allocation_minute: int = Field(default=0, ge=0, le=59)
    allocation_timezone: str = "UTC"

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # Order of precedence:
        # 1. Constructor arguments
        # 2. Environment variables
        # 3. .env file
        # 4. config/app_settings.toml
        # 5. Secrets
        toml_path = os.getenv("KUDOS_SETTINGS_FILE")
        if not toml_path:
            toml_path = str(PROJECT_ROOT / "config" / "app_settings.toml")

        return (
            init_settings,
            env_settings,
            dotenv_settings,
            TomlSettingsSource(settings_cls, toml_file=toml_path),
            file_secret_settings,
        )


settings = Settings()
