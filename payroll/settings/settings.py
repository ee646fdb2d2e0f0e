"""
Application settings.

Values come from, highest priority first: keyword arguments, ``PAYROLL_*``
environment variables (nested with ``__``, e.g.
``PAYROLL_POSTGRES__PASSWORD``), a ``.env`` file, and ``config.toml`` (or the
file named by ``PAYROLL_CONFIG_FILE``).
"""

import os
import tomllib
from pathlib import Path
from typing import Any, Optional

from pydantic import Field, field_validator
from pydantic.fields import FieldInfo
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from payroll.settings.database import DatabaseConfig
from payroll.settings.jwt import JWTConfig
from payroll.settings.payroll import PayrollConfig
from payroll.settings.server import ServerConfig

CONFIG_FILE_ENV = "PAYROLL_CONFIG_FILE"
DEFAULT_CONFIG_FILE = "config.toml"

# Tables whose keys are data (payroll class ids), not field names.
VERBATIM_TABLES = frozenset({"CLASSES"})


def _normalize_keys(data: dict[str, Any]) -> dict[str, Any]:
    """Uppercase TOML keys so they match the settings field names."""
    normalized = {}
    for key, value in data.items():
        upper_key = key.upper()
        if isinstance(value, dict) and upper_key not in VERBATIM_TABLES:
            value = _normalize_keys(value)
        normalized[upper_key] = value
    return normalized


class TomlConfigSettingsSource(PydanticBaseSettingsSource):
    """Settings source reading a TOML file. A missing file contributes nothing."""

    def __init__(self, settings_cls: type[BaseSettings], toml_file: Optional[Path] = None):
        super().__init__(settings_cls)
        self.toml_file = toml_file or Path(
            os.environ.get(CONFIG_FILE_ENV, DEFAULT_CONFIG_FILE)
        )
        self.toml_data: dict[str, Any] = {}
        if self.toml_file.exists():
            with open(self.toml_file, "rb") as f:
                self.toml_data = _normalize_keys(tomllib.load(f))

    def get_field_value(
        self, field: FieldInfo, field_name: str
    ) -> tuple[Any, str, bool]:
        return self.toml_data.get(field_name), field_name, False

    def __call__(self) -> dict[str, Any]:
        return dict(self.toml_data)


class Settings(BaseSettings):
    APP_NAME: str = Field(default="Payroll", description="Application name")
    APP_VERSION: str = Field(default="0.1.0", description="Application version")
    DEBUG: bool = Field(default=False, description="Debug mode, also enables DEBUG logs")
    ENVIRONMENT: str = Field(
        default="DEV", description="DEV renders logs for the console, anything else as JSON"
    )
    SENTRY_DSN: Optional[str] = Field(
        default=None, description="Sentry DSN, error reporting is off when unset"
    )
    SERVER: ServerConfig = Field(
        default_factory=ServerConfig, description="Server configuration settings"
    )
    POSTGRES: DatabaseConfig = Field(
        default_factory=DatabaseConfig, description="PostgreSQL database settings"
    )
    PAYROLL: PayrollConfig = Field(
        default_factory=PayrollConfig, description="Payroll class routing settings"
    )
    JWT: JWTConfig = Field(
        default_factory=JWTConfig, description="JWT verification settings"
    )

    model_config = SettingsConfigDict(
        env_prefix="PAYROLL_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("ENVIRONMENT")
    @classmethod
    def normalize_environment(cls, v: str) -> str:
        return v.strip().upper()

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            TomlConfigSettingsSource(settings_cls),
        )


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Return the process wide settings, loading them on first use."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reload_settings() -> Settings:
    """Re-read every source and replace the process wide settings."""
    global _settings
    _settings = Settings()
    return _settings
