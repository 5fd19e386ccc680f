"""Configuration loading.

Settings are loaded in priority order (highest first):
  1. Environment variables  (CATALOGCACHE__ORIGIN__BASE_URL=https://...)
  2. catalogcache.yaml      (searched in cwd, then ~/.config/catalogcache/)
  3. Hardcoded defaults

The config file is optional; every field has a default.
"""

from __future__ import annotations

from datetime import timedelta
from pathlib import Path
from typing import Any, Literal

import platformdirs
from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)

_DEFAULT_DATA_DIR = platformdirs.user_data_dir("catalogcache")
_DEFAULT_DB_PATH = str(Path(_DEFAULT_DATA_DIR) / "cache.db")


def _find_config_file() -> str | None:
    """Return the path of the first catalogcache.yaml found, or None."""
    candidates = [
        Path("catalogcache.yaml"),
        Path.home() / ".config" / "catalogcache" / "catalogcache.yaml",
    ]
    for path in candidates:
        if path.exists():
            return str(path)
    return None


class OriginSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    base_url: str = "http://localhost:3000/api"
    timeout_seconds: float = 10.0


class CacheSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    db_path: str = _DEFAULT_DB_PATH
    # Key prefix: entries are stored as "<namespace>_<resource-key>"
    namespace: str = "catalog"
    # Coarse sweep window used when a write fails
    gc_max_age: timedelta = timedelta(days=30)
    # Per-entry quota, roughly what a browser grants one origin
    max_entry_bytes: int = Field(default=5 * 1024 * 1024, gt=0)
    background_check_interval: timedelta = timedelta(minutes=5)


class AuthSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    max_check_attempts: int = Field(default=3, ge=1)


class LoggingSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    format: Literal["json", "text"] = "json"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        # Double-underscore separates nesting: CATALOGCACHE__CACHE__NAMESPACE=shop
        env_prefix="CATALOGCACHE__",
        env_nested_delimiter="__",
        yaml_file=_find_config_file(),
        yaml_file_encoding="utf-8",
    )

    data_dir: str = _DEFAULT_DATA_DIR
    origin: OriginSettings = OriginSettings()
    cache: CacheSettings = CacheSettings()
    auth: AuthSettings = AuthSettings()
    logging: LoggingSettings = LoggingSettings()

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
        **kwargs: Any,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return (
            init_settings,  # Constructor args (highest priority)
            env_settings,  # Environment variables
            YamlConfigSettingsSource(settings_cls),  # YAML file
            # dotenv and file secrets intentionally excluded
        )
