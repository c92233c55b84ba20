"""Configuration loading.

Settings are loaded in priority order (highest first):
  1. Environment variables  (SYNCCOMPARE__SERVER__PORT=8080)
  2. synccompare.yaml       (searched in cwd, then the platform config dir)
  3. Hardcoded defaults

The config file is optional; all fields have sensible defaults.
"""

from __future__ import annotations

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

_DEFAULT_LOG_DIR = platformdirs.user_log_dir("synccompare")
_DEFAULT_LOG_PATH = str(Path(_DEFAULT_LOG_DIR) / "cache.log")


def _find_config_file() -> str | None:
    """Return the path of the first synccompare.yaml found, or None."""
    candidates = [
        Path("synccompare.yaml"),
        Path(platformdirs.user_config_dir("synccompare")) / "synccompare.yaml",
    ]
    for path in candidates:
        if path.exists():
            return str(path)
    return None


class ServerSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    host: str = "0.0.0.0"
    port: int = 3000


class RcloneSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    binary: str = "rclone"
    # None keeps the historical behaviour: a slow remote blocks its cycle indefinitely
    timeout_seconds: float | None = Field(default=None, gt=0)


class CacheSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    remote_refresh_interval_hours: float = Field(default=24, gt=0)
    local_refresh_interval_hours: float = Field(default=1, gt=0)
    refresh_on_startup: bool = True
    history_retention_days: int = Field(default=30, ge=1)
    probe_concurrency: int = Field(default=1, ge=1)
    prune_missing_remotes: bool = False


class LoggingSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    format: Literal["json", "text"] = "text"
    file_path: str = _DEFAULT_LOG_PATH  # Empty string disables file logging


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        # Double-underscore separates nesting: SYNCCOMPARE__CACHE__PROBE_CONCURRENCY=2
        env_prefix="SYNCCOMPARE__",
        env_nested_delimiter="__",
        yaml_file=_find_config_file(),
        yaml_file_encoding="utf-8",
    )

    server: ServerSettings = ServerSettings()
    rclone: RcloneSettings = RcloneSettings()
    cache: CacheSettings = CacheSettings()
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
