"""Configuration loading.

Settings are loaded in priority order (highest first):
  1. Constructor arguments
  2. Environment variables  (GODOCS__TOOLCHAIN__GOOS=linux)
  3. godocs.yaml            (searched in cwd, then platform config dir)
  4. Hardcoded defaults

The config file is optional; every field has a default.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

import platformdirs
from pydantic import BaseModel, Field
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)

_DEFAULT_CACHE_DIR = platformdirs.user_cache_dir("godocs")
_DEFAULT_CACHE_PATH = str(Path(_DEFAULT_CACHE_DIR) / "cache.db")


def _find_config_file() -> str | None:
    """Return the path of the first godocs.yaml found, or None."""
    candidates = [
        Path("godocs.yaml"),
        Path(platformdirs.user_config_dir("godocs")) / "godocs.yaml",
    ]
    for path in candidates:
        if path.exists():
            return str(path)
    return None


class CacheSettings(BaseModel):
    path: str = _DEFAULT_CACHE_PATH
    max_entries: int = Field(default=10_000, gt=0)
    ttl_hours: float = Field(default=24, gt=0)
    persist: bool = True


class ToolchainSettings(BaseModel):
    go_binary: str = "go"
    goos: str = ""
    goarch: str = ""
    workdir: str = "."
    command_timeout_seconds: float = Field(default=120.0, gt=0)


class LoggingSettings(BaseModel):
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    format: Literal["json", "text"] = "json"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        # Double-underscore separates nesting: GODOCS__CACHE__TTL_HOURS=6
        env_prefix="GODOCS__",
        env_nested_delimiter="__",
        yaml_file=_find_config_file(),
        yaml_file_encoding="utf-8",
    )

    cache: CacheSettings = CacheSettings()
    toolchain: ToolchainSettings = ToolchainSettings()
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
