"""
Configuration management for ShareAudit.

Configuration is loaded from:
1. Environment variables (highest priority)
2. config.yaml file
3. Default values (lowest priority)
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field
from pydantic.fields import FieldInfo
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)
import yaml


class DatabaseSettings(BaseModel):
    """Database configuration."""

    url: str = "sqlite+aiosqlite:///./shareaudit.db"
    pool_size: int = 5
    max_overflow: int = 10
    pool_recycle: int = 3600  # Recycle connections after 1 hour
    pool_pre_ping: bool = True
    echo: bool = False


class DriveSettings(BaseModel):
    """
    Google Drive / Admin Directory client configuration.

    Environment variables:
    - SHAREAUDIT_DRIVE__REQUESTS_PER_SECOND=10
    - SHAREAUDIT_DRIVE__TIMEOUT=30.0
    """

    api_base: str = "https://www.googleapis.com/drive/v3"
    directory_api_base: str = "https://admin.googleapis.com/admin/directory/v1"
    requests_per_second: float = Field(default=10.0, gt=0)
    burst_size: int = Field(default=20, ge=1)
    timeout: float = 30.0
    connect_timeout: float = 10.0
    pool_size: int = 20


class ScanSettings(BaseModel):
    """Scan pipeline tuning."""

    count_page_size: int = Field(default=1000, ge=1, le=1000)
    scan_page_size: int = Field(default=100, ge=1, le=1000)
    persist_batch_size: int = Field(default=500, ge=1)  # Per-write sink capacity
    folder_concurrency: int = Field(default=20, ge=1)
    timeout_minutes: int = Field(default=10, ge=1)  # Lazy sweep age bound
    max_files_per_user: int = 10000  # Cap per account in integrated jobs


class LoggingSettings(BaseModel):
    """Logging configuration."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    file: str | None = None
    format: Literal["json", "text"] = "text"


class YamlConfigSource(PydanticBaseSettingsSource):
    """Settings source backed by the first config.yaml found."""

    def get_field_value(self, field: FieldInfo, field_name: str) -> tuple[object, str, bool]:
        # Whole-file source, values come from __call__
        return None, field_name, False

    def __call__(self) -> dict:
        return load_yaml_config()


class Settings(BaseSettings):
    """Main settings class that combines all configuration sections."""

    model_config = SettingsConfigDict(
        env_prefix="SHAREAUDIT_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    drive: DriveSettings = Field(default_factory=DriveSettings)
    scan: ScanSettings = Field(default_factory=ScanSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # Earlier sources win: explicit kwargs, then environment, then YAML
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            YamlConfigSource(settings_cls),
            file_secret_settings,
        )


def load_yaml_config(path: Path | None = None) -> dict:
    """Load configuration from YAML file."""
    if path is None:
        # Look for config.yaml in standard locations
        candidates = [
            Path("config.yaml"),
            Path("config/config.yaml"),
            Path.home() / ".shareaudit" / "config.yaml",
            Path("/etc/shareaudit/config.yaml"),
        ]
        for candidate in candidates:
            if candidate.exists():
                path = candidate
                break

    if path and path.exists():
        with open(path) as f:
            return yaml.safe_load(f) or {}

    return {}


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


def reload_settings() -> Settings:
    """Force reload of settings (clears cache)."""
    get_settings.cache_clear()
    return get_settings()
