"""Runtime settings.

Each value is taken from the first source that defines it: constructor
arguments, then ``SONGBOOK_SYNC__<SECTION>__<FIELD>`` environment variables,
then ``songbook-sync.yaml`` (current directory first, then the platform
config directory), then the defaults below. No source is required.
"""

from __future__ import annotations

from datetime import timedelta
from pathlib import Path
from typing import Any, Literal

import platformdirs
from pydantic import BaseModel
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)

from songbook_sync.models.cache import StalenessConfig

_DEFAULT_DATA_DIR = platformdirs.user_data_dir("songbook-sync")
_DEFAULT_DB_PATH = str(Path(_DEFAULT_DATA_DIR) / "collections.db")
_DEFAULT_ASSETS_DIR = str(Path(_DEFAULT_DATA_DIR) / "assets")


def _find_config_file() -> str | None:
    """Return the path of the first songbook-sync.yaml found, or None."""
    candidates = [
        Path("songbook-sync.yaml"),
        Path(platformdirs.user_config_dir("songbook-sync")) / "songbook-sync.yaml",
    ]
    for path in candidates:
        if path.exists():
            return str(path)
    return None


class ServerSettings(BaseModel):
    transport: Literal["stdio", "http"] = "stdio"
    host: str = "127.0.0.1"
    port: int = 8080
    auth_enabled: bool = False
    auth_key: str = ""


class RemoteSettings(BaseModel):
    database_url: str = "https://lmpi-c5c5c-default-rtdb.firebaseio.com"
    auth_token: str = ""
    metadata_timeout_seconds: float = 2.0
    fetch_timeout_seconds: float = 15.0
    retry_backoff_seconds: float = 0.5


class CacheSettings(BaseModel):
    db_path: str = _DEFAULT_DB_PATH
    validity_hours: float = 14 * 24
    metadata_check_interval_hours: float = 6

    def staleness(self) -> StalenessConfig:
        return StalenessConfig(
            validity_duration=timedelta(hours=self.validity_hours),
            metadata_check_interval=timedelta(hours=self.metadata_check_interval_hours),
        )


class AssetSettings(BaseModel):
    dir: str = _DEFAULT_ASSETS_DIR


class SyncSettings(BaseModel):
    metadata_deadline_seconds: float = 5.0
    fetch_deadline_seconds: float = 40.0
    preload_collections: list[str] = ["LPMI", "SRD", "Lagu_belia"]
    background_refresh_hours: float = 6


class LoggingSettings(BaseModel):
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    format: Literal["json", "text"] = "json"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        # SONGBOOK_SYNC__SYNC__PRELOAD_COLLECTIONS='["LPMI"]'
        env_prefix="SONGBOOK_SYNC__",
        env_nested_delimiter="__",
        yaml_file=_find_config_file(),
        yaml_file_encoding="utf-8",
    )

    server: ServerSettings = ServerSettings()
    remote: RemoteSettings = RemoteSettings()
    cache: CacheSettings = CacheSettings()
    assets: AssetSettings = AssetSettings()
    sync: SyncSettings = SyncSettings()
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
            init_settings,
            env_settings,
            YamlConfigSettingsSource(settings_cls),
        )
