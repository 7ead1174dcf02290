"""Unit tests for configuration defaults and the staleness windows they produce."""

from __future__ import annotations

from datetime import timedelta

import platformdirs
import pytest
from pydantic import ValidationError

from songbook_sync.config import (
    _DEFAULT_ASSETS_DIR,
    _DEFAULT_DATA_DIR,
    _DEFAULT_DB_PATH,
    CacheSettings,
    Settings,
)
from songbook_sync.models.cache import StalenessConfig


class TestPlatformDefaults:
    def test_default_data_dir_matches_platformdirs(self) -> None:
        assert platformdirs.user_data_dir("songbook-sync") == _DEFAULT_DATA_DIR

    def test_db_and_assets_live_under_data_dir(self) -> None:
        assert _DEFAULT_DB_PATH.startswith(_DEFAULT_DATA_DIR)
        assert _DEFAULT_DB_PATH.endswith("collections.db")
        assert _DEFAULT_ASSETS_DIR.startswith(_DEFAULT_DATA_DIR)


class TestStalenessWindows:
    def test_defaults_are_two_weeks_and_six_hours(self) -> None:
        staleness = CacheSettings().staleness()
        assert staleness.validity_duration == timedelta(days=14)
        assert staleness.metadata_check_interval == timedelta(hours=6)

    def test_interval_longer_than_validity_is_rejected(self) -> None:
        with pytest.raises(ValidationError):
            StalenessConfig(
                validity_duration=timedelta(hours=1),
                metadata_check_interval=timedelta(hours=2),
            )

    def test_equal_windows_are_allowed(self) -> None:
        config = CacheSettings(validity_hours=6, metadata_check_interval_hours=6).staleness()
        assert config.validity_duration == config.metadata_check_interval


class TestEnvironmentOverrides:
    def test_nested_env_vars_override_defaults(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("SONGBOOK_SYNC__REMOTE__DATABASE_URL", "http://localhost:9000")
        monkeypatch.setenv("SONGBOOK_SYNC__CACHE__METADATA_CHECK_INTERVAL_HOURS", "1")

        settings = Settings()

        assert settings.remote.database_url == "http://localhost:9000"
        assert settings.cache.metadata_check_interval_hours == 1

    def test_init_args_take_priority(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("SONGBOOK_SYNC__SERVER__TRANSPORT", "http")
        settings = Settings(server={"transport": "stdio"})
        assert settings.server.transport == "stdio"
