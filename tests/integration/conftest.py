"""Integration test fixtures.

Provides a fully wired AppState: in-memory SQLite cache, the real Firebase
store on an httpx client (HTTP mocked with respx per test) and bundled assets
in a tmp directory.
"""

from __future__ import annotations

import os
from typing import TYPE_CHECKING

import aiosqlite
import httpx
import pytest
from fakes import FIREBASE_URL

from songbook_sync.assets import BundledAssets
from songbook_sync.cache import CollectionCache
from songbook_sync.config import Settings
from songbook_sync.events import CollectionEvents
from songbook_sync.remote import FirebaseCollectionStore
from songbook_sync.state import AppState
from songbook_sync.sync import CollectionSync

if TYPE_CHECKING:
    from collections.abc import AsyncIterator
    from pathlib import Path


@pytest.fixture()
def subprocess_env(tmp_path: Path) -> dict[str, str]:
    """Baseline env dict for subprocess-based MCP integration tests.

    Forces stdio transport, isolates every data path in tmp_path and points
    the song database at a closed local port so startup preload fails fast.
    """
    env = os.environ.copy()
    env["SONGBOOK_SYNC__SERVER__TRANSPORT"] = "stdio"
    env["SONGBOOK_SYNC__CACHE__DB_PATH"] = str(tmp_path / "collections.db")
    env["SONGBOOK_SYNC__ASSETS__DIR"] = str(tmp_path / "assets")
    env["SONGBOOK_SYNC__REMOTE__DATABASE_URL"] = "http://127.0.0.1:1"
    env["SONGBOOK_SYNC__REMOTE__RETRY_BACKOFF_SECONDS"] = "0"
    return env


@pytest.fixture()
def settings(tmp_path: Path) -> Settings:
    return Settings(
        remote={"database_url": FIREBASE_URL, "retry_backoff_seconds": 0},
        assets={"dir": str(tmp_path / "assets")},
        sync={"metadata_deadline_seconds": 2, "fetch_deadline_seconds": 2},
    )


@pytest.fixture()
async def app_state(settings: Settings) -> AsyncIterator[AppState]:
    async with (
        aiosqlite.connect(":memory:") as db,
        httpx.AsyncClient() as client,
    ):
        cache = CollectionCache(db)
        await cache.init_db()
        sync = CollectionSync.from_settings(
            settings,
            cache,
            FirebaseCollectionStore(client, settings.remote),
            BundledAssets(settings.assets.dir),
            events=CollectionEvents(),
        )
        async with sync:
            yield AppState(settings=settings, sync=sync)
