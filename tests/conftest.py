"""Shared test fixtures for the songbook_sync test suite."""

from __future__ import annotations

from datetime import timedelta
from typing import TYPE_CHECKING

import aiosqlite
import pytest
from fakes import FakeClock, FakeRemoteStore

from songbook_sync.assets import BundledAssets
from songbook_sync.cache import CollectionCache
from songbook_sync.events import CollectionEvents
from songbook_sync.models.cache import StalenessConfig
from songbook_sync.sync import CollectionSync

if TYPE_CHECKING:
    from collections.abc import AsyncIterator
    from pathlib import Path


@pytest.fixture()
async def cache() -> AsyncIterator[CollectionCache]:
    """CollectionCache backed by an in-memory SQLite database."""
    async with aiosqlite.connect(":memory:") as db:
        cache = CollectionCache(db)
        await cache.init_db()
        yield cache


@pytest.fixture()
def remote() -> FakeRemoteStore:
    return FakeRemoteStore()


@pytest.fixture()
def assets_dir(tmp_path: Path) -> Path:
    directory = tmp_path / "assets"
    directory.mkdir()
    return directory


@pytest.fixture()
def assets(assets_dir: Path) -> BundledAssets:
    return BundledAssets(assets_dir)


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def staleness() -> StalenessConfig:
    return StalenessConfig(
        validity_duration=timedelta(days=14),
        metadata_check_interval=timedelta(hours=6),
    )


@pytest.fixture()
async def sync(
    cache: CollectionCache,
    remote: FakeRemoteStore,
    assets: BundledAssets,
    clock: FakeClock,
    staleness: StalenessConfig,
) -> AsyncIterator[CollectionSync]:
    """Initialised CollectionSync wired to the fakes above."""
    async with CollectionSync(
        cache,
        remote,
        assets,
        staleness=staleness,
        events=CollectionEvents(),
        metadata_deadline_seconds=1.0,
        fetch_deadline_seconds=1.0,
        preload_collections=["LPMI", "SRD"],
        clock=clock,
    ) as instance:
        yield instance
