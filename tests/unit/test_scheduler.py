"""Unit tests for the background sync scheduler in schedulers.py.

The sync service is replaced by AsyncMocks and asyncio.sleep is patched so the
HTTP loop can be stepped deterministically.
"""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from songbook_sync.config import Settings
from songbook_sync.schedulers import run_sync_scheduler
from songbook_sync.state import AppState


def _make_state(transport: str = "http") -> tuple[AppState, MagicMock]:
    sync = MagicMock()
    sync.preload = AsyncMock(return_value={"LPMI": 273})
    sync.get_all_collections = AsyncMock(return_value={})
    state = AppState(
        settings=Settings(server={"transport": transport}),
        sync=sync,
    )
    return state, sync


def _sleep_n_times(limit: int, recorded: list[float]):
    async def fake_sleep(delay: float) -> None:
        recorded.append(delay)
        if len(recorded) > limit:
            raise asyncio.CancelledError

    return fake_sleep


class TestStdioMode:
    async def test_preloads_once_and_returns(self) -> None:
        state, sync = _make_state(transport="stdio")

        await run_sync_scheduler(state)

        sync.preload.assert_awaited_once_with()
        sync.get_all_collections.assert_not_awaited()

    async def test_preload_failure_is_swallowed(self) -> None:
        state, sync = _make_state(transport="stdio")
        sync.preload.side_effect = RuntimeError("boom")

        await run_sync_scheduler(state)


class TestHttpMode:
    async def test_revalidates_on_interval(self) -> None:
        state, sync = _make_state()
        sleeps: list[float] = []

        with (
            patch("asyncio.sleep", side_effect=_sleep_n_times(2, sleeps)),
            pytest.raises(asyncio.CancelledError),
        ):
            await run_sync_scheduler(state)

        sync.preload.assert_awaited_once()
        assert sync.get_all_collections.await_count == 2
        interval = state.settings.sync.background_refresh_hours * 3600
        assert all(0.8 * interval <= delay <= 1.2 * interval for delay in sleeps)

    async def test_loop_survives_failures(self) -> None:
        state, sync = _make_state()
        sync.get_all_collections.side_effect = RuntimeError("remote down")
        sleeps: list[float] = []

        with (
            patch("asyncio.sleep", side_effect=_sleep_n_times(3, sleeps)),
            pytest.raises(asyncio.CancelledError),
        ):
            await run_sync_scheduler(state)

        assert sync.get_all_collections.await_count == 3
