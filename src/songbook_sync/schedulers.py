"""Background scheduler coroutines for cache warm-up and periodic revalidation."""

from __future__ import annotations

import asyncio
import random
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from songbook_sync.state import AppState

log = structlog.get_logger()


def _jittered_delay(base_seconds: float) -> float:
    return base_seconds * random.uniform(0.8, 1.2)


async def run_sync_scheduler(state: AppState) -> None:
    """Preload important collections at startup and (HTTP mode) revalidate periodically."""
    # Both transports: warm the cache once at startup.
    try:
        await state.sync.preload()
    except Exception:
        log.warning("sync_scheduler_error", mode="startup_preload", exc_info=True)

    if state.settings.server.transport != "http":
        return

    # HTTP long-running mode: revalidate everything on the configured interval.
    interval_seconds = state.settings.sync.background_refresh_hours * 3600
    while True:
        await asyncio.sleep(_jittered_delay(interval_seconds))
        try:
            await state.sync.get_all_collections()
        except Exception:
            log.warning("sync_scheduler_error", mode="http_loop", exc_info=True)
