"""Tool handlers for cache_stats and clear_cache."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from songbook_sync.state import AppState


async def handle_stats(state: AppState) -> dict:
    stats = await state.sync.stats()
    return stats.model_dump(mode="json")


async def handle_clear(state: AppState) -> dict:
    log = structlog.get_logger().bind(tool="clear_cache")
    log.info("handler_called")
    await state.sync.clear_cache()
    return {"cleared": True}
