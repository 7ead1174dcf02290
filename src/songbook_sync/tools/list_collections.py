"""Tool handler for list_collections."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from songbook_sync.models.tools import ListCollectionsOutput

if TYPE_CHECKING:
    from songbook_sync.state import AppState


async def handle(state: AppState, refresh: bool = False) -> dict:
    """Handle a list_collections tool call."""
    log = structlog.get_logger().bind(tool="list_collections")
    log.info("handler_called", refresh=refresh)

    collections = await state.sync.list_collections(refresh=refresh)
    return ListCollectionsOutput(collections=collections).model_dump(mode="json")
