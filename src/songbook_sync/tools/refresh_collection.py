"""Tool handler for refresh_collection (admin: bypass the cache fast path)."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog
from pydantic import ValidationError

from songbook_sync.errors import ErrorCode, SongbookSyncError
from songbook_sync.models.tools import CollectionIdInput

if TYPE_CHECKING:
    from songbook_sync.state import AppState


async def handle(collection_id: str, state: AppState) -> dict:
    """Handle a refresh_collection tool call."""
    log = structlog.get_logger().bind(tool="refresh_collection", collection_id=collection_id)
    log.info("handler_called")

    try:
        validated = CollectionIdInput(collection_id=collection_id)
    except ValidationError as exc:
        raise SongbookSyncError(
            code=ErrorCode.INVALID_INPUT,
            message=str(exc),
            suggestion="Provide a collection ID without '.', '#', '$', '[', ']' or '/'.",
            recoverable=False,
        ) from exc

    songs = await state.sync.force_refresh(validated.collection_id)
    return {"collection_id": validated.collection_id, "total_songs": len(songs)}


async def handle_all(state: AppState) -> dict:
    """Handle a refresh_all_collections tool call.

    Per-collection failures are reported inline; the call itself only fails
    on unexpected errors.
    """
    log = structlog.get_logger().bind(tool="refresh_all_collections")
    log.info("handler_called")

    results = await state.sync.get_all_collections(force=True)
    return {
        "collections": {
            cid: {"total_songs": len(result.songs)}
            if result.songs is not None
            else {"error": result.error}
            for cid, result in results.items()
        }
    }
