"""Tool handler for get_collection.

Receives AppState, delegates to CollectionSync (cache → metadata check →
fetch → fallback), and returns a structured dict with an optional window of
songs. No MCP or FastMCP imports; server.py handles the MCP wiring.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog
from pydantic import ValidationError

from songbook_sync.errors import ErrorCode, SongbookSyncError
from songbook_sync.models.tools import GetCollectionInput, GetCollectionOutput

if TYPE_CHECKING:
    from songbook_sync.state import AppState


async def handle(
    collection_id: str,
    state: AppState,
    offset: int = 0,
    limit: int | None = None,
) -> dict:
    """Handle a get_collection tool call."""
    log = structlog.get_logger().bind(tool="get_collection", collection_id=collection_id)
    log.info("handler_called", offset=offset, limit=limit)

    try:
        validated = GetCollectionInput(collection_id=collection_id, offset=offset, limit=limit)
    except ValidationError as exc:
        raise SongbookSyncError(
            code=ErrorCode.INVALID_INPUT,
            message=str(exc),
            suggestion=(
                "Provide a collection ID without '.', '#', '$', '[', ']' or '/', "
                "a non-negative offset and a positive limit."
            ),
            recoverable=False,
        ) from exc

    songs = await state.sync.get_collection(validated.collection_id)

    end = None if validated.limit is None else validated.offset + validated.limit
    output = GetCollectionOutput(
        collection_id=validated.collection_id,
        total_songs=len(songs),
        offset=validated.offset,
        songs=songs[validated.offset : end],
    )
    return output.model_dump(mode="json", by_alias=True)
