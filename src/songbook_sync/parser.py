"""Song payload parser.

The Realtime Database returns a collection either as an object keyed by song
number or as a JSON array (when keys are dense integers). Bundled assets use
the array form. Both shapes decode to the same ordered ``list[Song]``.
"""

from __future__ import annotations

from typing import Any

import structlog
from pydantic import ValidationError

from songbook_sync.models.songs import Song

log = structlog.get_logger()


def song_number_key(number: str) -> tuple[int, int | str]:
    """Sort key: numeric song numbers first in numeric order, then the rest lexically."""
    try:
        return (0, int(number))
    except ValueError:
        return (1, number)


def parse_songs(payload: Any, collection_id: str) -> list[Song]:
    """Decode a collection payload into songs ordered by song number.

    Entries that are not objects, or that fail validation, are skipped with a
    warning. A missing ``song_number`` falls back to the map key or list index.
    Raises ``ValueError`` when the payload is neither an object nor an array.
    """
    if payload is None:
        return []

    if isinstance(payload, dict):
        pairs = [(str(key), value) for key, value in payload.items()]
    elif isinstance(payload, list):
        pairs = [(str(index), value) for index, value in enumerate(payload)]
    else:
        raise ValueError(f"Unexpected payload type for collection {collection_id!r}")

    songs: list[Song] = []
    for key, raw in pairs:
        # Sparse arrays come back with null holes
        if raw is None:
            continue
        if not isinstance(raw, dict):
            log.warning("song_skipped", collection_id=collection_id, key=key, reason="not_object")
            continue
        data = {**raw, "collection_id": collection_id}
        data.setdefault("song_number", key)
        try:
            songs.append(Song.model_validate(data))
        except ValidationError as exc:
            log.warning(
                "song_skipped",
                collection_id=collection_id,
                key=key,
                reason="invalid_schema",
                error=str(exc),
            )

    songs.sort(key=lambda song: song_number_key(song.number))
    return songs
