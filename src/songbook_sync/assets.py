"""Bundled collection assets.

Read-only JSON files shipped with the installation, one per collection
(``<assets_dir>/<collection_id>.json``). Used only as the last fallback when
neither the cache nor the remote store can provide a collection.
"""

from __future__ import annotations

import json
from pathlib import Path

import structlog

from songbook_sync.models.songs import Song
from songbook_sync.parser import parse_songs

log = structlog.get_logger()


class BundledAssets:
    """File-backed asset reader implementing LocalAssetProtocol."""

    def __init__(self, assets_dir: Path | str) -> None:
        self._dir = Path(assets_dir).expanduser()

    def load(self, collection_id: str) -> list[Song] | None:
        """Return the bundled songs for a collection, or None when absent or unreadable."""
        path = self._find(collection_id)
        if path is None:
            return None
        try:
            payload = json.loads(path.read_text(encoding="utf-8"))
            songs = parse_songs(payload, collection_id)
        except (OSError, ValueError):
            log.warning(
                "asset_load_failed", collection_id=collection_id, path=str(path), exc_info=True
            )
            return None

        if not songs:
            return None
        log.info("asset_loaded", collection_id=collection_id, songs=len(songs))
        return songs

    def available_ids(self) -> set[str]:
        if not self._dir.is_dir():
            return set()
        return {path.stem for path in self._dir.glob("*.json") if path.is_file()}

    def _find(self, collection_id: str) -> Path | None:
        for name in (collection_id, collection_id.lower()):
            path = self._dir / f"{name}.json"
            if path.is_file():
                return path
        return None
