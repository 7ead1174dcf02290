from __future__ import annotations

from songbook_sync.models.cache import (
    CacheEntry,
    CacheStats,
    CollectionResult,
    CollectionUpdated,
    RemoteMetadata,
    StalenessConfig,
)
from songbook_sync.models.songs import Song, Verse
from songbook_sync.models.tools import (
    CollectionIdInput,
    GetCollectionInput,
    GetCollectionOutput,
    ListCollectionsOutput,
)

__all__ = [
    # songs
    "Song",
    "Verse",
    # cache
    "CacheEntry",
    "StalenessConfig",
    "RemoteMetadata",
    "CollectionUpdated",
    "CollectionResult",
    "CacheStats",
    # tools
    "CollectionIdInput",
    "GetCollectionInput",
    "GetCollectionOutput",
    "ListCollectionsOutput",
]
