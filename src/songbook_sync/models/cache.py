from __future__ import annotations

from datetime import datetime, timedelta
from typing import Literal

from pydantic import AwareDatetime, BaseModel, model_validator

from songbook_sync.models.songs import Song


class CacheEntry(BaseModel):
    """Cached song list for one collection.

    Always replaced as a whole; ``items`` keeps the order the remote store
    (or bundled asset) produced.
    """

    collection_id: str
    items: list[Song]
    fetched_at: AwareDatetime
    fingerprint: str
    # Song count the remote metadata advertised when the entry was fetched; may
    # exceed len(items) when invalid songs were skipped while parsing.
    remote_item_count: int | None = None


class StalenessConfig(BaseModel):
    """Windows controlling when a cached collection is re-validated."""

    validity_duration: timedelta
    metadata_check_interval: timedelta

    @model_validator(mode="after")
    def _check_interval_within_validity(self) -> StalenessConfig:
        if self.metadata_check_interval > self.validity_duration:
            raise ValueError(
                "metadata_check_interval must not exceed validity_duration "
                f"({self.metadata_check_interval} > {self.validity_duration})"
            )
        return self


class RemoteMetadata(BaseModel):
    """Small per-collection record used to skip full downloads."""

    collection_id: str
    fingerprint: str
    item_count: int
    last_modified: datetime | None = None


class CollectionUpdated(BaseModel):
    """Published after a collection was re-fetched and written to the cache."""

    collection_id: str
    item_count: int
    fingerprint: str
    fetched_at: datetime
    source: Literal["remote"] = "remote"


class CollectionResult(BaseModel):
    """Per-collection outcome of a batch read. Exactly one of songs/error is set."""

    collection_id: str
    songs: list[Song] | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.songs is not None


class CacheStats(BaseModel):
    known_collections: int
    cached_collections: int
    total_cached_songs: int
    memory_cache_size: int
    last_full_sync: datetime | None
    validity_hours: float
    metadata_check_interval_hours: float
