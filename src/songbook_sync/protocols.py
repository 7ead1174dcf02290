"""Structural interfaces of the three collaborators CollectionSync depends on.

The orchestrator is typed against these, so the SQLite cache, the Firebase
store and the bundled-asset reader can each be replaced (in-memory fakes in
tests, another backend in production) without touching sync logic.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from datetime import datetime

    from songbook_sync.models.cache import CacheEntry, RemoteMetadata
    from songbook_sync.models.songs import Song


class CacheStoreProtocol(Protocol):
    """Interface for the durable collection cache."""

    async def get(self, collection_id: str) -> CacheEntry | None: ...

    async def put(self, collection_id: str, entry: CacheEntry) -> None: ...

    async def clear(self) -> None: ...

    async def list_known_collection_ids(self) -> set[str]: ...

    async def remember_remote_ids(self, collection_ids: set[str]) -> None: ...

    async def record_full_sync(self, at: datetime) -> None: ...

    async def last_full_sync(self) -> datetime | None: ...

    async def counts(self) -> tuple[int, int, int]: ...


class RemoteStoreProtocol(Protocol):
    """Interface for the remote collection store."""

    async def fetch_metadata(self, collection_id: str) -> RemoteMetadata: ...

    async def fetch_collection(self, collection_id: str) -> list[Song]: ...

    async def list_collection_ids(self) -> set[str]: ...


class LocalAssetProtocol(Protocol):
    """Interface for bundled fallback data."""

    def load(self, collection_id: str) -> list[Song] | None: ...

    def available_ids(self) -> set[str]: ...
