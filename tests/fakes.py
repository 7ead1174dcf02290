"""In-memory fakes and builders shared by unit and integration tests."""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta

from songbook_sync.errors import ErrorCode, RemoteUnavailable
from songbook_sync.models.cache import RemoteMetadata
from songbook_sync.models.songs import Song, Verse

T0 = datetime(2026, 1, 4, 8, 0, tzinfo=UTC)
FIREBASE_URL = "https://songs-test.firebaseio.com"


def make_songs(count: int, collection_id: str = "LPMI", *, start: int = 1) -> list[Song]:
    """Build ``count`` songs numbered from ``start``."""
    return [
        Song(
            number=str(n),
            title=f"Song {n}",
            verses=[Verse(number="1", lyrics=f"Lyrics of song {n}")],
            collection_id=collection_id,
        )
        for n in range(start, start + count)
    ]


class FakeClock:
    """Controllable replacement for ``utcnow``."""

    def __init__(self, now: datetime = T0) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


class FakeRemoteStore:
    """In-memory remote store that records every call."""

    def __init__(self) -> None:
        self.collections: dict[str, list[Song]] = {}
        self.fingerprints: dict[str, str] = {}
        # Overrides the advertised song count, e.g. when some songs fail to parse
        self.metadata_counts: dict[str, int] = {}
        self.metadata_calls: list[str] = []
        self.fetch_calls: list[str] = []
        self.list_calls = 0
        self.fail_metadata = False
        self.fail_fetch = False
        self.fail_listing = False
        self.fetch_delay = 0.0
        self.metadata_delay = 0.0

    def publish(self, collection_id: str, songs: list[Song], fingerprint: str) -> None:
        self.collections[collection_id] = songs
        self.fingerprints[collection_id] = fingerprint

    @property
    def remote_calls(self) -> int:
        return len(self.metadata_calls) + len(self.fetch_calls) + self.list_calls

    async def fetch_metadata(self, collection_id: str) -> RemoteMetadata:
        self.metadata_calls.append(collection_id)
        if self.metadata_delay:
            await asyncio.sleep(self.metadata_delay)
        if self.fail_metadata:
            raise RemoteUnavailable("metadata unreachable")
        if collection_id not in self.collections:
            raise RemoteUnavailable(
                f"Collection '{collection_id}' has no metadata record",
                code=ErrorCode.COLLECTION_NOT_FOUND,
                recoverable=False,
            )
        return RemoteMetadata(
            collection_id=collection_id,
            fingerprint=self.fingerprints[collection_id],
            item_count=self.metadata_counts.get(
                collection_id, len(self.collections[collection_id])
            ),
        )

    async def fetch_collection(self, collection_id: str) -> list[Song]:
        self.fetch_calls.append(collection_id)
        if self.fetch_delay:
            await asyncio.sleep(self.fetch_delay)
        if self.fail_fetch:
            raise RemoteUnavailable("collection unreachable")
        return list(self.collections[collection_id])

    async def list_collection_ids(self) -> set[str]:
        self.list_calls += 1
        if self.fail_listing:
            raise RemoteUnavailable("listing unreachable")
        return set(self.collections)


