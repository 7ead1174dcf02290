"""Collection sync orchestrator.

Coordinates every read: cache first, then a cheap metadata check against the
remote store, a full download only when the metadata changed, and a fallback
chain (stale cache → bundled asset) when the remote cannot be reached. Only
``CollectionUnavailable`` ever reaches the caller.

Concurrency: the "check metadata → maybe fetch → put" sequence runs in at most
one task per collection id. Concurrent callers for the same id await that task
through ``asyncio.shield`` so one caller giving up never cancels the shared
work. Different ids run fully in parallel.
"""

from __future__ import annotations

import asyncio
from contextlib import suppress
from datetime import UTC, datetime
from typing import TYPE_CHECKING

import structlog

from songbook_sync.errors import CollectionUnavailable, SongbookSyncError
from songbook_sync.events import CollectionEvents
from songbook_sync.models.cache import (
    CacheEntry,
    CacheStats,
    CollectionResult,
    CollectionUpdated,
)
from songbook_sync.policy import is_past_validity, needs_full_fetch, needs_metadata_check

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Iterable
    from typing import TypeVar

    from songbook_sync.config import Settings
    from songbook_sync.models.cache import RemoteMetadata, StalenessConfig
    from songbook_sync.models.songs import Song
    from songbook_sync.protocols import (
        CacheStoreProtocol,
        LocalAssetProtocol,
        RemoteStoreProtocol,
    )

    T = TypeVar("T")

log = structlog.get_logger()


def utcnow() -> datetime:
    return datetime.now(UTC)


class CollectionSync:
    """Read surface for song collections. Construct once, ``init()``, share, ``dispose()``."""

    def __init__(
        self,
        cache: CacheStoreProtocol,
        remote: RemoteStoreProtocol,
        assets: LocalAssetProtocol,
        *,
        staleness: StalenessConfig,
        events: CollectionEvents | None = None,
        metadata_deadline_seconds: float = 5.0,
        fetch_deadline_seconds: float = 40.0,
        preload_collections: Iterable[str] = (),
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._cache = cache
        self._remote = remote
        self._assets = assets
        self._staleness = staleness
        self.events = events if events is not None else CollectionEvents()
        self._metadata_deadline = metadata_deadline_seconds
        self._fetch_deadline = fetch_deadline_seconds
        self._preload_collections = list(preload_collections)
        self._clock = clock
        # collection id -> (task, forced)
        self._inflight: dict[str, tuple[asyncio.Task[list[Song]], bool]] = {}
        self._running = False

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        cache: CacheStoreProtocol,
        remote: RemoteStoreProtocol,
        assets: LocalAssetProtocol,
        *,
        events: CollectionEvents | None = None,
    ) -> CollectionSync:
        return cls(
            cache,
            remote,
            assets,
            staleness=settings.cache.staleness(),
            events=events,
            metadata_deadline_seconds=settings.sync.metadata_deadline_seconds,
            fetch_deadline_seconds=settings.sync.fetch_deadline_seconds,
            preload_collections=settings.sync.preload_collections,
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def init(self) -> None:
        self._running = True
        log.info(
            "collection_sync_started",
            validity_hours=self._staleness.validity_duration.total_seconds() / 3600,
            metadata_check_interval_hours=(
                self._staleness.metadata_check_interval.total_seconds() / 3600
            ),
        )

    async def dispose(self) -> None:
        """Cancel in-flight syncs. The cache and remote store are owned by the caller."""
        self._running = False
        tasks = [task for task, _ in self._inflight.values()]
        self._inflight.clear()
        for task in tasks:
            task.cancel()
        for task in tasks:
            with suppress(asyncio.CancelledError, Exception):
                await task
        log.info("collection_sync_stopped", cancelled=len(tasks))

    async def __aenter__(self) -> CollectionSync:
        await self.init()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.dispose()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_collection(self, collection_id: str) -> list[Song]:
        """Return the songs of a collection, consulting the network only when due.

        Raises CollectionUnavailable when no cache entry, remote copy or bundled
        asset exists.
        """
        self._ensure_running()
        entry = await self._cache.get(collection_id)
        if entry is not None and not needs_metadata_check(entry, self._staleness, self._clock()):
            log.debug("cache_hit", collection_id=collection_id, songs=len(entry.items))
            return entry.items
        return await self._run_exclusive(collection_id, force=False)

    async def force_refresh(self, collection_id: str) -> list[Song]:
        """Bypass the fast path and re-download the collection from the remote store.

        Falls back to the cached entry or bundled asset when the remote fails.
        """
        self._ensure_running()
        log.info("force_refresh_requested", collection_id=collection_id)
        return await self._run_exclusive(collection_id, force=True)

    async def get_all_collections(self, *, force: bool = False) -> dict[str, CollectionResult]:
        """Resolve every known collection independently.

        Known ids are the union of cached ids, the remote listing (live when
        reachable, else the last one remembered) and bundled assets. A failure
        for one collection is recorded in its result and never aborts the
        batch. With ``force`` every collection goes through ``force_refresh``.
        """
        self._ensure_running()
        ids = await self._cache.list_known_collection_ids()
        remote_ids = await self._remote_collection_ids()
        if remote_ids is not None:
            ids |= remote_ids
        ids |= self._assets.available_ids()

        results = await asyncio.gather(*(self._resolve(cid, force=force) for cid in sorted(ids)))
        if remote_ids is not None:
            await self._cache.record_full_sync(self._clock())

        failed = [result.collection_id for result in results if not result.ok]
        log.info(
            "all_collections_resolved",
            collections=len(results),
            failed=len(failed),
            remote_reachable=remote_ids is not None,
            forced=force,
        )
        return {result.collection_id: result for result in results}

    async def list_collections(self, *, refresh: bool = False) -> list[str]:
        """Collection ids available without loading songs.

        Cached, bundled and previously listed remote ids are always included;
        the remote listing is consulted when ``refresh`` is set or nothing is
        known locally.
        """
        self._ensure_running()
        ids = await self._cache.list_known_collection_ids()
        ids |= self._assets.available_ids()
        if refresh or not ids:
            remote_ids = await self._remote_collection_ids()
            if remote_ids is not None:
                ids |= remote_ids
        return sorted(ids)

    async def preload(self, collection_ids: Iterable[str] | None = None) -> dict[str, int]:
        """Warm the cache for important collections.

        Returns song counts per collection, ``-1`` for collections that could
        not be loaded. Never raises for individual failures.
        """
        self._ensure_running()
        targets = list(collection_ids) if collection_ids is not None else self._preload_collections
        results = await asyncio.gather(*(self._resolve(cid) for cid in targets))
        counts = {r.collection_id: len(r.songs) if r.songs is not None else -1 for r in results}
        log.info("preload_complete", collections=counts)
        return counts

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    async def clear_cache(self) -> None:
        """Drop every cached entry; the next read goes through fetch-or-fallback."""
        self._ensure_running()
        await self._cache.clear()

    async def stats(self) -> CacheStats:
        self._ensure_running()
        known = await self._cache.list_known_collection_ids()
        cached, total_songs, memory_size = await self._cache.counts()
        return CacheStats(
            known_collections=len(known | self._assets.available_ids()),
            cached_collections=cached,
            total_cached_songs=total_songs,
            memory_cache_size=memory_size,
            last_full_sync=await self._cache.last_full_sync(),
            validity_hours=self._staleness.validity_duration.total_seconds() / 3600,
            metadata_check_interval_hours=(
                self._staleness.metadata_check_interval.total_seconds() / 3600
            ),
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _ensure_running(self) -> None:
        if not self._running:
            raise RuntimeError("CollectionSync is not initialized; call init() first")

    async def _run_exclusive(self, collection_id: str, *, force: bool) -> list[Song]:
        while True:
            current = self._inflight.get(collection_id)
            if current is None or current[0].done():
                task = asyncio.create_task(
                    self._sync(collection_id, force=force),
                    name=f"collection-sync:{collection_id}",
                )
                self._inflight[collection_id] = (task, force)
                task.add_done_callback(lambda t, cid=collection_id: self._discard(cid, t))
                return await asyncio.shield(task)

            task, task_forced = current
            if task_forced or not force:
                log.debug("sync_joined", collection_id=collection_id)
                return await asyncio.shield(task)

            # A forced refresh must not settle for a regular check's outcome.
            with suppress(Exception):
                await asyncio.shield(task)

    def _discard(self, collection_id: str, task: asyncio.Task[list[Song]]) -> None:
        current = self._inflight.get(collection_id)
        if current is not None and current[0] is task:
            del self._inflight[collection_id]

    async def _sync(self, collection_id: str, *, force: bool) -> list[Song]:
        entry = await self._cache.get(collection_id)
        # Another task may have refreshed the entry while this one was queued.
        if (
            not force
            and entry is not None
            and not needs_metadata_check(entry, self._staleness, self._clock())
        ):
            return entry.items

        songs = await self._refresh_from_remote(collection_id, entry, force=force)
        if songs is not None:
            return songs

        if entry is not None:
            log.info(
                "serving_stale_cache",
                collection_id=collection_id,
                fetched_at=entry.fetched_at.isoformat(),
            )
            return entry.items

        bundled = self._assets.load(collection_id)
        if bundled is not None:
            log.info("serving_bundled_asset", collection_id=collection_id, songs=len(bundled))
            return bundled

        log.warning("collection_unavailable", collection_id=collection_id)
        raise CollectionUnavailable(collection_id)

    async def _refresh_from_remote(
        self, collection_id: str, entry: CacheEntry | None, *, force: bool
    ) -> list[Song] | None:
        """Metadata check plus conditional full fetch. Returns None when the remote failed."""
        metadata: RemoteMetadata | None = await self._remote_call(
            self._remote.fetch_metadata(collection_id),
            deadline=self._metadata_deadline,
            event="remote_metadata_failed",
            collection_id=collection_id,
        )
        if metadata is None:
            return None

        now = self._clock()
        if (
            entry is not None
            and not force
            and not needs_full_fetch(entry, metadata)
            and not is_past_validity(entry, self._staleness, now)
        ):
            await self._cache.put(collection_id, entry.model_copy(update={"fetched_at": now}))
            log.info(
                "remote_unchanged", collection_id=collection_id, fingerprint=metadata.fingerprint
            )
            return entry.items

        songs: list[Song] | None = await self._remote_call(
            self._remote.fetch_collection(collection_id),
            deadline=self._fetch_deadline,
            event="remote_fetch_failed",
            collection_id=collection_id,
        )
        if songs is None:
            return None
        if not songs and metadata.item_count > 0:
            log.warning(
                "remote_collection_empty",
                collection_id=collection_id,
                metadata_count=metadata.item_count,
            )
            return None
        if len(songs) != metadata.item_count:
            log.warning(
                "remote_count_mismatch",
                collection_id=collection_id,
                metadata_count=metadata.item_count,
                fetched_count=len(songs),
            )

        fetched_at = self._clock()
        await self._cache.put(
            collection_id,
            CacheEntry(
                collection_id=collection_id,
                items=songs,
                fetched_at=fetched_at,
                fingerprint=metadata.fingerprint,
                remote_item_count=metadata.item_count,
            ),
        )
        log.info(
            "collection_updated",
            collection_id=collection_id,
            songs=len(songs),
            fingerprint=metadata.fingerprint,
        )
        await self.events.publish(
            CollectionUpdated(
                collection_id=collection_id,
                item_count=len(songs),
                fingerprint=metadata.fingerprint,
                fetched_at=fetched_at,
            )
        )
        return songs

    async def _remote_call(
        self,
        call: Awaitable[T],
        *,
        deadline: float,
        event: str,
        collection_id: str | None = None,
    ) -> T | None:
        """Await a remote call within ``deadline``; any failure becomes None."""
        try:
            return await asyncio.wait_for(call, timeout=deadline)
        except TimeoutError:
            log.warning(event, collection_id=collection_id, reason="timeout", deadline=deadline)
        except SongbookSyncError as exc:
            log.warning(
                event,
                collection_id=collection_id,
                reason="remote_error",
                code=exc.code,
                message=exc.message,
            )
        except Exception:
            log.warning(event, collection_id=collection_id, reason="unexpected", exc_info=True)
        return None

    async def _remote_collection_ids(self) -> set[str] | None:
        ids: set[str] | None = await self._remote_call(
            self._remote.list_collection_ids(),
            deadline=self._metadata_deadline,
            event="remote_listing_failed",
        )
        if ids is not None:
            await self._cache.remember_remote_ids(ids)
        return ids

    async def _resolve(self, collection_id: str, *, force: bool = False) -> CollectionResult:
        try:
            if force:
                songs = await self.force_refresh(collection_id)
            else:
                songs = await self.get_collection(collection_id)
        except SongbookSyncError as exc:
            return CollectionResult(collection_id=collection_id, error=exc.message)
        return CollectionResult(collection_id=collection_id, songs=songs)
