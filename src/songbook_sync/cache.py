"""SQLite collection cache with an in-memory read-through layer.

All cache operations catch ``aiosqlite.Error`` internally and degrade
gracefully: read failures return ``None`` (treated as cache miss by callers),
write failures are logged and ignored (the in-memory value is still served).
Infrastructure errors never cross the CollectionCache class boundary.

Entries are stored as opaque JSON blobs and decoded into ``CacheEntry`` at
this boundary. A blob that fails validation is a ``CacheCorrupt`` condition:
it is logged, treated as a miss and overwritten by the next successful fetch.
"""

from __future__ import annotations

import asyncio
import json
from datetime import datetime

import aiosqlite
import structlog
from pydantic import ValidationError

from songbook_sync.errors import CacheCorrupt
from songbook_sync.models.cache import CacheEntry

log = structlog.get_logger()

# Bump when the serialised CacheEntry layout changes; older caches are wiped.
CACHE_SCHEMA_VERSION = 2

_CREATE_COLLECTION_TABLE = """
CREATE TABLE IF NOT EXISTS collection_cache (
    collection_id TEXT PRIMARY KEY,
    payload       TEXT NOT NULL,
    item_count    INTEGER NOT NULL DEFAULT 0,
    fetched_at    TEXT NOT NULL
)
"""

_CREATE_METADATA_TABLE = """
CREATE TABLE IF NOT EXISTS cache_metadata (
    key   TEXT PRIMARY KEY,
    value TEXT NOT NULL
)
"""


class CollectionCache:
    """SQLite-backed collection cache implementing CacheStoreProtocol."""

    def __init__(self, db: aiosqlite.Connection) -> None:
        self._db = db
        self._memory: dict[str, CacheEntry] = {}
        self._write_lock = asyncio.Lock()
        # Bumped by every put and clear; a disk read that overlaps one is not memoised.
        self._generation = 0

    async def init_db(self) -> None:
        """Create tables, set WAL mode and apply cache-version invalidation.

        Called once at startup.
        """
        await self._db.execute("PRAGMA journal_mode = WAL")
        await self._db.execute(_CREATE_COLLECTION_TABLE)
        await self._db.execute(_CREATE_METADATA_TABLE)
        await self._db.commit()

        stored_version = await self._read_metadata("schema_version")
        if stored_version is None or int(stored_version) < CACHE_SCHEMA_VERSION:
            log.info(
                "cache_schema_outdated",
                stored_version=stored_version,
                current_version=CACHE_SCHEMA_VERSION,
            )
            await self._db.execute("DELETE FROM collection_cache")
            await self._db.execute(
                "INSERT OR REPLACE INTO cache_metadata (key, value) VALUES ('schema_version', ?)",
                (str(CACHE_SCHEMA_VERSION),),
            )
            await self._db.commit()

        # Empty song lists are never worth serving; force a fresh attempt instead.
        cursor = await self._db.execute("DELETE FROM collection_cache WHERE item_count = 0")
        if cursor.rowcount:
            log.info("cache_empty_entries_removed", count=cursor.rowcount)
        await self._db.commit()

    # ------------------------------------------------------------------
    # Entries
    # ------------------------------------------------------------------

    async def get(self, collection_id: str) -> CacheEntry | None:
        """Read an entry. Returns ``None`` on miss, read failure or corrupt data."""
        entry = self._memory.get(collection_id)
        if entry is not None:
            return entry

        generation = self._generation
        try:
            cursor = await self._db.execute(
                "SELECT payload FROM collection_cache WHERE collection_id = ?",
                (collection_id,),
            )
            row = await cursor.fetchone()
        except aiosqlite.Error:
            log.warning("cache_read_error", collection_id=collection_id, exc_info=True)
            return None

        if row is None:
            return None

        try:
            entry = decode_entry(collection_id, row[0])
        except CacheCorrupt as exc:
            log.warning("cache_corrupt", collection_id=collection_id, reason=exc.message)
            return None

        if generation == self._generation:
            self._memory[collection_id] = entry
        return entry

    async def put(self, collection_id: str, entry: CacheEntry) -> None:
        """Replace an entry. Non-fatal on persistence failure."""
        async with self._write_lock:
            self._generation += 1
            self._memory[collection_id] = entry
            try:
                await self._db.execute(
                    "INSERT OR REPLACE INTO collection_cache "
                    "(collection_id, payload, item_count, fetched_at) VALUES (?, ?, ?, ?)",
                    (
                        collection_id,
                        entry.model_dump_json(by_alias=True),
                        len(entry.items),
                        entry.fetched_at.isoformat(),
                    ),
                )
                await self._db.commit()
            except aiosqlite.Error:
                log.warning("cache_write_error", collection_id=collection_id, exc_info=True)

    async def clear(self) -> None:
        """Remove every entry from memory and disk. Safe to call repeatedly."""
        async with self._write_lock:
            self._generation += 1
            self._memory.clear()
            try:
                await self._db.execute("DELETE FROM collection_cache")
                await self._db.execute(
                    "DELETE FROM cache_metadata "
                    "WHERE key IN ('last_full_sync', 'remote_collection_ids')"
                )
                await self._db.commit()
            except aiosqlite.Error:
                log.warning("cache_clear_error", exc_info=True)
                return
        log.info("cache_cleared")

    async def list_known_collection_ids(self) -> set[str]:
        """Every cached collection id plus the last remote listing, without any remote call."""
        known = set(self._memory)
        known.update(await self.remembered_remote_ids())
        try:
            cursor = await self._db.execute("SELECT collection_id FROM collection_cache")
            known.update(row[0] for row in await cursor.fetchall())
        except aiosqlite.Error:
            log.warning("cache_list_error", exc_info=True)
        return known

    # ------------------------------------------------------------------
    # Bookkeeping
    # ------------------------------------------------------------------

    async def record_full_sync(self, at: datetime) -> None:
        """Remember when a batch read last reached the remote store. Non-fatal."""
        try:
            await self._db.execute(
                "INSERT OR REPLACE INTO cache_metadata (key, value) VALUES ('last_full_sync', ?)",
                (at.isoformat(),),
            )
            await self._db.commit()
        except aiosqlite.Error:
            log.warning("cache_metadata_write_error", exc_info=True)

    async def remember_remote_ids(self, collection_ids: set[str]) -> None:
        """Persist the latest remote listing so it stays known while offline. Non-fatal."""
        try:
            await self._db.execute(
                "INSERT OR REPLACE INTO cache_metadata (key, value) "
                "VALUES ('remote_collection_ids', ?)",
                (json.dumps(sorted(collection_ids)),),
            )
            await self._db.commit()
        except aiosqlite.Error:
            log.warning("cache_metadata_write_error", exc_info=True)

    async def remembered_remote_ids(self) -> set[str]:
        value = await self._read_metadata("remote_collection_ids")
        if value is None:
            return set()
        try:
            return {str(cid) for cid in json.loads(value)}
        except (ValueError, TypeError):
            log.warning("cache_remote_ids_corrupt")
            return set()

    async def last_full_sync(self) -> datetime | None:
        value = await self._read_metadata("last_full_sync")
        if value is None:
            return None
        try:
            return datetime.fromisoformat(value)
        except ValueError:
            return None

    async def counts(self) -> tuple[int, int, int]:
        """Return ``(cached_collections, total_cached_songs, memory_cache_size)``."""
        try:
            cursor = await self._db.execute(
                "SELECT COUNT(*), COALESCE(SUM(item_count), 0) FROM collection_cache"
            )
            row = await cursor.fetchone()
        except aiosqlite.Error:
            log.warning("cache_stats_error", exc_info=True)
            row = None
        if row is None:
            return 0, 0, len(self._memory)
        return int(row[0]), int(row[1]), len(self._memory)

    async def _read_metadata(self, key: str) -> str | None:
        try:
            cursor = await self._db.execute(
                "SELECT value FROM cache_metadata WHERE key = ?", (key,)
            )
            row = await cursor.fetchone()
        except aiosqlite.Error:
            log.warning("cache_metadata_read_error", key=key, exc_info=True)
            return None
        return None if row is None else row[0]


def decode_entry(collection_id: str, payload: str) -> CacheEntry:
    """Validate a stored blob. Raises ``CacheCorrupt`` on any schema mismatch."""
    try:
        entry = CacheEntry.model_validate_json(payload)
    except ValidationError as exc:
        raise CacheCorrupt(collection_id, f"{exc.error_count()} validation error(s)") from exc
    if entry.collection_id != collection_id:
        raise CacheCorrupt(collection_id, f"payload belongs to '{entry.collection_id}'")
    return entry
