"""Firebase Realtime Database client for song collections.

All network I/O for collection data goes through a single
FirebaseCollectionStore shared across callers. The store receives an
httpx.AsyncClient via constructor injection; the lifespan owns the client
lifecycle.

Database layout::

    song_collections/<id>   {"song_count": 273, "updated_at": "...", ...}
    collection_songs/<id>   {"1": {song}, "2": {song}, ...}  or  [{song}, ...]
"""

from __future__ import annotations

import asyncio
import random
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

import httpx
import structlog

from songbook_sync.errors import ErrorCode, RemoteUnavailable
from songbook_sync.models.cache import RemoteMetadata
from songbook_sync.parser import parse_songs

if TYPE_CHECKING:
    from songbook_sync.config import RemoteSettings
    from songbook_sync.models.songs import Song

log = structlog.get_logger()

COLLECTIONS_PATH = "song_collections"
COLLECTION_SONGS_PATH = "collection_songs"

# One retry after a jittered backoff; persistent failures are the caller's problem.
MAX_ATTEMPTS = 2
_RETRYABLE_STATUS = frozenset({408, 429})


def build_http_client() -> httpx.AsyncClient:
    """Create the shared httpx client. Called once at startup."""
    return httpx.AsyncClient(
        timeout=httpx.Timeout(30.0),
        headers={"User-Agent": "songbook-sync/1.0"},
        limits=httpx.Limits(
            max_connections=10,
            max_keepalive_connections=5,
        ),
    )


def metadata_fingerprint(record: dict[str, Any]) -> str:
    """Composite ``"<count>:<updated_at>"`` unless the record carries its own."""
    explicit = record.get("fingerprint")
    if isinstance(explicit, str) and explicit:
        return explicit
    return f"{_song_count(record)}:{record.get('updated_at') or ''}"


def _song_count(record: dict[str, Any]) -> int:
    value = record.get("song_count", 0)
    if isinstance(value, bool) or not isinstance(value, (int, str)):
        raise ValueError(f"'song_count' must be an integer, got {value!r}")
    return int(value)


def _parse_timestamp(value: Any) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, (int, float)):
        # Server timestamps are milliseconds since the epoch
        return datetime.fromtimestamp(value / 1000, tz=UTC)
    return datetime.fromisoformat(str(value))


class FirebaseCollectionStore:
    """Realtime Database REST client implementing RemoteStoreProtocol."""

    def __init__(self, client: httpx.AsyncClient, settings: RemoteSettings) -> None:
        self._client = client
        self._settings = settings
        self._base_url = settings.database_url.rstrip("/")

    async def fetch_metadata(self, collection_id: str) -> RemoteMetadata:
        """Fetch the small metadata record for one collection."""
        record = await self._get_json(
            f"{COLLECTIONS_PATH}/{collection_id}",
            timeout=self._settings.metadata_timeout_seconds,
        )
        if record is None:
            raise RemoteUnavailable(
                f"Collection '{collection_id}' has no metadata record",
                code=ErrorCode.COLLECTION_NOT_FOUND,
                recoverable=False,
            )
        if not isinstance(record, dict):
            raise RemoteUnavailable(f"Malformed metadata for '{collection_id}'")

        try:
            metadata = RemoteMetadata(
                collection_id=collection_id,
                fingerprint=metadata_fingerprint(record),
                item_count=_song_count(record),
                last_modified=_parse_timestamp(record.get("updated_at")),
            )
        except ValueError as exc:
            raise RemoteUnavailable(f"Malformed metadata for '{collection_id}': {exc}") from exc

        log.debug(
            "remote_metadata_fetched",
            collection_id=collection_id,
            fingerprint=metadata.fingerprint,
            item_count=metadata.item_count,
        )
        return metadata

    async def fetch_collection(self, collection_id: str) -> list[Song]:
        """Fetch every song of a collection, ordered by song number."""
        payload = await self._get_json(
            f"{COLLECTION_SONGS_PATH}/{collection_id}",
            timeout=self._settings.fetch_timeout_seconds,
        )
        try:
            songs = parse_songs(payload, collection_id)
        except ValueError as exc:
            raise RemoteUnavailable(str(exc)) from exc

        log.info("remote_collection_fetched", collection_id=collection_id, songs=len(songs))
        return songs

    async def list_collection_ids(self) -> set[str]:
        """List collection ids without downloading their records."""
        payload = await self._get_json(
            COLLECTIONS_PATH,
            timeout=self._settings.metadata_timeout_seconds,
            params={"shallow": "true"},
        )
        if payload is None:
            return set()
        if not isinstance(payload, dict):
            raise RemoteUnavailable("Malformed collection listing")
        return {str(key) for key in payload}

    async def _get_json(
        self,
        path: str,
        *,
        timeout: float,
        params: dict[str, str] | None = None,
    ) -> Any:
        """GET ``<database_url>/<path>.json``, retrying once on transient failures.

        Raises RemoteUnavailable on network errors, non-2xx responses and
        undecodable bodies.
        """
        url = f"{self._base_url}/{path}.json"
        query = dict(params or {})
        if self._settings.auth_token:
            query["auth"] = self._settings.auth_token

        last_error = ""
        for attempt in range(1, MAX_ATTEMPTS + 1):
            try:
                response = await self._client.get(url, params=query, timeout=timeout)
            except httpx.HTTPError as exc:
                last_error = f"Network error fetching {path}: {exc!r}"
                log.warning("remote_request_failed", path=path, attempt=attempt, error=repr(exc))
            else:
                if response.is_success:
                    try:
                        return response.json()
                    except ValueError as exc:
                        raise RemoteUnavailable(f"Invalid JSON from {path}") from exc

                last_error = f"HTTP {response.status_code} fetching {path}"
                if not _is_retryable(response.status_code):
                    raise RemoteUnavailable(last_error, recoverable=False)
                log.warning(
                    "remote_request_failed",
                    path=path,
                    attempt=attempt,
                    status_code=response.status_code,
                )

            if attempt < MAX_ATTEMPTS:
                await asyncio.sleep(_jittered_delay(self._settings.retry_backoff_seconds))

        raise RemoteUnavailable(last_error)


def _is_retryable(status_code: int) -> bool:
    return status_code >= 500 or status_code in _RETRYABLE_STATUS


def _jittered_delay(base_seconds: float) -> float:
    return base_seconds * random.uniform(0.8, 1.2)
