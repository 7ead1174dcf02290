from __future__ import annotations

from enum import StrEnum


class ErrorCode(StrEnum):
    REMOTE_UNAVAILABLE = "REMOTE_UNAVAILABLE"
    COLLECTION_NOT_FOUND = "COLLECTION_NOT_FOUND"
    CACHE_CORRUPT = "CACHE_CORRUPT"
    COLLECTION_UNAVAILABLE = "COLLECTION_UNAVAILABLE"
    INVALID_INPUT = "INVALID_INPUT"


class SongbookSyncError(Exception):
    """Base class for all expected failure conditions.

    Only ``CollectionUnavailable`` and input validation errors are meant to
    reach callers of ``CollectionSync`` and the tool layer. Remote and storage
    failures are caught inside the orchestrator and turned into fallbacks.
    """

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        suggestion: str = "",
        recoverable: bool = False,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.suggestion = suggestion
        self.recoverable = recoverable

    def to_dict(self) -> dict:
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "suggestion": self.suggestion,
                "recoverable": self.recoverable,
            }
        }


class RemoteUnavailable(SongbookSyncError):
    """A remote call failed, timed out, or returned an unusable response."""

    def __init__(
        self,
        message: str,
        *,
        code: ErrorCode = ErrorCode.REMOTE_UNAVAILABLE,
        recoverable: bool = True,
    ) -> None:
        super().__init__(
            code=code,
            message=message,
            suggestion="The song database may be unreachable. Cached data is used when present.",
            recoverable=recoverable,
        )


class CacheCorrupt(SongbookSyncError):
    """Durable storage returned data that does not decode as a cache entry."""

    def __init__(self, collection_id: str, reason: str) -> None:
        super().__init__(
            code=ErrorCode.CACHE_CORRUPT,
            message=f"Cached entry for '{collection_id}' is unreadable: {reason}",
            suggestion="The entry is ignored and replaced on the next successful fetch.",
            recoverable=True,
        )
        self.collection_id = collection_id


class CollectionUnavailable(SongbookSyncError):
    """No cache entry, no successful remote fetch and no bundled asset."""

    def __init__(self, collection_id: str) -> None:
        super().__init__(
            code=ErrorCode.COLLECTION_UNAVAILABLE,
            message=f"Collection '{collection_id}' is not available from any source.",
            suggestion=(
                "Check the network connection and try again, or call list_collections "
                "to see which collections are available offline."
            ),
            recoverable=True,
        )
        self.collection_id = collection_id
