"""Staleness policy.

Pure decision functions: they receive cache entries, remote metadata and the
current time, return booleans. No knowledge of storage, network or AppState.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from datetime import datetime, timedelta

    from songbook_sync.models.cache import CacheEntry, RemoteMetadata, StalenessConfig


def entry_age(entry: CacheEntry, now: datetime) -> timedelta:
    return now - entry.fetched_at


def needs_metadata_check(
    entry: CacheEntry | None, config: StalenessConfig, now: datetime
) -> bool:
    """True when the cheap metadata round-trip is due (or nothing is cached)."""
    if entry is None:
        return True
    return entry_age(entry, now) >= config.metadata_check_interval


def needs_full_fetch(entry: CacheEntry | None, remote_metadata: RemoteMetadata) -> bool:
    """True when remote metadata says the cached song list is out of date.

    Fingerprint equality only means "probably unchanged", so the item count is
    compared as well because some collections publish a count-only fingerprint.
    The count recorded from metadata at fetch time wins over ``len(entry.items)``
    so songs dropped by the parser do not force a download on every check.
    """
    if entry is None:
        return True
    if remote_metadata.fingerprint != entry.fingerprint:
        return True
    cached_count = (
        entry.remote_item_count if entry.remote_item_count is not None else len(entry.items)
    )
    return remote_metadata.item_count != cached_count


def is_past_validity(entry: CacheEntry | None, config: StalenessConfig, now: datetime) -> bool:
    """True when the entry is older than the full validity window."""
    if entry is None:
        return True
    return entry_age(entry, now) >= config.validity_duration
