"""Per-process state handed to tool handlers through the MCP request context."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from songbook_sync.config import Settings
    from songbook_sync.sync import CollectionSync


@dataclass
class AppState:
    """Built by the server lifespan; ``sync`` is the only entry point to song data."""

    settings: Settings
    sync: CollectionSync
