"""songbook-sync MCP server.

Wires the collection cache, Firebase store, bundled assets and sync
orchestrator together inside the FastMCP lifespan, exposes them as tools and
runs over stdio (default) or Streamable HTTP.
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from contextlib import asynccontextmanager, suppress
from pathlib import Path
from typing import TYPE_CHECKING

import aiosqlite
import structlog
from mcp.server.fastmcp import Context, FastMCP
from mcp.types import CallToolResult, TextContent

import songbook_sync.tools.cache_admin as t_cache_admin
import songbook_sync.tools.get_collection as t_get_collection
import songbook_sync.tools.list_collections as t_list_collections
import songbook_sync.tools.refresh_collection as t_refresh_collection
from songbook_sync import __version__
from songbook_sync.assets import BundledAssets
from songbook_sync.cache import CollectionCache
from songbook_sync.config import Settings
from songbook_sync.errors import SongbookSyncError
from songbook_sync.events import CollectionEvents
from songbook_sync.remote import FirebaseCollectionStore, build_http_client
from songbook_sync.schedulers import run_sync_scheduler
from songbook_sync.state import AppState
from songbook_sync.sync import CollectionSync
from songbook_sync.transport import run_http_server

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator, Awaitable

    from songbook_sync.models.cache import CollectionUpdated

log = structlog.get_logger()


# ---------------------------------------------------------------------------
# Logging setup
# ---------------------------------------------------------------------------


def _setup_logging(settings: Settings) -> None:
    """Route structlog output to stderr in the configured format. Call before logging."""
    processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
    ]
    if settings.logging.format == "json":
        # exc_info=True events carry a structured traceback instead of a text blob
        processors += [structlog.processors.dict_tracebacks, structlog.processors.JSONRenderer()]
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    level = logging.getLevelNamesMapping()[settings.logging.level]
    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        # stdout carries the stdio JSON-RPC stream
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


def _log_collection_updated(event: CollectionUpdated) -> None:
    log.info(
        "collection_update_published",
        collection_id=event.collection_id,
        songs=event.item_count,
        fingerprint=event.fingerprint,
    )


@asynccontextmanager
async def lifespan(server: FastMCP) -> AsyncGenerator[AppState, None]:
    """Open the cache, HTTP client and sync service; close them in reverse on shutdown."""
    settings = Settings()
    _setup_logging(settings)

    log.info(
        "server_starting",
        version=__version__,
        transport=settings.server.transport,
        database_url=settings.remote.database_url,
    )

    http_client = build_http_client()
    remote = FirebaseCollectionStore(http_client, settings.remote)

    db_path = Path(settings.cache.db_path).expanduser()
    db_path.parent.mkdir(parents=True, exist_ok=True)
    db = await aiosqlite.connect(str(db_path))
    cache = CollectionCache(db)
    await cache.init_db()

    assets = BundledAssets(settings.assets.dir)
    events = CollectionEvents()
    events.subscribe(_log_collection_updated)

    sync = CollectionSync.from_settings(settings, cache, remote, assets, events=events)
    await sync.init()

    state = AppState(settings=settings, sync=sync)

    scheduler_task = asyncio.create_task(run_sync_scheduler(state))

    log.info(
        "server_started",
        version=__version__,
        transport=settings.server.transport,
        db_path=str(db_path),
        assets_dir=settings.assets.dir,
    )

    try:
        yield state
    finally:
        scheduler_task.cancel()
        with suppress(asyncio.CancelledError):
            await scheduler_task
        await sync.dispose()
        await http_client.aclose()
        await db.close()
        log.info("server_stopping")


# ---------------------------------------------------------------------------
# Tools
# ---------------------------------------------------------------------------

mcp = FastMCP("songbook-sync", lifespan=lifespan)
# Report the package version in the initialize handshake instead of the SDK version
mcp._mcp_server.version = __version__  # pyright: ignore[reportPrivateUsage]


def _serialise_tool_error(error: SongbookSyncError) -> CallToolResult:
    """Convert a SongbookSyncError to the MCP tool error result envelope."""
    return CallToolResult(
        content=[TextContent(type="text", text=json.dumps(error.to_dict()))],
        isError=True,
    )


async def _run_tool(tool: str, call: Awaitable[dict]) -> object:
    try:
        return await call
    except SongbookSyncError as exc:
        log.warning(
            "tool_error",
            tool=tool,
            code=exc.code,
            message=exc.message,
            recoverable=exc.recoverable,
        )
        return _serialise_tool_error(exc)
    except Exception:
        log.error("tool_unexpected_error", tool=tool, exc_info=True)
        raise


@mcp.tool()
async def get_collection(
    collection_id: str, ctx: Context, offset: int = 0, limit: int | None = None
) -> object:
    """Return the songs of a hymn collection (e.g. "LPMI").

    Served from the local cache when fresh; otherwise revalidated against the
    song database, falling back to cached or bundled data when offline. Use
    offset and limit to page through large collections.
    """
    state: AppState = ctx.request_context.lifespan_context
    return await _run_tool(
        "get_collection", t_get_collection.handle(collection_id, state, offset, limit)
    )


@mcp.tool()
async def refresh_collection(collection_id: str, ctx: Context) -> object:
    """Re-download a collection from the song database, bypassing the cache."""
    state: AppState = ctx.request_context.lifespan_context
    return await _run_tool(
        "refresh_collection", t_refresh_collection.handle(collection_id, state)
    )


@mcp.tool()
async def refresh_all_collections(ctx: Context) -> object:
    """Re-download every known collection, reporting per-collection failures."""
    state: AppState = ctx.request_context.lifespan_context
    return await _run_tool("refresh_all_collections", t_refresh_collection.handle_all(state))


@mcp.tool()
async def list_collections(ctx: Context, refresh: bool = False) -> object:
    """List the ids of all known song collections."""
    state: AppState = ctx.request_context.lifespan_context
    return await _run_tool("list_collections", t_list_collections.handle(state, refresh))


@mcp.tool()
async def cache_stats(ctx: Context) -> object:
    """Report cache size, last full sync time and staleness windows."""
    state: AppState = ctx.request_context.lifespan_context
    return await _run_tool("cache_stats", t_cache_admin.handle_stats(state))


@mcp.tool()
async def clear_cache(ctx: Context) -> object:
    """Drop every cached collection. The next read re-fetches or falls back."""
    state: AppState = ctx.request_context.lifespan_context
    return await _run_tool("clear_cache", t_cache_admin.handle_clear(state))


# ---------------------------------------------------------------------------
# Entrypoint
# ---------------------------------------------------------------------------


def main() -> None:
    settings = Settings()

    if settings.server.transport == "http":
        _setup_logging(settings)
        run_http_server(mcp, settings)
        return

    mcp.run()


if __name__ == "__main__":
    main()
