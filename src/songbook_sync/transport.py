"""Streamable HTTP transport for the songbook MCP server.

The MCP app is wrapped in a pure ASGI guard (streamed responses pass through
unbuffered) that also answers an unauthenticated liveness probe.
"""

from __future__ import annotations

import re
import secrets
from typing import TYPE_CHECKING

import structlog
import uvicorn
from starlette.datastructures import Headers
from starlette.responses import JSONResponse, PlainTextResponse, Response

from songbook_sync import __version__

if TYPE_CHECKING:
    from mcp.server.fastmcp import FastMCP
    from starlette.types import ASGIApp, Receive, Scope, Send

    from songbook_sync.config import Settings

log = structlog.get_logger()

SUPPORTED_PROTOCOL_VERSIONS: frozenset[str] = frozenset({"2025-11-25", "2025-06-18", "2025-03-26"})
HEALTH_PATH = "/healthz"
_LOCALHOST_ORIGIN = re.compile(r"^https?://(localhost|127\.0\.0\.1)(:\d+)?$")


class MCPSecurityMiddleware:
    """Reject unauthorised, cross-origin or wrong-version requests before MCP sees them.

    Checks run in order: bearer key (when enabled), localhost-only Origin,
    then MCP-Protocol-Version. ``GET /healthz`` is answered directly and skips
    every check so process supervisors need no credentials.
    """

    def __init__(
        self,
        app: ASGIApp,
        *,
        auth_enabled: bool,
        auth_key: str | None = None,
    ) -> None:
        self.app = app
        self.auth_enabled = auth_enabled
        self.auth_key = auth_key

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        if scope["path"] == HEALTH_PATH and scope["method"] == "GET":
            health = JSONResponse({"status": "ok", "version": __version__})
            await health(scope, receive, send)
            return

        rejection = self._reject(Headers(scope=scope))
        if rejection is not None:
            log.info(
                "http_request_rejected",
                path=scope["path"],
                status_code=rejection.status_code,
            )
            await rejection(scope, receive, send)
            return

        await self.app(scope, receive, send)

    def _reject(self, headers: Headers) -> Response | None:
        if self.auth_enabled and not self._authorized(headers.get("authorization", "")):
            return PlainTextResponse("Unauthorized", status_code=401)

        # Browsers always send Origin; CLI clients usually omit it
        origin = headers.get("origin", "")
        if origin and not _LOCALHOST_ORIGIN.match(origin):
            return PlainTextResponse("Forbidden", status_code=403)

        version = headers.get("mcp-protocol-version", "")
        if version and version not in SUPPORTED_PROTOCOL_VERSIONS:
            return PlainTextResponse(f"Unsupported protocol version: {version}", status_code=400)
        return None

    def _authorized(self, auth_header: str) -> bool:
        scheme, _, token = auth_header.partition(" ")
        if not self.auth_key or scheme != "Bearer":
            return False
        return secrets.compare_digest(token, self.auth_key)


def run_http_server(mcp: FastMCP, settings: Settings) -> None:
    """Serve the MCP app over Streamable HTTP until interrupted."""
    server = settings.server
    auth_key = server.auth_key or None

    if server.auth_enabled and auth_key is None:
        auth_key = secrets.token_urlsafe(32)
        log.warning("http_auth_key_generated", transport="http", auth_key=auth_key)
    elif not server.auth_enabled:
        log.warning("http_auth_disabled", transport="http", host=server.host)

    app = MCPSecurityMiddleware(
        mcp.streamable_http_app(),
        auth_enabled=server.auth_enabled,
        auth_key=auth_key,
    )
    log.info("http_server_starting", host=server.host, port=server.port, health=HEALTH_PATH)
    uvicorn.run(app, host=server.host, port=server.port, log_config=None)
