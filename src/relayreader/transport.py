"""HTTP entrypoint for the reader's MCP server.

Requests are screened by ``RequestGate`` before they reach FastMCP's
streamable HTTP app. A rejected request gets the same ``{"error": {...}}``
envelope that tool failures carry, so clients parse one shape.
"""

from __future__ import annotations

import secrets
from typing import TYPE_CHECKING
from urllib.parse import urlparse

import structlog
import uvicorn
from mcp.shared.version import SUPPORTED_PROTOCOL_VERSIONS
from starlette.datastructures import Headers
from starlette.responses import JSONResponse

from relayreader.errors import ErrorCode, RelayReaderError

if TYPE_CHECKING:
    from mcp.server.fastmcp import FastMCP
    from starlette.types import ASGIApp, Receive, Scope, Send

    from relayreader.config import ServerSettings, Settings

log = structlog.get_logger()


def _rejection(code: ErrorCode, message: str, suggestion: str) -> RelayReaderError:
    return RelayReaderError(code=code, message=message, suggestion=suggestion)


class RequestGate:
    """ASGI wrapper that admits only requests this server is willing to serve.

    Checked in order: bearer key (when ``auth_key`` is set), browser origin
    against ``allowed_origin_hosts``, then the ``MCP-Protocol-Version`` header.
    Non-HTTP scopes (lifespan) pass straight through. Written against raw ASGI
    so streamed responses are not buffered.
    """

    def __init__(
        self,
        app: ASGIApp,
        *,
        auth_key: str | None,
        allowed_origin_hosts: list[str],
    ) -> None:
        self.app = app
        self.auth_key = auth_key
        self.allowed_origin_hosts = frozenset(h.lower() for h in allowed_origin_hosts)

    def check(self, headers: Headers) -> tuple[int, RelayReaderError] | None:
        if self.auth_key is not None:
            scheme, _, presented = headers.get("authorization", "").partition(" ")
            if scheme.lower() != "bearer" or not secrets.compare_digest(
                presented.encode(), self.auth_key.encode()
            ):
                return 401, _rejection(
                    ErrorCode.UNAUTHORIZED,
                    "Missing or invalid bearer key.",
                    "Send 'Authorization: Bearer <key>' with the server's auth key.",
                )

        origin = headers.get("origin")
        if origin:
            host = (urlparse(origin).hostname or "").lower()
            if host not in self.allowed_origin_hosts:
                return 403, _rejection(
                    ErrorCode.ORIGIN_REJECTED,
                    f"Origin not allowed: {origin}",
                    "Add the host to server.allowed_origin_hosts to allow it.",
                )

        version = headers.get("mcp-protocol-version")
        if version and version not in SUPPORTED_PROTOCOL_VERSIONS:
            return 400, _rejection(
                ErrorCode.UNSUPPORTED_PROTOCOL,
                f"Unsupported MCP protocol version: {version}",
                f"Use one of: {', '.join(SUPPORTED_PROTOCOL_VERSIONS)}.",
            )
        return None

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] == "http":
            rejected = self.check(Headers(scope=scope))
            if rejected is not None:
                status, exc = rejected
                log.warning(
                    "http_request_rejected",
                    code=exc.code,
                    status=status,
                    path=scope.get("path"),
                )
                await JSONResponse(exc.to_dict(), status_code=status)(scope, receive, send)
                return
        await self.app(scope, receive, send)


def resolve_auth_key(server: ServerSettings) -> str | None:
    """Bearer key the gate enforces, or None when auth is off.

    With auth on and no configured key, a random key is generated and logged
    once so the operator can hand it to clients.
    """
    if not server.auth_enabled:
        log.warning("http_auth_disabled", host=server.host)
        return None
    if server.auth_key:
        return server.auth_key
    key = secrets.token_urlsafe(32)
    log.warning("http_auth_key_generated", auth_key=key)
    return key


def build_http_app(mcp: FastMCP, server: ServerSettings) -> RequestGate:
    return RequestGate(
        mcp.streamable_http_app(),
        auth_key=resolve_auth_key(server),
        allowed_origin_hosts=server.allowed_origin_hosts,
    )


def run_http_server(mcp: FastMCP, settings: Settings) -> None:
    app = build_http_app(mcp, settings.server)
    log.info("http_server_starting", host=settings.server.host, port=settings.server.port)
    # structlog owns logging output; uvicorn's dictConfig would replace it
    uvicorn.run(app, host=settings.server.host, port=settings.server.port, log_config=None)
