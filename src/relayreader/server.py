"""MCP server entrypoint.

Responsibilities (and nothing more):
- Configure structlog
- Create AppState via the FastMCP lifespan context manager
- Register tools
- Start the correct transport (stdio or HTTP)
"""

from __future__ import annotations

import json
import logging
import sys
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

import structlog
from mcp.server.fastmcp import Context, FastMCP
from mcp.types import CallToolResult, TextContent

import relayreader.tools.expand_comments as t_expand_comments
import relayreader.tools.get_comments as t_get_comments
import relayreader.tools.get_feed as t_get_feed
import relayreader.tools.get_subreddit as t_get_subreddit
import relayreader.tools.score_posts as t_score_posts
import relayreader.tools.search_posts as t_search_posts
import relayreader.tools.search_subreddits as t_search_subreddits
from relayreader import __version__
from relayreader.classifier import ClassifierClient
from relayreader.client import ReaderClient
from relayreader.config import Settings
from relayreader.errors import RelayReaderError
from relayreader.fetcher import build_http_client
from relayreader.state import AppState
from relayreader.transport import run_http_server

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator, Awaitable

log = structlog.get_logger()


# ---------------------------------------------------------------------------
# Logging setup
# ---------------------------------------------------------------------------


def _setup_logging(settings: Settings) -> None:
    """Configure structlog. Called once at startup before any log statements."""
    log_level = logging.getLevelNamesMapping()[settings.logging.level]

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    if settings.logging.format == "json":
        processors = [
            *shared_processors,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors = [*shared_processors, structlog.dev.ConsoleRenderer()]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        # Logs go to stderr — stdout is reserved for the MCP JSON-RPC stream
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(server: FastMCP) -> AsyncGenerator[AppState, None]:
    """Create and tear down all shared resources for the server's lifetime."""
    settings = Settings()
    _setup_logging(settings)

    log.info(
        "server_starting",
        version=__version__,
        transport=settings.server.transport,
    )

    http_client = build_http_client(settings.fetcher)
    classifier = ClassifierClient(http_client, settings.classifier)
    reader = ReaderClient.create(http_client, settings, classifier=classifier)

    state = AppState(
        settings=settings,
        reader=reader,
        classifier=classifier,
        http_client=http_client,
    )

    log.info(
        "server_started",
        version=__version__,
        transport=settings.server.transport,
        relays=[r.name for r in settings.relays],
        max_concurrent_requests=settings.fetcher.max_concurrent_requests,
        classifier_configured=classifier.configured,
    )

    try:
        yield state
    finally:
        await http_client.aclose()
        log.info("server_stopping")


# ---------------------------------------------------------------------------
# FastMCP instance and tool registration
# ---------------------------------------------------------------------------

mcp = FastMCP("relayreader", lifespan=lifespan)
# FastMCP doesn't expose a version kwarg — set it on the underlying Server
# so the MCP initialize handshake reports our version, not the SDK's.
mcp._mcp_server.version = __version__  # pyright: ignore[reportPrivateUsage]


def _serialise_tool_error(error: RelayReaderError) -> CallToolResult:
    """Convert a RelayReaderError to the MCP tool error result envelope."""
    return CallToolResult(
        content=[TextContent(type="text", text=json.dumps(error.to_dict()))],
        isError=True,
    )


async def _run_tool(tool: str, call: Awaitable[dict]) -> object:
    try:
        return await call
    except RelayReaderError as exc:
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


def _state(ctx: Context) -> AppState:
    return ctx.request_context.lifespan_context


@mcp.tool()
async def get_feed(
    ctx: Context,
    feed: str = "popular",
    subreddit: str | None = None,
    sort: str = "hot",
    time: str = "day",
    limit: int = 25,
    after: str | None = None,
    refresh: bool = False,
) -> object:
    """Fetch one page of Reddit posts.

    feed is popular, all or subreddit (then subreddit is required). time only
    applies to sort=top. Pass the returned ``after`` cursor back to get the
    next page. refresh=true bypasses every cache layer.
    """
    return await _run_tool(
        "get_feed",
        t_get_feed.handle(feed, subreddit, sort, time, limit, after, refresh, _state(ctx)),
    )


@mcp.tool()
async def search_posts(
    query: str,
    ctx: Context,
    subreddit: str | None = None,
    sort: str = "hot",
    time: str = "day",
    limit: int = 25,
    after: str | None = None,
) -> object:
    """Search Reddit posts, optionally restricted to one subreddit."""
    return await _run_tool(
        "search_posts",
        t_search_posts.handle(query, subreddit, sort, time, limit, after, _state(ctx)),
    )


@mcp.tool()
async def get_comments(permalink: str, ctx: Context, refresh: bool = False) -> object:
    """Fetch a post and its comment tree by permalink.

    Truncated branches come back as ``more`` entries; expand them with
    expand_comments.
    """
    return await _run_tool(
        "get_comments", t_get_comments.handle(permalink, refresh, _state(ctx))
    )


@mcp.tool()
async def expand_comments(link_id: str, children: list[str], ctx: Context) -> object:
    """Expand the comment ids of a ``more`` placeholder for post ``link_id``."""
    return await _run_tool(
        "expand_comments", t_expand_comments.handle(link_id, children, _state(ctx))
    )


@mcp.tool()
async def get_subreddit(name: str, ctx: Context) -> object:
    """Fetch subreddit metadata (title, description, subscribers, icons)."""
    return await _run_tool("get_subreddit", t_get_subreddit.handle(name, _state(ctx)))


@mcp.tool()
async def search_subreddits(query: str, ctx: Context) -> object:
    """Find subreddit names matching a query."""
    return await _run_tool(
        "search_subreddits", t_search_subreddits.handle(query, _state(ctx))
    )


@mcp.tool()
async def score_posts(
    ctx: Context,
    feed: str = "popular",
    subreddit: str | None = None,
    sort: str = "hot",
    limit: int = 25,
    after: str | None = None,
) -> object:
    """Fetch a feed page and score each post for calm vs. rage bait."""
    return await _run_tool(
        "score_posts",
        t_score_posts.handle(feed, subreddit, sort, limit, after, _state(ctx)),
    )


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
