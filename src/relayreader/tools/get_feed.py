"""Tool handler for get_feed.

Receives AppState, validates input, delegates to the ReaderClient and returns
a structured dict. No MCP or FastMCP imports — server.py handles the MCP
wiring.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from relayreader.errors import ErrorCode, RelayReaderError
from relayreader.models.tools import FeedOutput, GetFeedInput

if TYPE_CHECKING:
    from relayreader.state import AppState


async def handle(
    feed: str,
    subreddit: str | None,
    sort: str,
    time: str,
    limit: int,
    after: str | None,
    refresh: bool,
    state: AppState,
) -> dict:
    """Handle a get_feed tool call."""
    log = structlog.get_logger().bind(tool="get_feed", feed=feed, subreddit=subreddit)
    log.info("handler_called", sort=sort, after=after, refresh=refresh)

    try:
        validated = GetFeedInput(
            feed=feed,
            subreddit=subreddit,
            sort=sort,
            time=time,
            limit=limit,
            after=after,
        )
    except ValueError as exc:
        raise RelayReaderError(
            code=ErrorCode.INVALID_INPUT,
            message=str(exc),
            suggestion="Use feed popular|all|subreddit, sort hot|new|top|rising, limit 1-100.",
            recoverable=False,
        ) from exc

    listing = await state.reader.get_listing(
        validated.feed,
        validated.subreddit,
        sort=validated.sort,
        time=validated.time,
        limit=validated.limit,
        after=validated.after,
        bypass_cache=refresh,
    )
    log.info("handler_complete", posts=len(listing.entries), has_more=listing.after is not None)
    return FeedOutput(listing=listing).model_dump(mode="json")
