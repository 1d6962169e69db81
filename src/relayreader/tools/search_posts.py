"""Tool handler for search_posts."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from relayreader.errors import ErrorCode, RelayReaderError
from relayreader.models.tools import FeedOutput, SearchPostsInput

if TYPE_CHECKING:
    from relayreader.state import AppState


async def handle(
    query: str,
    subreddit: str | None,
    sort: str,
    time: str,
    limit: int,
    after: str | None,
    state: AppState,
) -> dict:
    """Handle a search_posts tool call."""
    log = structlog.get_logger().bind(tool="search_posts", subreddit=subreddit)
    log.info("handler_called", query=query, sort=sort)

    try:
        validated = SearchPostsInput(
            query=query,
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
            suggestion="Provide a non-empty query of at most 512 characters.",
            recoverable=False,
        ) from exc

    listing = await state.reader.search(
        validated.query,
        validated.subreddit,
        sort=validated.sort,
        time=validated.time,
        limit=validated.limit,
        after=validated.after,
    )
    return FeedOutput(listing=listing).model_dump(mode="json")
