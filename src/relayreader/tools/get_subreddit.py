"""Tool handler for get_subreddit."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from relayreader.errors import ErrorCode, RelayReaderError
from relayreader.models.tools import SubredditInput, SubredditOutput

if TYPE_CHECKING:
    from relayreader.state import AppState


async def handle(name: str, state: AppState) -> dict:
    """Handle a get_subreddit tool call."""
    log = structlog.get_logger().bind(tool="get_subreddit", subreddit=name)
    log.info("handler_called")

    try:
        validated = SubredditInput(name=name)
    except ValueError as exc:
        raise RelayReaderError(
            code=ErrorCode.INVALID_INPUT,
            message=str(exc),
            suggestion="Subreddit names are 2-21 letters, digits or underscores.",
            recoverable=False,
        ) from exc

    about = await state.reader.get_subreddit_about(validated.name)
    if about is None:
        raise RelayReaderError(
            code=ErrorCode.RESOURCE_UNAVAILABLE,
            message=f"No metadata returned for r/{validated.name}",
            suggestion="The subreddit may not exist. Check the name with search_subreddits.",
            recoverable=False,
        )
    return SubredditOutput(about=about).model_dump(mode="json")
