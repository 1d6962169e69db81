"""Tool handler for search_subreddits."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from relayreader.errors import ErrorCode, RelayReaderError
from relayreader.models.tools import SearchSubredditsInput, SearchSubredditsOutput

if TYPE_CHECKING:
    from relayreader.state import AppState


async def handle(query: str, state: AppState) -> dict:
    """Handle a search_subreddits tool call."""
    log = structlog.get_logger().bind(tool="search_subreddits")
    log.info("handler_called", query=query)

    try:
        validated = SearchSubredditsInput(query=query.strip())
    except ValueError as exc:
        raise RelayReaderError(
            code=ErrorCode.INVALID_INPUT,
            message=str(exc),
            suggestion="Provide a non-empty query of at most 128 characters.",
            recoverable=False,
        ) from exc

    names = await state.reader.search_subreddits(validated.query)
    return SearchSubredditsOutput(names=names).model_dump(mode="json")
