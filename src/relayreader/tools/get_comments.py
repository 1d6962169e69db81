"""Tool handler for get_comments."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from relayreader.errors import ErrorCode, RelayReaderError
from relayreader.models.tools import CommentsOutput, GetCommentsInput

if TYPE_CHECKING:
    from relayreader.state import AppState


async def handle(permalink: str, refresh: bool, state: AppState) -> dict:
    """Handle a get_comments tool call."""
    log = structlog.get_logger().bind(tool="get_comments", permalink=permalink)
    log.info("handler_called", refresh=refresh)

    try:
        validated = GetCommentsInput(permalink=permalink)
    except ValueError as exc:
        raise RelayReaderError(
            code=ErrorCode.INVALID_INPUT,
            message=str(exc),
            suggestion="Pass the post's permalink, e.g. /r/python/comments/abc123/title/.",
            recoverable=False,
        ) from exc

    tree = await state.reader.get_comments(validated.permalink, bypass_cache=refresh)
    return CommentsOutput(tree=tree).model_dump(mode="json")
