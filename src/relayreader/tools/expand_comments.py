"""Tool handler for expand_comments.

Expands the ids listed in a ``more`` placeholder. Results are unordered;
clients merge them into the tree by ``parent_id``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from relayreader.errors import ErrorCode, RelayReaderError
from relayreader.models.tools import ExpandCommentsInput, ExpandCommentsOutput

if TYPE_CHECKING:
    from relayreader.state import AppState


async def handle(link_id: str, children: list[str], state: AppState) -> dict:
    """Handle an expand_comments tool call."""
    log = structlog.get_logger().bind(tool="expand_comments", link_id=link_id)
    log.info("handler_called", children=len(children))

    try:
        validated = ExpandCommentsInput(link_id=link_id, children=children)
    except ValueError as exc:
        raise RelayReaderError(
            code=ErrorCode.INVALID_INPUT,
            message=str(exc),
            suggestion="Pass the post fullname (t3_...) and the ids from a 'more' entry.",
            recoverable=False,
        ) from exc

    things = await state.reader.expand_more_children(validated.link_id, validated.children)
    log.info("handler_complete", things=len(things))
    return ExpandCommentsOutput(things=things).model_dump(mode="json")
