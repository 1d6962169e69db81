"""Tool handler for score_posts.

Fetches a feed page and asks the classifier to score it. Classifier failures
are this caller's to absorb: the handler returns neutral scores flagged with
``fallback=True`` instead of failing the whole call. Relay errors while
fetching the feed still propagate.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from relayreader.classifier import fallback_scores
from relayreader.errors import ClassifierError, ErrorCode, RelayReaderError
from relayreader.models.tools import GetFeedInput, ScorePostsOutput

if TYPE_CHECKING:
    from relayreader.state import AppState


async def handle(
    feed: str,
    subreddit: str | None,
    sort: str,
    limit: int,
    after: str | None,
    state: AppState,
) -> dict:
    """Handle a score_posts tool call."""
    log = structlog.get_logger().bind(tool="score_posts", feed=feed, subreddit=subreddit)
    log.info("handler_called")

    try:
        validated = GetFeedInput(
            feed=feed, subreddit=subreddit, sort=sort, limit=limit, after=after
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
    )
    posts = [p.data for p in listing.posts]

    try:
        scores = await state.reader.classify(posts)
    except ClassifierError as exc:
        log.warning("classifier_fallback", code=exc.code, message=exc.message)
        return ScorePostsOutput(scores=fallback_scores(posts), fallback=True).model_dump(
            mode="json"
        )

    return ScorePostsOutput(scores=scores).model_dump(mode="json")
