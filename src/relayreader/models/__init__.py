from __future__ import annotations

from relayreader.models.cache import CachedResponse, ResourceCategory
from relayreader.models.reddit import (
    Comment,
    CommentTree,
    Entry,
    Listing,
    More,
    Post,
    SubredditAbout,
)
from relayreader.models.scoring import PostDigest, PostScore

__all__ = [
    # cache
    "CachedResponse",
    "ResourceCategory",
    # reddit
    "Post",
    "Comment",
    "More",
    "Entry",
    "Listing",
    "CommentTree",
    "SubredditAbout",
    # scoring
    "PostDigest",
    "PostScore",
]
