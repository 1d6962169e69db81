from __future__ import annotations

from typing import Annotated, Any, Literal

import structlog
from pydantic import BaseModel, ConfigDict, Field, field_validator

log = structlog.get_logger()

SortOption = Literal["hot", "new", "top", "rising"]
TopTimeOption = Literal["hour", "day", "week", "month", "year", "all"]
FeedType = Literal["popular", "all", "subreddit"]

ENTRY_KINDS: frozenset[str] = frozenset({"t1", "t3", "more"})


class PostData(BaseModel):
    """Subset of a Reddit ``t3`` payload; unknown fields are kept verbatim."""

    model_config = ConfigDict(extra="allow")

    id: str
    name: str = ""
    title: str = ""
    selftext: str = ""
    author: str = ""
    subreddit: str = ""
    subreddit_name_prefixed: str = ""
    score: int = 0
    num_comments: int = 0
    permalink: str = ""
    created_utc: float = 0.0
    url: str = ""
    domain: str | None = None
    thumbnail: str | None = None
    is_video: bool = False
    is_gallery: bool = False


class Post(BaseModel):
    kind: Literal["t3"]
    data: PostData


class CommentData(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str
    name: str = ""
    author: str = ""
    body: str = ""
    body_html: str | None = None
    score: int = 0
    created_utc: float = 0.0
    parent_id: str = ""
    depth: int = 0
    replies: Listing | None = None

    @field_validator("replies", mode="before")
    @classmethod
    def parse_replies(cls, v: Any) -> Any:
        # Reddit sends "" instead of an empty listing when there are no replies
        if v in ("", None):
            return None
        if isinstance(v, dict) and "kind" in v:
            return Listing.from_envelope(v)
        return v


class Comment(BaseModel):
    kind: Literal["t1"]
    data: CommentData


class MoreData(BaseModel):
    """Placeholder for comments that must be fetched via morechildren."""

    model_config = ConfigDict(extra="allow")

    id: str
    name: str = ""
    parent_id: str = ""
    count: int = 0
    depth: int = 0
    children: list[str] = []


class More(BaseModel):
    kind: Literal["more"]
    data: MoreData


Entry = Annotated[Post | Comment | More, Field(discriminator="kind")]
ThreadEntry = Annotated[Comment | More, Field(discriminator="kind")]


class Listing(BaseModel):
    """One page of entries plus the opaque cursor for the next page."""

    entries: list[Entry] = []
    after: str | None = None  # Thread back verbatim; meaningless otherwise

    @classmethod
    def from_envelope(
        cls,
        envelope: Any,
        kinds: frozenset[str] = ENTRY_KINDS,
    ) -> Listing:
        """Shape a raw ``{"kind": "Listing", "data": {...}}`` envelope.

        Children whose kind is not in ``kinds`` (subreddits, users, ...) are
        dropped. A missing or malformed envelope yields an empty page.
        """
        data = envelope.get("data") if isinstance(envelope, dict) else None
        if not isinstance(data, dict):
            return cls()

        children = data.get("children") or []
        kept = [c for c in children if isinstance(c, dict) and c.get("kind") in kinds]
        if len(kept) != len(children):
            log.debug("listing_children_skipped", skipped=len(children) - len(kept))
        return cls.model_validate({"entries": kept, "after": data.get("after")})

    @property
    def posts(self) -> list[Post]:
        return [e for e in self.entries if isinstance(e, Post)]


class CommentTree(BaseModel):
    """Result of a permalink fetch: the post, then its top-level comments."""

    post: Post | None = None
    comments: list[ThreadEntry] = []


class SubredditAbout(BaseModel):
    model_config = ConfigDict(extra="allow")

    display_name: str
    title: str = ""
    public_description: str = ""
    subscribers: int | None = None
    active_user_count: int | None = None
    icon_img: str | None = None
    community_icon: str | None = None
    banner_img: str | None = None
    over18: bool = False


# CommentData refers to Listing before it exists
for _model in (CommentData, Comment, Listing, CommentTree):
    _model.model_rebuild()
