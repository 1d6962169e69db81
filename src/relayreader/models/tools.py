from __future__ import annotations

import re

from pydantic import BaseModel, Field, field_validator, model_validator

from relayreader.models.reddit import (
    CommentTree,
    FeedType,
    Listing,
    SortOption,
    SubredditAbout,
    ThreadEntry,
    TopTimeOption,
)
from relayreader.models.scoring import PostScore

_SUBREDDIT_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_]{1,20}$")
_THING_ID_RE = re.compile(r"^[a-z0-9]+$")


def _validate_subreddit(v: str) -> str:
    v = v.strip()
    if v.lower().startswith("r/"):
        v = v[2:]
    if not _SUBREDDIT_RE.match(v):
        raise ValueError(f"Invalid subreddit name: {v!r}")
    return v


class GetFeedInput(BaseModel):
    feed: FeedType = "popular"
    subreddit: str | None = None
    sort: SortOption = "hot"
    time: TopTimeOption = "day"
    limit: int = Field(default=25, ge=1, le=100)
    after: str | None = None

    @field_validator("subreddit")
    @classmethod
    def validate_subreddit(cls, v: str | None) -> str | None:
        return None if v is None else _validate_subreddit(v)

    @model_validator(mode="after")
    def require_subreddit_for_subreddit_feed(self) -> GetFeedInput:
        if self.feed == "subreddit" and not self.subreddit:
            raise ValueError("subreddit is required when feed is 'subreddit'")
        return self


class SearchPostsInput(BaseModel):
    query: str = Field(max_length=512)
    subreddit: str | None = None
    sort: SortOption = "hot"
    time: TopTimeOption = "day"
    limit: int = Field(default=25, ge=1, le=100)
    after: str | None = None

    @field_validator("query")
    @classmethod
    def strip_query(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("query must not be empty")
        return v

    @field_validator("subreddit")
    @classmethod
    def validate_subreddit(cls, v: str | None) -> str | None:
        return None if v is None else _validate_subreddit(v)


class GetCommentsInput(BaseModel):
    permalink: str

    @field_validator("permalink")
    @classmethod
    def validate_permalink(cls, v: str) -> str:
        v = v.strip()
        if not v.startswith("/r/") or "/comments/" not in v:
            raise ValueError(f"Not a Reddit post permalink: {v!r}")
        return v


class ExpandCommentsInput(BaseModel):
    link_id: str
    children: list[str] = Field(min_length=1)

    @field_validator("link_id")
    @classmethod
    def validate_link_id(cls, v: str) -> str:
        if not v.startswith("t3_"):
            v = f"t3_{v}"
        if not _THING_ID_RE.match(v[3:]):
            raise ValueError(f"Invalid link id: {v!r}")
        return v

    @field_validator("children")
    @classmethod
    def validate_children(cls, v: list[str]) -> list[str]:
        for child in v:
            if not _THING_ID_RE.match(child):
                raise ValueError(f"Invalid comment id: {child!r}")
        return v


class SubredditInput(BaseModel):
    name: str

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        return _validate_subreddit(v)


class SearchSubredditsInput(BaseModel):
    query: str = Field(min_length=1, max_length=128)


class FeedOutput(BaseModel):
    listing: Listing


class CommentsOutput(BaseModel):
    tree: CommentTree


class ExpandCommentsOutput(BaseModel):
    things: list[ThreadEntry]


class SubredditOutput(BaseModel):
    about: SubredditAbout


class SearchSubredditsOutput(BaseModel):
    names: list[str]


class ScorePostsOutput(BaseModel):
    scores: list[PostScore]
    fallback: bool = False
