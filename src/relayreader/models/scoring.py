from __future__ import annotations

from pydantic import BaseModel, Field


class PostDigest(BaseModel):
    """Minimised post sent to the classifier to save tokens."""

    id: str
    title: str
    subreddit: str
    body_snippet: str


class PostScore(BaseModel):
    """Classifier verdict for one post. Scores are transported, not interpreted."""

    id: str
    zen_score: int = Field(ge=0, le=100)  # 100 = calm, 0 = rage bait
    reason: str
    is_rage_bait: bool
