from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel


class ResourceCategory(StrEnum):
    """Resource kinds with distinct freshness requirements."""

    METADATA = "metadata"
    COMMENTS = "comments"
    SEARCH = "search"
    LISTING = "listing"
    DEFAULT = "default"


class CachedResponse(BaseModel):
    """Parsed JSON payload for one canonical request URL."""

    url: str  # Canonical URL, never relay-wrapped, never cache-busted
    payload: Any
    category: ResourceCategory
    stored_at: datetime
    expires_at: datetime
