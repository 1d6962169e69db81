"""In-process response cache with per-category TTLs.

Entries are keyed by the canonical request URL (the Reddit URL before relay
wrapping and before any cache-buster is appended). Expiry is lazy: an expired
entry is dropped when it is read, there is no background sweep.

The size bound evicts the oldest-*inserted* entry, not the least recently
used one. That is adequate for a session-scoped cache of a few hundred
entries; a longer-lived service would want true LRU.
"""

from __future__ import annotations

import copy
import re
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Any
from urllib.parse import urlparse

import structlog

from relayreader.models.cache import CachedResponse, ResourceCategory

if TYPE_CHECKING:
    from collections.abc import Callable

    from relayreader.config import CacheSettings

log = structlog.get_logger()

_ABOUT_RE = re.compile(r"/about\.json$")
_SEARCH_RE = re.compile(r"/search\.json$")
_COMMENTS_RE = re.compile(r"/comments/")
_LISTING_RE = re.compile(r"/(hot|new|top|rising|controversial|best)\.json$")


def categorize_url(url: str) -> ResourceCategory:
    """Pick the TTL category for a canonical Reddit URL by its path."""
    path = urlparse(url).path
    if _ABOUT_RE.search(path):
        return ResourceCategory.METADATA
    if _SEARCH_RE.search(path):
        return ResourceCategory.SEARCH
    if _COMMENTS_RE.search(path):
        return ResourceCategory.COMMENTS
    if _LISTING_RE.search(path):
        return ResourceCategory.LISTING
    return ResourceCategory.DEFAULT


def _utcnow() -> datetime:
    return datetime.now(UTC)


class ResponseCache:
    """Bounded URL → payload map implementing CacheProtocol."""

    def __init__(
        self,
        settings: CacheSettings,
        *,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._settings = settings
        self._clock = clock or _utcnow
        # dict preserves insertion order; the first key is always the oldest
        self._entries: dict[str, CachedResponse] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, url: object) -> bool:
        return url in self._entries

    def ttl_for(self, category: ResourceCategory) -> timedelta:
        seconds = {
            ResourceCategory.METADATA: self._settings.metadata_ttl_seconds,
            ResourceCategory.COMMENTS: self._settings.comments_ttl_seconds,
            ResourceCategory.SEARCH: self._settings.search_ttl_seconds,
            ResourceCategory.LISTING: self._settings.listing_ttl_seconds,
        }.get(category, self._settings.default_ttl_seconds)
        return timedelta(seconds=seconds)

    def get(self, url: str) -> Any | None:
        """Return a private copy of the cached payload, or ``None`` on miss/expiry."""
        entry = self._entries.get(url)
        if entry is None:
            return None

        if self._clock() > entry.expires_at:
            del self._entries[url]
            log.debug("cache_expired", url=url, category=entry.category)
            return None

        return copy.deepcopy(entry.payload)

    def put(
        self,
        url: str,
        payload: Any,
        category: ResourceCategory | None = None,
    ) -> CachedResponse:
        """Store a copy of ``payload`` under ``url`` with its category TTL."""
        if category is None:
            category = categorize_url(url)

        now = self._clock()
        entry = CachedResponse(
            url=url,
            payload=copy.deepcopy(payload),
            category=category,
            stored_at=now,
            expires_at=now + self.ttl_for(category),
        )

        # Re-inserting moves a refreshed URL to the young end of the order.
        self._entries.pop(url, None)
        self._entries[url] = entry

        while len(self._entries) > self._settings.max_entries:
            oldest = next(iter(self._entries))
            del self._entries[oldest]
            log.debug("cache_evicted", url=oldest, size=len(self._entries))

        return entry

    def clear(self) -> None:
        self._entries.clear()
