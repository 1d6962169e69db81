"""Resource façade over the resilient fetcher.

Builds canonical Reddit URLs for each logical operation and shapes the raw
JSON envelopes into typed models. The canonical URL is also the cache key,
so parameter order here is fixed.

ReaderClient is constructed once per session and owns its cache, admission
queue and relay directory. Nothing in this module is a module-level
singleton; tests build a fresh client per case.
"""

from __future__ import annotations

import asyncio
import random
from typing import TYPE_CHECKING, Any
from urllib.parse import urlencode

import structlog
from pydantic import TypeAdapter, ValidationError

from relayreader.cache import ResponseCache
from relayreader.errors import ClassifierError, ErrorCode, FailureKind, TransientRelayError
from relayreader.fetcher import RelayFetcher
from relayreader.models.reddit import (
    CommentTree,
    Listing,
    Post,
    SubredditAbout,
    ThreadEntry,
)
from relayreader.queue import AdmissionQueue
from relayreader.relays import build_relay_directory

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence
    from datetime import datetime

    import httpx

    from relayreader.classifier import ClassifierClient
    from relayreader.config import RedditSettings, Settings
    from relayreader.models.reddit import FeedType, PostData, SortOption, TopTimeOption
    from relayreader.models.scoring import PostScore
    from relayreader.protocols import FetcherProtocol
    from relayreader.queue import CancellationToken

log = structlog.get_logger()

_POST_KINDS: frozenset[str] = frozenset({"t3"})
_THREAD_KINDS: frozenset[str] = frozenset({"t1", "more"})
_THREAD_ENTRIES: TypeAdapter[list[ThreadEntry]] = TypeAdapter(list[ThreadEntry])

_FEED_PATHS: dict[str, str] = {
    "popular": "/r/popular",
    "all": "/r/all",
}


# ---------------------------------------------------------------------------
# Canonical URLs
# ---------------------------------------------------------------------------


def listing_url(
    base_url: str,
    feed: FeedType,
    subreddit: str | None = None,
    *,
    sort: SortOption = "hot",
    time: TopTimeOption = "day",
    limit: int = 25,
    after: str | None = None,
) -> str:
    if feed == "subreddit":
        if not subreddit:
            raise ValueError("subreddit feed requires a subreddit name")
        path = f"/r/{subreddit}"
    else:
        path = _FEED_PATHS[feed]

    params: list[tuple[str, Any]] = [("limit", limit), ("raw_json", 1)]
    _add_paging(params, sort=sort, time=time, after=after)
    return f"{base_url}{path}/{sort}.json?{urlencode(params)}"


def search_url(
    base_url: str,
    query: str,
    subreddit: str | None = None,
    *,
    sort: SortOption = "hot",
    time: TopTimeOption = "day",
    limit: int = 25,
    after: str | None = None,
) -> str:
    # Search has no "rising" order; relevance is the closest equivalent.
    search_sort = "relevance" if sort == "rising" else sort

    params: list[tuple[str, Any]] = [("q", query)]
    if subreddit:
        path = f"/r/{subreddit}/search.json"
        params.append(("restrict_sr", "on"))
    else:
        path = "/search.json"
    params += [("sort", search_sort), ("limit", limit), ("raw_json", 1)]
    _add_paging(params, sort=sort, time=time, after=after)
    return f"{base_url}{path}?{urlencode(params)}"


def comments_url(base_url: str, permalink: str) -> str:
    return f"{base_url}{permalink.rstrip('/')}.json?raw_json=1"


def about_url(base_url: str, subreddit: str) -> str:
    return f"{base_url}/r/{subreddit}/about.json?raw_json=1"


def subreddit_search_url(base_url: str, query: str, limit: int) -> str:
    params = urlencode([("q", query), ("limit", limit), ("raw_json", 1)])
    return f"{base_url}/subreddits/search.json?{params}"


def more_children_url(base_url: str) -> str:
    return f"{base_url}/api/morechildren.json"


def _add_paging(
    params: list[tuple[str, Any]],
    *,
    sort: str,
    time: str,
    after: str | None,
) -> None:
    if sort == "top":
        params.append(("t", time))
    if after:
        params.append(("after", after))


def chunked(items: Sequence[str], size: int) -> list[list[str]]:
    return [list(items[i : i + size]) for i in range(0, len(items), size)]


def _unexpected_shape(url: str, expected: str) -> TransientRelayError:
    log.warning("unexpected_response_shape", url=url, expected=expected)
    return TransientRelayError(
        f"Expected {expected} from {url}", kind=FailureKind.INVALID_BODY
    )


def _shape_listing(url: str, payload: Any, kinds: frozenset[str]) -> Listing:
    try:
        return Listing.from_envelope(payload, kinds=kinds)
    except ValidationError as exc:
        raise _unexpected_shape(url, "a listing") from exc


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


class ReaderClient:
    """Typed Reddit operations over a resilient, cached relay fetcher."""

    def __init__(
        self,
        fetcher: FetcherProtocol,
        settings: RedditSettings,
        *,
        classifier: ClassifierClient | None = None,
    ) -> None:
        self._fetcher = fetcher
        self._settings = settings
        self._classifier = classifier

    @classmethod
    def create(
        cls,
        http_client: httpx.AsyncClient,
        settings: Settings,
        *,
        rng: random.Random | None = None,
        clock: Callable[[], datetime] | None = None,
        classifier: ClassifierClient | None = None,
    ) -> ReaderClient:
        """Wire a fresh cache, queue, relay directory and fetcher together."""
        rng = rng or random.Random()
        cache = ResponseCache(settings.cache, clock=clock)
        fetcher = RelayFetcher(
            http_client,
            build_relay_directory(settings.relays, rng=rng),
            cache,
            AdmissionQueue(settings.fetcher.max_concurrent_requests),
            settings.fetcher,
            rng=rng,
        )
        return cls(fetcher, settings.reddit, classifier=classifier)

    @property
    def fetcher(self) -> FetcherProtocol:
        return self._fetcher

    async def get_listing(
        self,
        feed: FeedType = "popular",
        subreddit: str | None = None,
        *,
        sort: SortOption = "hot",
        time: TopTimeOption = "day",
        limit: int | None = None,
        after: str | None = None,
        bypass_cache: bool = False,
        cancel_token: CancellationToken | None = None,
    ) -> Listing:
        """Fetch one page of posts for a feed. Pass ``after`` to get the next page."""
        url = listing_url(
            self._settings.base_url,
            feed,
            subreddit,
            sort=sort,
            time=time,
            limit=limit or self._settings.default_limit,
            after=after,
        )
        payload = await self._fetcher.fetch(
            url, bypass_cache=bypass_cache, cancel_token=cancel_token
        )
        return _shape_listing(url, payload, _POST_KINDS)

    async def search(
        self,
        query: str,
        subreddit: str | None = None,
        *,
        sort: SortOption = "hot",
        time: TopTimeOption = "day",
        limit: int | None = None,
        after: str | None = None,
        bypass_cache: bool = False,
        cancel_token: CancellationToken | None = None,
    ) -> Listing:
        """Full-text post search, optionally restricted to one subreddit."""
        url = search_url(
            self._settings.base_url,
            query,
            subreddit,
            sort=sort,
            time=time,
            limit=limit or self._settings.default_limit,
            after=after,
        )
        payload = await self._fetcher.fetch(
            url, bypass_cache=bypass_cache, cancel_token=cancel_token
        )
        return _shape_listing(url, payload, _POST_KINDS)

    async def get_comments(
        self,
        permalink: str,
        *,
        bypass_cache: bool = False,
        cancel_token: CancellationToken | None = None,
    ) -> CommentTree:
        """Fetch a post and its comment tree.

        The endpoint answers with a two-element array: the post listing, then
        the comment listing. Truncated branches appear as ``more`` entries
        for :meth:`expand_more_children`.
        """
        url = comments_url(self._settings.base_url, permalink)
        payload = await self._fetcher.fetch(
            url, bypass_cache=bypass_cache, cancel_token=cancel_token
        )
        if not isinstance(payload, list) or len(payload) < 2:
            raise _unexpected_shape(url, "a [post, comments] pair")

        posts = _shape_listing(url, payload[0], _POST_KINDS).posts
        thread = _shape_listing(url, payload[1], _THREAD_KINDS)
        return CommentTree(
            post=posts[0] if posts else None,
            comments=thread.entries,
        )

    async def get_subreddit_about(
        self,
        subreddit: str,
        *,
        bypass_cache: bool = False,
        cancel_token: CancellationToken | None = None,
    ) -> SubredditAbout | None:
        url = about_url(self._settings.base_url, subreddit)
        payload = await self._fetcher.fetch(
            url, bypass_cache=bypass_cache, cancel_token=cancel_token
        )
        # Unknown subreddits answer about.json with a search Listing, not a t5.
        if not isinstance(payload, dict) or payload.get("kind") != "t5":
            return None
        data = payload.get("data")
        if not isinstance(data, dict):
            return None
        try:
            return SubredditAbout.model_validate(data)
        except ValidationError as exc:
            raise _unexpected_shape(url, "subreddit metadata") from exc

    async def search_subreddits(
        self,
        query: str,
        *,
        limit: int | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> list[str]:
        """Return display names of subreddits matching ``query``."""
        url = subreddit_search_url(
            self._settings.base_url,
            query,
            limit or self._settings.subreddit_search_limit,
        )
        payload = await self._fetcher.fetch(url, cancel_token=cancel_token)
        listing = payload.get("data") if isinstance(payload, dict) else None
        children = (listing or {}).get("children") or []
        return [
            child["data"]["display_name"]
            for child in children
            if isinstance(child, dict) and "display_name" in child.get("data", {})
        ]

    async def expand_more_children(
        self,
        link_id: str,
        children: Sequence[str],
        *,
        cancel_token: CancellationToken | None = None,
    ) -> list[ThreadEntry]:
        """Expand truncated comment branches.

        ``children`` may be arbitrarily long; it is split into fixed-size
        chunks fetched concurrently (each chunk passes through the admission
        queue on its own). The output is the flattened union of all chunks in
        no particular order; callers merge by comment id, not position.
        """
        if not children:
            return []

        chunks = chunked(children, self._settings.more_children_chunk_size)
        log.debug("more_children_chunked", link_id=link_id, chunks=len(chunks))
        results = await asyncio.gather(
            *(self._fetch_more_chunk(link_id, chunk, cancel_token) for chunk in chunks)
        )
        return [thing for chunk_things in results for thing in chunk_things]

    async def _fetch_more_chunk(
        self,
        link_id: str,
        chunk: list[str],
        cancel_token: CancellationToken | None,
    ) -> list[ThreadEntry]:
        url = more_children_url(self._settings.base_url)
        payload = await self._fetcher.fetch(
            url,
            method="POST",
            data={"link_id": link_id, "children": ",".join(chunk), "api_type": "json"},
            cancel_token=cancel_token,
        )
        try:
            things = payload["json"]["data"]["things"]
            kept = [t for t in things if isinstance(t, dict) and t.get("kind") in _THREAD_KINDS]
            return _THREAD_ENTRIES.validate_python(kept)
        except (KeyError, TypeError, ValidationError) as exc:
            raise _unexpected_shape(url, "expanded comments") from exc

    async def classify(self, posts: Sequence[Post | PostData]) -> list[PostScore]:
        """Send a minimised batch to the external classifier. No interpretation."""
        if self._classifier is None:
            raise ClassifierError(
                ErrorCode.CLASSIFIER_UNAVAILABLE,
                "No classifier configured",
                recoverable=False,
            )
        return await self._classifier.classify(
            [p.data if isinstance(p, Post) else p for p in posts]
        )
