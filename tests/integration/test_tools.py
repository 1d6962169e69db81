"""Integration tests for the MCP tool handlers.

Each handler is called directly with a real AppState; relays and the
classifier endpoint are mocked with respx.
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

import httpx
import pytest
import respx

import relayreader.tools.expand_comments as expand_comments
import relayreader.tools.get_comments as get_comments
import relayreader.tools.get_feed as get_feed
import relayreader.tools.get_subreddit as get_subreddit
import relayreader.tools.score_posts as score_posts
import relayreader.tools.search_posts as search_posts
import relayreader.tools.search_subreddits as search_subreddits
from relayreader.errors import ErrorCode, RelayReaderError

if TYPE_CHECKING:
    from relayreader.state import AppState

_CLASSIFIER = "https://classifier.test/v1/chat/completions"


def _listing(*ids: str) -> dict:
    return {
        "kind": "Listing",
        "data": {
            "after": None,
            "children": [{"kind": "t3", "data": {"id": i, "title": i}} for i in ids],
        },
    }


class TestGetFeed:
    @respx.mock
    async def test_returns_serialised_listing(self, app_state: AppState) -> None:
        respx.get(host="alpha.test").mock(
            return_value=httpx.Response(200, json=_listing("a", "b"))
        )
        result = await get_feed.handle("popular", None, "hot", "day", 25, None, False, app_state)

        entries = result["listing"]["entries"]
        assert [e["data"]["id"] for e in entries] == ["a", "b"]
        assert entries[0]["kind"] == "t3"
        assert result["listing"]["after"] is None

    async def test_subreddit_feed_without_name(self, app_state: AppState) -> None:
        with pytest.raises(RelayReaderError) as exc_info:
            await get_feed.handle("subreddit", None, "hot", "day", 25, None, False, app_state)
        assert exc_info.value.code == ErrorCode.INVALID_INPUT
        assert exc_info.value.recoverable is False

    @respx.mock
    async def test_relay_failure_propagates(self, app_state: AppState) -> None:
        respx.get(host="alpha.test").mock(return_value=httpx.Response(404))
        with pytest.raises(RelayReaderError) as exc_info:
            await get_feed.handle("subreddit", "gone", "hot", "day", 25, None, False, app_state)
        assert exc_info.value.code == ErrorCode.RESOURCE_UNAVAILABLE


class TestSearchPosts:
    async def test_empty_query(self, app_state: AppState) -> None:
        with pytest.raises(RelayReaderError) as exc_info:
            await search_posts.handle("  ", None, "hot", "day", 25, None, app_state)
        assert exc_info.value.code == ErrorCode.INVALID_INPUT
        assert "query must not be empty" in exc_info.value.message

    @respx.mock
    async def test_search(self, app_state: AppState) -> None:
        respx.get(host="alpha.test").mock(return_value=httpx.Response(200, json=_listing("a")))
        result = await search_posts.handle("cats", "r/aww", "new", "day", 10, None, app_state)
        assert result["listing"]["entries"][0]["data"]["id"] == "a"


class TestGetComments:
    async def test_rejects_non_permalink(self, app_state: AppState) -> None:
        with pytest.raises(RelayReaderError) as exc_info:
            await get_comments.handle("https://example.com", False, app_state)
        assert exc_info.value.code == ErrorCode.INVALID_INPUT

    @respx.mock
    async def test_returns_tree(self, app_state: AppState) -> None:
        thread = {"data": {"children": [{"kind": "t1", "data": {"id": "c1", "replies": ""}}]}}
        respx.get(host="alpha.test").mock(
            return_value=httpx.Response(200, json=[_listing("abc"), thread])
        )
        result = await get_comments.handle("/r/python/comments/abc/t/", False, app_state)
        assert result["tree"]["post"]["data"]["id"] == "abc"
        assert result["tree"]["comments"][0]["data"]["id"] == "c1"


class TestExpandComments:
    @respx.mock
    async def test_expands(self, app_state: AppState) -> None:
        things = [{"kind": "t1", "data": {"id": "c2"}}, {"kind": "t1", "data": {"id": "c3"}}]
        respx.post(host="alpha.test").mock(
            return_value=httpx.Response(200, json={"json": {"data": {"things": things}}})
        )
        result = await expand_comments.handle("abc", ["c2", "c3"], app_state)
        assert {t["data"]["id"] for t in result["things"]} == {"c2", "c3"}

    async def test_rejects_bad_ids(self, app_state: AppState) -> None:
        with pytest.raises(RelayReaderError) as exc_info:
            await expand_comments.handle("t3_abc", ["../etc"], app_state)
        assert exc_info.value.code == ErrorCode.INVALID_INPUT


class TestSubreddits:
    @respx.mock
    async def test_get_subreddit(self, app_state: AppState) -> None:
        respx.get(host="alpha.test").mock(
            return_value=httpx.Response(
                200, json={"kind": "t5", "data": {"display_name": "python"}}
            )
        )
        result = await get_subreddit.handle("python", app_state)
        assert result["about"]["display_name"] == "python"

    @respx.mock
    async def test_get_subreddit_without_metadata(self, app_state: AppState) -> None:
        respx.get(host="alpha.test").mock(return_value=httpx.Response(200, json={}))
        with pytest.raises(RelayReaderError) as exc_info:
            await get_subreddit.handle("python", app_state)
        assert exc_info.value.code == ErrorCode.RESOURCE_UNAVAILABLE

    @respx.mock
    async def test_get_unknown_subreddit(self, app_state: AppState) -> None:
        respx.get(host="alpha.test").mock(return_value=httpx.Response(200, json=_listing()))
        with pytest.raises(RelayReaderError) as exc_info:
            await get_subreddit.handle("nosuchsub", app_state)
        assert exc_info.value.code == ErrorCode.RESOURCE_UNAVAILABLE

    @respx.mock
    async def test_search_subreddits(self, app_state: AppState) -> None:
        respx.get(host="alpha.test").mock(
            return_value=httpx.Response(
                200, json={"data": {"children": [{"data": {"display_name": "python"}}]}}
            )
        )
        result = await search_subreddits.handle("py", app_state)
        assert result == {"names": ["python"]}


class TestScorePosts:
    @respx.mock
    async def test_scores(self, app_state: AppState) -> None:
        respx.get(host="alpha.test").mock(return_value=httpx.Response(200, json=_listing("a")))
        content = json.dumps({"results": [{"id": "a", "zenScore": 75, "reason": "calm"}]})
        respx.post(_CLASSIFIER).mock(
            return_value=httpx.Response(200, json={"choices": [{"message": {"content": content}}]})
        )

        result = await score_posts.handle("popular", None, "hot", 25, None, app_state)

        assert result["fallback"] is False
        assert result["scores"] == [
            {"id": "a", "zen_score": 75, "reason": "calm", "is_rage_bait": False}
        ]

    @respx.mock
    async def test_classifier_failure_falls_back(self, app_state: AppState) -> None:
        respx.get(host="alpha.test").mock(
            return_value=httpx.Response(200, json=_listing("a", "b"))
        )
        respx.post(_CLASSIFIER).mock(return_value=httpx.Response(500))

        result = await score_posts.handle("popular", None, "hot", 25, None, app_state)

        assert result["fallback"] is True
        assert [s["zen_score"] for s in result["scores"]] == [50, 50]
