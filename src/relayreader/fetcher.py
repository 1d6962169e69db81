"""Resilient relay fetcher.

All network I/O for Reddit goes through a single RelayFetcher instance owned
by the ReaderClient. The fetcher receives an httpx.AsyncClient via
constructor injection — the caller owns the client lifecycle.

One logical request runs as:

    cache lookup ──hit──▶ return
        │ miss
        ▼
    admission slot ─▶ attempt 0 ─▶ backoff ─▶ attempt 1 ─▶ … ─▶ attempt N
                         │                        │
                         └─ success / terminal ◀──┘

The whole retry loop holds a single admission slot, so retries of one
request never consume extra concurrency.
"""

from __future__ import annotations

import asyncio
import copy
import json
import random
import secrets
import time
from contextlib import suppress
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, TypeVar

import httpx
import structlog

from relayreader.errors import (
    FailureKind,
    RateLimitedError,
    RelayReaderError,
    RequestCancelledError,
    RetryBudgetExhaustedError,
    TerminalResourceError,
    TransientRelayError,
)

if TYPE_CHECKING:
    from collections.abc import Mapping

    from relayreader.config import FetcherSettings
    from relayreader.models.cache import ResourceCategory
    from relayreader.protocols import CacheProtocol
    from relayreader.queue import AdmissionQueue, CancellationToken
    from relayreader.relays import RelayBuilder, RelayDirectory

log = structlog.get_logger()

T = TypeVar("T")

CACHE_BUSTER_PARAM = "cb"


def build_http_client(settings: FetcherSettings) -> httpx.AsyncClient:
    """Create the shared httpx client. Called once at startup."""
    session_id = secrets.token_hex(4)
    return httpx.AsyncClient(
        follow_redirects=True,
        timeout=httpx.Timeout(settings.request_timeout_seconds),
        headers={
            "User-Agent": f"{settings.user_agent} (session-{session_id})",
            "Accept": "application/json",
        },
        limits=httpx.Limits(
            max_connections=settings.max_concurrent_requests * 2,
            max_keepalive_connections=settings.max_concurrent_requests,
        ),
    )


def compute_backoff(
    attempt: int,
    *,
    base_seconds: float,
    jitter_seconds: float,
    rng: random.Random,
) -> float:
    """``base * 2**attempt`` plus up to ``jitter_seconds`` of random jitter."""
    return base_seconds * (2**attempt) + rng.uniform(0, jitter_seconds)


def add_cache_buster(url: str, now_ms: int | None = None) -> str:
    """Append ``cb=<epoch ms>`` so relay-level caches cannot serve a stale copy."""
    if now_ms is None:
        now_ms = time.time_ns() // 1_000_000
    separator = "&" if "?" in url else "?"
    return f"{url}{separator}{CACHE_BUSTER_PARAM}={now_ms}"


# ---------------------------------------------------------------------------
# Attempt outcomes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AttemptSuccess:
    payload: Any


@dataclass(frozen=True)
class AttemptFailure:
    kind: FailureKind
    detail: str
    relay: str
    status_code: int | None = None

    @property
    def retryable(self) -> bool:
        return not self.kind.terminal

    def to_error(self, url: str) -> RelayReaderError:
        message = f"{self.detail} fetching {url} via {self.relay}"
        if self.kind is FailureKind.RATE_LIMITED:
            return RateLimitedError(message)
        if self.kind.terminal:
            return TerminalResourceError(message, status_code=self.status_code)
        return TransientRelayError(message, kind=self.kind, status_code=self.status_code)


AttemptOutcome = AttemptSuccess | AttemptFailure


def classify_response(status_code: int, body: str, relay: str) -> AttemptOutcome:
    """Map one relay response onto success or a tagged failure kind."""
    if status_code == 429:
        return AttemptFailure(FailureKind.RATE_LIMITED, "HTTP 429", relay, status_code)
    if status_code >= 500:
        return AttemptFailure(FailureKind.SERVER_ERROR, f"HTTP {status_code}", relay, status_code)
    if status_code == 403:
        return AttemptFailure(FailureKind.FORBIDDEN, "HTTP 403", relay, status_code)
    if status_code == 404:
        return AttemptFailure(FailureKind.NOT_FOUND, "HTTP 404", relay, status_code)
    if not 200 <= status_code < 300:
        return AttemptFailure(
            FailureKind.RELAY_REJECTED, f"Relay HTTP {status_code}", relay, status_code
        )

    try:
        payload = json.loads(body)
    except ValueError:
        # Usually an HTML block page served by the relay
        return AttemptFailure(
            FailureKind.INVALID_BODY, "Invalid JSON body", relay, status_code
        )

    if isinstance(payload, dict) and payload.get("error"):
        reason = payload.get("message") or payload["error"]
        return AttemptFailure(
            FailureKind.API_ERROR, f"Reddit API error: {reason}", relay, status_code
        )

    # api_type=json endpoints report failures as {"json": {"errors": [[code, msg, field]]}}
    envelope = payload.get("json") if isinstance(payload, dict) else None
    if isinstance(envelope, dict) and envelope.get("errors"):
        return AttemptFailure(
            FailureKind.API_ERROR,
            f"Reddit API error: {envelope['errors']}",
            relay,
            status_code,
        )

    return AttemptSuccess(payload)


# ---------------------------------------------------------------------------
# Fetcher
# ---------------------------------------------------------------------------


class RelayFetcher:
    """Cache-first, admission-controlled, retrying fetcher over relays."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        relays: RelayDirectory,
        cache: CacheProtocol,
        queue: AdmissionQueue,
        settings: FetcherSettings,
        *,
        rng: random.Random | None = None,
    ) -> None:
        self._client = client
        self._relays = relays
        self._cache = cache
        self._queue = queue
        self._settings = settings
        self._rng = rng or random.Random()
        self._in_flight: dict[str, asyncio.Task[Any]] = {}

    async def fetch(
        self,
        url: str,
        *,
        method: str = "GET",
        data: Mapping[str, str] | None = None,
        bypass_cache: bool = False,
        cancel_token: CancellationToken | None = None,
        category: ResourceCategory | None = None,
    ) -> Any:
        """Fetch the canonical Reddit ``url`` and return its parsed JSON.

        Raises TerminalResourceError on 403/404, RetryBudgetExhaustedError when
        every attempt failed transiently and RequestCancelledError when
        ``cancel_token`` fires first.
        """
        method = method.upper()
        _raise_if_cancelled(url, cancel_token)

        if method == "GET" and not bypass_cache:
            cached = self._cache.get(url)
            if cached is not None:
                log.debug("cache_hit", url=url)
                return cached
            if self._settings.coalesce_in_flight:
                return await self._coalesced(url, category, cancel_token)

        return await self._queue.submit(
            lambda: self._run_attempts(url, method, data, bypass_cache, cancel_token, category)
        )

    async def _coalesced(
        self,
        url: str,
        category: ResourceCategory | None,
        cancel_token: CancellationToken | None,
    ) -> Any:
        task = self._in_flight.get(url)
        if task is None:
            # The shared run belongs to no caller, so it carries no token.
            task = asyncio.ensure_future(
                self._queue.submit(
                    lambda: self._run_attempts(url, "GET", None, False, None, category)
                )
            )
            self._in_flight[url] = task
            task.add_done_callback(lambda done: self._forget(url, done))
        else:
            log.debug("request_coalesced", url=url)

        shared = asyncio.shield(task)
        if cancel_token is None:
            payload = await shared
        else:
            payload = await _until_cancelled(url, shared, cancel_token, stage="coalesced")
            _raise_if_cancelled(url, cancel_token)
        return copy.deepcopy(payload)

    def _forget(self, url: str, task: asyncio.Task[Any]) -> None:
        self._in_flight.pop(url, None)
        if not task.cancelled():
            # Mark the outcome retrieved even if every waiter has gone away.
            task.exception()

    async def _run_attempts(
        self,
        url: str,
        method: str,
        data: Mapping[str, str] | None,
        bypass_cache: bool,
        cancel_token: CancellationToken | None,
        category: ResourceCategory | None,
    ) -> Any:
        relays = self._relays.select_order(method)
        attempts = self._settings.max_retries + 1
        attempt = 0

        while True:
            if attempt > 0:
                delay = compute_backoff(
                    attempt,
                    base_seconds=self._settings.backoff_base_seconds,
                    jitter_seconds=self._settings.backoff_jitter_seconds,
                    rng=self._rng,
                )
                log.info("relay_backoff", url=url, attempt=attempt, delay=round(delay, 3))
                await self._backoff(url, delay, cancel_token)

            _raise_if_cancelled(url, cancel_token)

            relay = relays[attempt % len(relays)]
            target_url = add_cache_buster(url) if bypass_cache else url
            outcome = await self._attempt(url, relay, target_url, method, data, cancel_token)

            # Nothing is cached or returned once the caller has given up.
            _raise_if_cancelled(url, cancel_token)

            if isinstance(outcome, AttemptSuccess):
                if method == "GET":
                    self._cache.put(url, outcome.payload, category)
                log.info("fetch_complete", url=url, relay=relay.name, attempt=attempt)
                return outcome.payload

            error = outcome.to_error(url)
            if not outcome.retryable:
                log.warning(
                    "relay_terminal_failure",
                    url=url,
                    relay=relay.name,
                    status_code=outcome.status_code,
                )
                raise error

            log.warning(
                "relay_attempt_failed",
                url=url,
                relay=relay.name,
                attempt=attempt,
                kind=outcome.kind,
                status_code=outcome.status_code,
            )
            attempt += 1
            if attempt == attempts:
                log.error("relay_retries_exhausted", url=url, attempts=attempts)
                raise RetryBudgetExhaustedError(
                    f"All {attempts} attempts failed fetching {url}: {error.message}",
                    attempts=attempts,
                    last_error=error,
                ) from error

    async def _backoff(
        self,
        url: str,
        delay: float,
        cancel_token: CancellationToken | None,
    ) -> None:
        if cancel_token is None:
            await asyncio.sleep(delay)
            return
        if await cancel_token.sleep(delay):
            log.info("request_cancelled", url=url, stage="backoff")
            raise RequestCancelledError(url)

    async def _attempt(
        self,
        url: str,
        relay: RelayBuilder,
        target_url: str,
        method: str,
        data: Mapping[str, str] | None,
        cancel_token: CancellationToken | None,
    ) -> AttemptOutcome:
        relayed_url = relay.build(target_url)
        request = asyncio.ensure_future(self._send(relay, relayed_url, method, data))

        if cancel_token is None:
            return await request
        return await _until_cancelled(
            url, request, cancel_token, stage="in_flight", relay=relay.name
        )

    async def _send(
        self,
        relay: RelayBuilder,
        relayed_url: str,
        method: str,
        data: Mapping[str, str] | None,
    ) -> AttemptOutcome:
        try:
            async with asyncio.timeout(self._settings.request_timeout_seconds):
                response = await self._client.request(method, relayed_url, data=data)
        except (TimeoutError, httpx.TimeoutException):
            return AttemptFailure(
                FailureKind.TIMEOUT,
                f"Timed out after {self._settings.request_timeout_seconds}s",
                relay.name,
            )
        except httpx.HTTPError as exc:
            return AttemptFailure(FailureKind.NETWORK, f"Network error: {exc}", relay.name)

        return classify_response(response.status_code, response.text, relay.name)


def _raise_if_cancelled(url: str, cancel_token: CancellationToken | None) -> None:
    if cancel_token is not None and cancel_token.cancelled:
        log.info("request_cancelled", url=url)
        raise RequestCancelledError(url)


async def _until_cancelled(
    url: str,
    future: asyncio.Future[T],
    cancel_token: CancellationToken,
    **context: Any,
) -> T:
    """Await ``future`` unless ``cancel_token`` fires first.

    ``future`` is cancelled, and awaited, when the token wins or when the
    awaiting task is itself cancelled. Pass a shield to protect shared work.
    """
    cancelled = asyncio.ensure_future(cancel_token.wait())
    try:
        await asyncio.wait({future, cancelled}, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        await _discard(future)
        raise
    finally:
        cancelled.cancel()

    if not future.done():
        await _discard(future)
        log.info("request_cancelled", url=url, **context)
        raise RequestCancelledError(url)
    return future.result()


async def _discard(future: asyncio.Future[Any]) -> None:
    if future.cancel():
        with suppress(asyncio.CancelledError):
            await future
