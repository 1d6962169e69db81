"""Shared test fixtures for the relayreader test suite."""

from __future__ import annotations

import random
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

import httpx
import pytest

from relayreader.cache import ResponseCache
from relayreader.config import RelaySettings, Settings
from relayreader.fetcher import RelayFetcher
from relayreader.queue import AdmissionQueue
from relayreader.relays import build_relay_directory

if TYPE_CHECKING:
    from collections.abc import Callable

# Relay URLs in tests look like https://alpha.test/fetch?url=<encoded target>,
# so respx routes can match on host and read the target from the query.
ALPHA = RelaySettings(
    name="alpha",
    template="https://alpha.test/fetch?url={encoded_url}",
    supports_body_forwarding=True,
)
BETA = RelaySettings(name="beta", template="https://beta.test/raw?u={encoded_url}")


class FakeClock:
    """Manually advanced clock for TTL tests."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 1, 1, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


def make_settings(*, with_beta: bool = False, **fetcher: object) -> Settings:
    """Alpha-only settings with zero backoff so retry tests run instantly."""
    return Settings(
        relays=[ALPHA, BETA] if with_beta else [ALPHA],
        fetcher={"backoff_base_seconds": 0, "backoff_jitter_seconds": 0, **fetcher},
    )


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def settings() -> Settings:
    return make_settings()


@pytest.fixture()
async def http_client() -> httpx.AsyncClient:
    async with httpx.AsyncClient() as client:
        yield client


@pytest.fixture()
def cache(settings: Settings, clock: FakeClock) -> ResponseCache:
    return ResponseCache(settings.cache, clock=clock)


@pytest.fixture()
def fetcher(
    http_client: httpx.AsyncClient,
    settings: Settings,
    cache: ResponseCache,
) -> RelayFetcher:
    rng = random.Random(7)
    return RelayFetcher(
        http_client,
        build_relay_directory(settings.relays, rng=rng),
        cache,
        AdmissionQueue(settings.fetcher.max_concurrent_requests),
        settings.fetcher,
        rng=rng,
    )


@pytest.fixture()
def settings_factory() -> Callable[..., Settings]:
    return make_settings


@pytest.fixture()
def fetcher_factory(
    http_client: httpx.AsyncClient,
) -> Callable[[Settings], tuple[RelayFetcher, ResponseCache]]:
    """Build a fetcher (and its cache) for tests that need non-default settings."""

    def build(settings: Settings) -> tuple[RelayFetcher, ResponseCache]:
        rng = random.Random(1)
        cache = ResponseCache(settings.cache, clock=FakeClock())
        fetcher = RelayFetcher(
            http_client,
            build_relay_directory(settings.relays, rng=rng),
            cache,
            AdmissionQueue(settings.fetcher.max_concurrent_requests),
            settings.fetcher,
            rng=rng,
        )
        return fetcher, cache

    return build
