"""Integration test fixtures.

Provides a fully wired ReaderClient and AppState over a mocked relay.
Relay, clock and settings fixtures come from tests/conftest.py.
"""

from __future__ import annotations

import os
import random
from typing import TYPE_CHECKING

import pytest
from pydantic import SecretStr

from relayreader.classifier import ClassifierClient
from relayreader.client import ReaderClient
from relayreader.state import AppState

if TYPE_CHECKING:
    import httpx

    from relayreader.config import Settings

CLASSIFIER_ENDPOINT = "https://classifier.test/v1/chat/completions"


@pytest.fixture()
def subprocess_env() -> dict[str, str]:
    """Baseline env dict for subprocess-based MCP integration tests.

    Overrides any local relayreader.yaml by forcing stdio transport and points
    the only relay at an unroutable address so nothing leaves the machine.
    """
    env = os.environ.copy()
    env["RELAYREADER__SERVER__TRANSPORT"] = "stdio"
    env["RELAYREADER__RELAYS"] = (
        '[{"name": "local", "template": "http://127.0.0.1:1/?{encoded_url}",'
        ' "supports_body_forwarding": true}]'
    )
    env["RELAYREADER__FETCHER__MAX_RETRIES"] = "0"
    return env


@pytest.fixture()
def classifier(http_client: httpx.AsyncClient, settings: Settings) -> ClassifierClient:
    settings.classifier.endpoint = CLASSIFIER_ENDPOINT
    settings.classifier.api_key = SecretStr("sk-test")
    return ClassifierClient(http_client, settings.classifier)


@pytest.fixture()
def reader(
    http_client: httpx.AsyncClient,
    settings: Settings,
    clock,
    classifier: ClassifierClient,
) -> ReaderClient:
    return ReaderClient.create(
        http_client,
        settings,
        rng=random.Random(0),
        clock=clock,
        classifier=classifier,
    )


@pytest.fixture()
def app_state(
    http_client: httpx.AsyncClient,
    settings: Settings,
    reader: ReaderClient,
    classifier: ClassifierClient,
) -> AppState:
    """Full AppState wired for tool handler tests."""
    return AppState(
        settings=settings,
        reader=reader,
        classifier=classifier,
        http_client=http_client,
    )
