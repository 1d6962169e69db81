"""Application state container.

AppState is created once at server startup (inside the FastMCP lifespan context
manager) and injected into every tool handler via the MCP Context object.
The ReaderClient it holds owns the session's cache and admission queue.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import httpx

    from relayreader.classifier import ClassifierClient
    from relayreader.client import ReaderClient
    from relayreader.config import Settings


@dataclass
class AppState:
    """Holds all shared runtime state. Passed to every tool handler."""

    settings: Settings
    reader: ReaderClient
    classifier: ClassifierClient
    http_client: httpx.AsyncClient | None = None
