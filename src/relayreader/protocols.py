"""Protocol interfaces for swappable components.

ReaderClient and AppState reference these protocols, not the concrete
implementations. This allows:
- Tests to use lightweight in-memory fakes
- A different cache backend to be swapped in without touching the façade
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from collections.abc import Mapping

    from relayreader.models.cache import CachedResponse, ResourceCategory
    from relayreader.queue import CancellationToken


class CacheProtocol(Protocol):
    """Interface for the response cache."""

    def get(self, url: str) -> Any | None: ...

    def put(
        self,
        url: str,
        payload: Any,
        category: ResourceCategory | None = None,
    ) -> CachedResponse: ...


class FetcherProtocol(Protocol):
    """Interface for the resilient relay fetcher."""

    async def fetch(
        self,
        url: str,
        *,
        method: str = "GET",
        data: Mapping[str, str] | None = None,
        bypass_cache: bool = False,
        cancel_token: CancellationToken | None = None,
        category: ResourceCategory | None = None,
    ) -> Any: ...
