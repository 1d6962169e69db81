"""Relay directory: which public passthroughs to try, and in what order.

Not every relay forwards a request body, so non-GET requests are restricted
to the builders flagged with ``supports_body_forwarding``.
"""

from __future__ import annotations

import random
from dataclasses import dataclass
from typing import TYPE_CHECKING
from urllib.parse import quote

if TYPE_CHECKING:
    from collections.abc import Iterable

    from relayreader.config import RelaySettings


@dataclass(frozen=True)
class RelayBuilder:
    """Maps a target URL to its relay-wrapped form. Stateless."""

    name: str
    template: str
    supports_body_forwarding: bool = False

    def build(self, target_url: str) -> str:
        return self.template.format(url=target_url, encoded_url=quote(target_url, safe=""))

    @classmethod
    def from_settings(cls, relay: RelaySettings) -> RelayBuilder:
        return cls(
            name=relay.name,
            template=relay.template,
            supports_body_forwarding=relay.supports_body_forwarding,
        )


class RelayDirectory:
    """Ordered set of relay builders.

    ``rng`` drives the per-call shuffle; pass a seeded ``random.Random`` for
    reproducible attempt order.
    """

    def __init__(
        self,
        builders: Iterable[RelayBuilder],
        rng: random.Random | None = None,
    ) -> None:
        self._builders: tuple[RelayBuilder, ...] = tuple(builders)
        self._body_forwarding = tuple(b for b in self._builders if b.supports_body_forwarding)
        self._rng = rng or random.Random()

        if not self._builders:
            raise ValueError("RelayDirectory needs at least one relay")
        if not self._body_forwarding:
            raise ValueError("No relay is configured with supports_body_forwarding=True")

    @property
    def builders(self) -> tuple[RelayBuilder, ...]:
        return self._builders

    def select_order(self, method: str = "GET") -> list[RelayBuilder]:
        """Return the relays to rotate through for one logical request."""
        if method.upper() != "GET":
            return list(self._body_forwarding)

        order = list(self._builders)
        self._rng.shuffle(order)
        return order


def build_relay_directory(
    relays: Iterable[RelaySettings],
    rng: random.Random | None = None,
) -> RelayDirectory:
    return RelayDirectory((RelayBuilder.from_settings(r) for r in relays), rng=rng)
