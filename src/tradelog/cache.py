from __future__ import annotations

"""
In-memory caches for upstream price and image data.

Both caches live for the process lifetime and are created once by the app
factory. Neither is persisted; a restart starts from empty.
"""

import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

Clock = Callable[[], float]


@dataclass
class CachedPrices:
    """A complete, successful batch price response."""

    data: dict[str, Any]
    cached_at: float


@dataclass
class CachedImage:
    """A verified image payload from an upstream host."""

    content: bytes
    content_type: str
    cached_at: float


class PriceCache:
    """Single-slot TTL cache for the batch price response.

    Unlike a plain TTL cache, an expired slot is kept so it can be served as
    a degraded fallback when the upstream is down.

    Args:
        ttl_seconds: Age below which the slot counts as fresh.
        clock: Time source returning epoch seconds.
    """

    def __init__(self, ttl_seconds: float = 60, clock: Clock = time.time) -> None:
        self._entry: CachedPrices | None = None
        self._ttl = ttl_seconds
        self._clock = clock

    def get_fresh(self) -> CachedPrices | None:
        """Return the slot if present and younger than the TTL, else None."""
        entry = self._entry
        if entry and (self._clock() - entry.cached_at) < self._ttl:
            return entry
        return None

    def get_any(self) -> CachedPrices | None:
        """Return the slot regardless of age."""
        return self._entry

    def set(self, data: dict[str, Any]) -> CachedPrices:
        """Replace the slot with a new successful response."""
        self._entry = CachedPrices(data=data, cached_at=self._clock())
        return self._entry


class ImageCache:
    """Keyed image cache with fresh and stale age tiers.

    Entries are superseded in place on re-fetch and never evicted.

    Args:
        fresh_ttl: Age below which an entry is served directly.
        stale_ttl: Age below which an entry may still serve as a fallback.
        clock: Time source returning epoch seconds.
    """

    def __init__(
        self,
        fresh_ttl: float = 6 * 3600,
        stale_ttl: float = 24 * 3600,
        clock: Clock = time.time,
    ) -> None:
        self._cache: dict[str, CachedImage] = {}
        self._fresh_ttl = fresh_ttl
        self._stale_ttl = stale_ttl
        self._clock = clock

    def _age(self, entry: CachedImage) -> float:
        return self._clock() - entry.cached_at

    def get_fresh(self, key: str) -> CachedImage | None:
        """Return the entry if it is within the fresh window."""
        entry = self._cache.get(key)
        if entry and self._age(entry) < self._fresh_ttl:
            return entry
        return None

    def get_stale(self, key: str) -> CachedImage | None:
        """Return the entry if it is within the stale window."""
        entry = self._cache.get(key)
        if entry and self._age(entry) < self._stale_ttl:
            return entry
        return None

    def set(self, key: str, content: bytes, content_type: str) -> CachedImage:
        """Store an image, superseding any previous entry for the key."""
        entry = CachedImage(
            content=content, content_type=content_type, cached_at=self._clock()
        )
        self._cache[key] = entry
        return entry

    @property
    def size(self) -> int:
        """Return the number of entries currently in the cache."""
        return len(self._cache)
