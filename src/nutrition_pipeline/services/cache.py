"""Bounded TTL cache for price estimates."""

import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Protocol

from nutrition_pipeline.domain.pricing import PriceEstimate


class Cache(Protocol):
    """Cache interface for price estimates."""

    def get(self, key: str) -> PriceEstimate | None:
        """Return a cached estimate if present and not expired."""

    def put(self, key: str, estimate: PriceEstimate) -> None:
        """Store an estimate."""


@dataclass
class _CacheEntry:
    value: PriceEstimate
    stored_at: float


@dataclass
class PriceCache(Cache):
    """In-memory price cache with lazy expiry and a soft size cap.

    Entries expire a fixed time after insertion; reads never refresh them.
    Once the cache grows past ``max_entries`` every expired entry is swept.
    """

    ttl_seconds: float = 300.0
    max_entries: int = 500
    clock: Callable[[], float] = time.monotonic
    _entries: dict[str, _CacheEntry] = field(
        default_factory=dict, init=False, repr=False
    )

    def get(self, key: str) -> PriceEstimate | None:
        """Return a cached estimate if it hasn't expired."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._is_expired(entry, self.clock()):
            self._entries.pop(key, None)
            return None
        return entry.value

    def put(self, key: str, estimate: PriceEstimate) -> None:
        """Store an estimate, sweeping expired entries past the size cap."""
        self._entries[key] = _CacheEntry(value=estimate, stored_at=self.clock())
        if len(self._entries) > self.max_entries:
            self.sweep()

    def sweep(self) -> int:
        """Drop every expired entry and return how many were removed."""
        now = self.clock()
        expired = [
            key
            for key, entry in self._entries.items()
            if self._is_expired(entry, now)
        ]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def clear(self) -> None:
        """Remove all entries."""
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def _is_expired(self, entry: _CacheEntry, now: float) -> bool:
        return now - entry.stored_at >= self.ttl_seconds


def price_cache_key(name: str, category: str) -> str:
    """Build the cache key for a product."""
    return f"product:{name.strip().lower()}:{category.strip().lower()}"
