"""
In-memory resolution cache with time-to-live.

The cache is an explicit object owned by the caller and handed to the
orchestrator, so two batches only share entries when they share the handle.
Only confident outcomes (codec, redirect, browser) are stored.
"""

from __future__ import annotations

from dataclasses import dataclass
import time
from typing import Callable


CACHEABLE_STRATEGIES = frozenset({"codec", "redirect", "browser"})


@dataclass
class CacheEntry:
    url: str
    strategy: str
    stored_at: float


class ResolutionCache:
    """Maps raw token values to previously resolved URLs.

    Attributes:
        ttl_seconds: Entry lifetime; None keeps entries until invalidated
    """

    def __init__(self, ttl_seconds: float | None = 86400.0, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, raw: str) -> CacheEntry | None:
        """Return a live entry for a token, dropping it if it has expired."""
        entry = self._entries.get(raw)
        if entry is None:
            return None
        if self._is_expired(entry):
            del self._entries[raw]
            return None
        return entry

    def put(self, raw: str, url: str, strategy: str) -> None:
        if strategy not in CACHEABLE_STRATEGIES:
            return
        self._entries[raw] = CacheEntry(url=url, strategy=strategy, stored_at=self._clock())

    def invalidate(self, raw: str | None = None) -> None:
        """Drop one token's entry, or every entry when raw is None."""
        if raw is None:
            self._entries.clear()
            return
        self._entries.pop(raw, None)

    def prune(self) -> int:
        """Remove expired entries and return how many were dropped."""
        expired = [raw for raw, entry in self._entries.items() if self._is_expired(entry)]
        for raw in expired:
            del self._entries[raw]
        return len(expired)

    def _is_expired(self, entry: CacheEntry) -> bool:
        if self.ttl_seconds is None:
            return False
        return (self._clock() - entry.stored_at) > self.ttl_seconds
