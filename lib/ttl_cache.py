"""Bounded, time-expiring cache for rendered context strings."""
from __future__ import annotations

import time
from typing import Callable, Dict, Optional, Tuple

from lib.config import CONTEXT_CACHE_MAX_ENTRIES, CONTEXT_CACHE_TTL_SECONDS


class TTLCache:
    """
    Key/value store where every entry expires a fixed time after insertion.

    Keys are source-qualified ("call:<id>", "company:<id>"). When an insert
    would exceed ``max_entries`` the oldest-inserted entry is evicted; reads do
    not refresh an entry's position or its expiry. Expired entries are removed
    lazily when read.

    Any object exposing ``get(key)`` and ``set(key, value)`` can stand in for
    this class (e.g. a shared cache in multi-instance deployments).
    """

    def __init__(
        self,
        ttl_seconds: float = CONTEXT_CACHE_TTL_SECONDS,
        max_entries: int = CONTEXT_CACHE_MAX_ENTRIES,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        # dicts iterate in insertion order, which is the eviction order
        self._entries: Dict[str, Tuple[str, float]] = {}

    def get(self, key: str) -> Optional[str]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if self._clock() > expires_at:
            self._entries.pop(key, None)
            return None
        return value

    def set(self, key: str, value: str) -> None:
        expires_at = self._clock() + self.ttl_seconds
        if key not in self._entries and len(self._entries) >= self.max_entries:
            oldest = next(iter(self._entries))
            del self._entries[oldest]
        # built as a tuple first so readers never see a half-written entry
        self._entries[key] = (value, expires_at)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries


# Process-wide default used when no cache is injected.
context_cache = TTLCache()
