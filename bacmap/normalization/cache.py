"""TTL + LRU cache for normalization results."""

from __future__ import annotations

import threading
import time
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from bacmap.models import NormalizationResult

CacheKey = tuple[str, str, str]


def make_key(label: str, equipment_type: str | None, vendor: str | None) -> CacheKey:
    return (label, equipment_type or "unknown", vendor or "unknown")


@dataclass(slots=True)
class _Entry:
    value: NormalizationResult
    stored_at: float


class NormalizationCache:
    """Thread-safe cache keyed by (label, equipment type, vendor).

    Entries expire ``ttl_seconds`` after they were stored. When the cache is
    full the least recently used entry is evicted.
    """

    def __init__(
        self,
        max_size: int = 10000,
        ttl_seconds: float = 30 * 60,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self.max_size = max_size
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: OrderedDict[CacheKey, _Entry] = OrderedDict()
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._evictions = 0
        self._expirations = 0

    def get(self, key: CacheKey) -> NormalizationResult | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return None

            if self._clock() - entry.stored_at > self.ttl_seconds:
                del self._entries[key]
                self._expirations += 1
                self._misses += 1
                return None

            self._entries.move_to_end(key)
            self._hits += 1
            return entry.value.model_copy(deep=True)

    def set(self, key: CacheKey, value: NormalizationResult) -> None:
        with self._lock:
            if key in self._entries:
                self._entries.move_to_end(key)
            self._entries[key] = _Entry(value=value.model_copy(deep=True), stored_at=self._clock())

            while len(self._entries) > self.max_size:
                self._entries.popitem(last=False)
                self._evictions += 1

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._hits = 0
            self._misses = 0
            self._evictions = 0
            self._expirations = 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._entries

    def stats(self) -> dict[str, Any]:
        with self._lock:
            lookups = self._hits + self._misses
            return {
                "size": len(self._entries),
                "max_size": self.max_size,
                "ttl_seconds": self.ttl_seconds,
                "hits": self._hits,
                "misses": self._misses,
                "hit_rate": self._hits / lookups if lookups else 0.0,
                "evictions": self._evictions,
                "expirations": self._expirations,
            }
