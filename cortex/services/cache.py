"""In-process TTL cache.

Entries live only in this worker's memory: horizontally scaled instances each
hold their own copy. Use it for latency only, never for correctness.
"""

import time
from collections.abc import Callable
from dataclasses import dataclass
from threading import Lock
from typing import Any


@dataclass
class CacheEntry:
    value: Any
    inserted_at: float


class TtlCache:
    """Entries expire `ttl_seconds` after insertion. At most `max_entries` are
    held; expired entries are purged on every write and, past the limit, the
    oldest insertion is evicted first."""

    def __init__(
        self,
        ttl_seconds: float,
        max_entries: int = 128,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._lock = Lock()
        self._entries: dict[str, CacheEntry] = {}

    @property
    def enabled(self) -> bool:
        return self.ttl_seconds > 0 and self.max_entries > 0

    def _expired(self, entry: CacheEntry) -> bool:
        return self._clock() - entry.inserted_at >= self.ttl_seconds

    def get(self, key: str) -> Any | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if self._expired(entry):
                del self._entries[key]
                return None
            return entry.value

    def set(self, key: str, value: Any) -> None:
        if not self.enabled:
            return
        with self._lock:
            self._purge_expired()
            self._entries.pop(key, None)
            while self._entries and len(self._entries) >= self.max_entries:
                oldest = min(self._entries, key=lambda k: self._entries[k].inserted_at)
                del self._entries[oldest]
            self._entries[key] = CacheEntry(value=value, inserted_at=self._clock())

    def _purge_expired(self) -> None:
        for k in [k for k, entry in self._entries.items() if self._expired(entry)]:
            del self._entries[k]

    def get_or_set(self, key: str, factory: Callable[[], Any]) -> Any:
        if not self.enabled:
            return factory()
        cached = self.get(key)
        if cached is not None:
            return cached
        value = factory()
        self.set(key, value)
        return value

    def invalidate(self, key: str) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def invalidate_prefix(self, prefix: str) -> int:
        with self._lock:
            keys = [k for k in self._entries if k.startswith(prefix)]
            for k in keys:
                del self._entries[k]
            return len(keys)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def stats(self) -> dict:
        with self._lock:
            return {"size": len(self._entries), "keys": sorted(self._entries)}


def build_cache_key(prefix: str, params: dict[str, str]) -> str:
    parts = [f"{k}={params[k]}" for k in sorted(params)]
    return f"{prefix}_{'_'.join(parts)}"
