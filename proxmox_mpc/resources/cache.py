"""
Resource cache with TTL expiry and LRU eviction.

Keys are ``"<domain>:<serialized filter>"`` so one domain can be invalidated
with a ``"<domain>:*"`` pattern. An entry is served only while its age is
strictly below its TTL.
"""

import time
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass
from threading import Lock
from typing import Any


@dataclass
class CacheEntry:
    """A single cache entry with metadata."""

    key: str
    value: Any
    created_at: float
    ttl_seconds: float
    access_count: int = 0


class ResourceCache:
    """
    Thread-safe TTL cache.

    Usage:
        cache = ResourceCache(max_entries=256, default_ttl=300)
        key = ResourceCache.make_key("infrastructure", "{}")
        cache.set(key, resources)
        resources = cache.get(key)
        cache.invalidate_by_pattern("infrastructure:*")
    """

    def __init__(
        self,
        max_entries: int = 256,
        default_ttl: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """
        Args:
            max_entries: Maximum number of entries (LRU eviction)
            default_ttl: Default TTL in seconds
            clock: Monotonic time source, injectable for tests
        """
        self.max_entries = max_entries
        self.default_ttl = default_ttl
        self._clock = clock

        self._cache: OrderedDict[str, CacheEntry] = OrderedDict()
        self._lock = Lock()

        self._hits = 0
        self._misses = 0
        self._evictions = 0
        self._expirations = 0
        self._invalidations = 0

    @staticmethod
    def make_key(domain: str, filter_key: str) -> str:
        return f"{domain}:{filter_key}"

    def get(self, key: str) -> Any | None:
        """Return the cached value, or None if absent or expired."""
        with self._lock:
            entry = self._cache.get(key)

            if entry is None:
                self._misses += 1
                return None

            if self._is_expired(entry):
                self._misses += 1
                self._expirations += 1
                del self._cache[key]
                return None

            entry.access_count += 1
            self._cache.move_to_end(key)
            self._hits += 1
            return entry.value

    def set(self, key: str, value: Any, ttl: float | None = None) -> None:
        ttl = ttl if ttl is not None else self.default_ttl

        with self._lock:
            if key not in self._cache and len(self._cache) >= self.max_entries:
                self._evict_lru()

            self._cache[key] = CacheEntry(
                key=key, value=value, created_at=self._clock(), ttl_seconds=ttl
            )
            self._cache.move_to_end(key)

    def invalidate_by_pattern(self, pattern: str) -> int:
        """
        Invalidate all keys matching a pattern with ``*`` wildcards.

        Returns:
            Number of keys invalidated
        """
        with self._lock:
            keys_to_delete = [key for key in self._cache if _matches_pattern(key, pattern)]
            for key in keys_to_delete:
                del self._cache[key]
            self._invalidations += len(keys_to_delete)
            return len(keys_to_delete)

    def clear(self) -> None:
        with self._lock:
            self._invalidations += len(self._cache)
            self._cache.clear()

    def get_stats(self) -> dict[str, Any]:
        with self._lock:
            total_requests = self._hits + self._misses
            return {
                "size": len(self._cache),
                "max_entries": self.max_entries,
                "hits": self._hits,
                "misses": self._misses,
                "hit_rate": self._hits / total_requests if total_requests > 0 else 0,
                "evictions": self._evictions,
                "expirations": self._expirations,
                "invalidations": self._invalidations,
            }

    def __len__(self) -> int:
        with self._lock:
            return len(self._cache)

    def _is_expired(self, entry: CacheEntry) -> bool:
        return self._clock() - entry.created_at >= entry.ttl_seconds

    def _evict_lru(self) -> None:
        if self._cache:
            self._cache.popitem(last=False)
            self._evictions += 1


def _matches_pattern(key: str, pattern: str) -> bool:
    if "*" not in pattern:
        return key == pattern

    parts = pattern.split("*")
    if not key.startswith(parts[0]):
        return False
    if parts[-1] and not key.endswith(parts[-1]):
        return False

    pos = len(parts[0])
    for part in parts[1:-1]:
        if part:
            idx = key.find(part, pos)
            if idx == -1:
                return False
            pos = idx + len(part)
    return True
