"""Bounded in-process cache for query pattern analysis.

Entries are keyed by the normalized query text and expire after a fixed TTL.
Capacity is enforced with least-recently-used eviction. Only the
configuration-independent part of an analysis is stored here, so a change to
the context threshold or strict mode is reflected on the very next call.
"""

import hashlib
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Optional

from src.utils.logging import get_logger
from src.utils.observability import metrics

logger = get_logger(__name__)


@dataclass
class CacheEntry:
    value: Any
    expires_at: float
    created_at: float
    hits: int = 0


@dataclass
class CacheStats:
    hits: int = 0
    misses: int = 0
    evictions: int = 0
    expirations: int = 0
    size: int = 0

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total > 0 else 0.0


class ClassificationCache:
    """Thread-safe LRU cache with per-entry TTL."""

    def __init__(
        self,
        max_entries: int = 1024,
        ttl_seconds: float = 300,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_entries <= 0:
            raise ValueError("max_entries must be positive")
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")

        self.max_entries = max_entries
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._lock = threading.Lock()
        self._stats = CacheStats()

    @staticmethod
    def make_key(normalized_query: str) -> str:
        """Generate cache key from an already normalized query."""
        digest = hashlib.md5(normalized_query.encode()).hexdigest()
        return f"classification:{digest}"

    def get(self, normalized_query: str) -> Optional[Any]:
        key = self.make_key(normalized_query)
        now = self._clock()

        with self._lock:
            entry = self._entries.get(key)
            if entry is not None and now > entry.expires_at:
                del self._entries[key]
                self._stats.expirations += 1
                entry = None

            if entry is None:
                self._stats.misses += 1
                metrics.increment_cache_miss()
                return None

            self._entries.move_to_end(key)
            entry.hits += 1
            self._stats.hits += 1

        metrics.increment_cache_hit()
        return entry.value

    def set(self, normalized_query: str, value: Any) -> None:
        key = self.make_key(normalized_query)
        now = self._clock()

        with self._lock:
            self._entries[key] = CacheEntry(
                value=value,
                expires_at=now + self.ttl_seconds,
                created_at=now,
            )
            self._entries.move_to_end(key)

            while len(self._entries) > self.max_entries:
                evicted_key, _ = self._entries.popitem(last=False)
                self._stats.evictions += 1
                logger.debug("Cache entry evicted", extra_fields={"cache_key": evicted_key})

    def invalidate(self, normalized_query: str) -> bool:
        """Drop one entry; returns whether it was present."""
        with self._lock:
            return self._entries.pop(self.make_key(normalized_query), None) is not None

    def clear(self) -> int:
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
        logger.info("Classification cache cleared", extra_fields={"count": count})
        return count

    def purge_expired(self) -> int:
        """Remove every expired entry now instead of lazily on read."""
        now = self._clock()
        with self._lock:
            expired = [k for k, e in self._entries.items() if now > e.expires_at]
            for key in expired:
                del self._entries[key]
            self._stats.expirations += len(expired)
        return len(expired)

    def stats(self) -> CacheStats:
        with self._lock:
            return CacheStats(
                hits=self._stats.hits,
                misses=self._stats.misses,
                evictions=self._stats.evictions,
                expirations=self._stats.expirations,
                size=len(self._entries),
            )

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


def build_classification_cache(app_settings) -> Optional[ClassificationCache]:
    """Create the cache described by settings, or None when disabled."""
    if not app_settings.enable_classification_cache:
        return None
    return ClassificationCache(
        max_entries=app_settings.classification_cache_max_entries,
        ttl_seconds=app_settings.classification_cache_ttl,
    )
