# src/sessionmesh/resolution/cache.py
"""
Resolution Cache Implementation.

Maps a content reference to the payload previously fetched for it, so that
resolving the same remote URL twice issues a single network call. The cache
is a pure performance optimization: a miss always falls back to live
resolution, and nothing is ever read from it that was stored under a
different reference.

Key Features:
- Thread-safe operations with an RLock (history entries resolve concurrently)
- LRU eviction bounded by entry count and by total payload bytes
- Optional TTL for entries
- Optional short negative-cache window for failed references
- Cache statistics and hit rate tracking

Cache Key: reference identity, ``("remote", url)`` or ``("inline", canonical json)``
Cache Value: CacheEntry (raw bytes, content type, fetch time)

Usage:
    cache = ResolutionCache(max_entries=1024, max_bytes=64 * 1024 * 1024)

    entry = cache.get(ref)
    if entry is None:
        content = await fetch(ref.url)
        cache.put(ref, content, "application/json")
"""

from __future__ import annotations

import logging
import threading
import time
from collections import OrderedDict
from typing import Any, Dict, Hashable, Optional, Tuple

from ..config.models import CacheConfig
from ..models import CacheEntry

logger = logging.getLogger(__name__)


def reference_key(ref: Any) -> Hashable:
    """Returns the exact identity key for a content reference."""
    key = getattr(ref, "key", None)
    if key is None:
        raise TypeError(f"Not a content reference: {ref!r}")
    return key


class ResolutionCache:
    """Thread-safe LRU cache of resolved reference payloads.

    Attributes:
        max_entries: Maximum number of entries. 0 disables caching.
        max_bytes: Maximum total payload size. Entries larger than this are never cached.
        ttl_seconds: Entry lifetime (0 = no expiry).
        hits: Total cache hits.
        misses: Total cache misses.
        evictions: Entries removed to respect the bounds.
    """

    def __init__(
        self,
        max_entries: int = 1024,
        max_bytes: int = 64 * 1024 * 1024,
        ttl_seconds: float = 0,
        enabled: bool = True,
    ) -> None:
        self.max_entries = max_entries
        self.max_bytes = max_bytes
        self.ttl_seconds = ttl_seconds
        self.enabled = enabled and max_entries > 0 and max_bytes > 0
        self._entries: OrderedDict[Hashable, CacheEntry] = OrderedDict()
        self._failures: Dict[Hashable, Tuple[float, Any]] = {}
        self._total_bytes = 0
        self._lock = threading.RLock()
        self.hits = 0
        self.misses = 0
        self.evictions = 0

    @classmethod
    def from_config(cls, config: CacheConfig) -> "ResolutionCache":
        return cls(
            max_entries=config.max_entries,
            max_bytes=config.max_bytes,
            ttl_seconds=config.ttl_seconds,
            enabled=config.enabled,
        )

    def _is_expired(self, entry: CacheEntry, now: float) -> bool:
        return self.ttl_seconds > 0 and now - entry.fetched_at > self.ttl_seconds

    def _remove(self, key: Hashable) -> Optional[CacheEntry]:
        entry = self._entries.pop(key, None)
        if entry is not None:
            self._total_bytes -= entry.size
        return entry

    def get(self, ref: Any) -> Optional[CacheEntry]:
        """Get the entry for ``ref``, moving it to the most-recently-used end.

        Returns:
            The CacheEntry or None on a miss (including expired entries).
        """
        if not self.enabled:
            self.misses += 1
            return None

        key = reference_key(ref)
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self.misses += 1
                return None
            if self._is_expired(entry, time.time()):
                self._remove(key)
                self.misses += 1
                return None
            self._entries.move_to_end(key)
            self.hits += 1
            return entry

    def put(self, ref: Any, content: bytes, content_type: str = "application/json") -> bool:
        """Store a payload for ``ref``, evicting least recently used entries as needed.

        Returns:
            True if the payload was cached, False if caching is disabled or
            the payload alone exceeds ``max_bytes``.
        """
        if not self.enabled:
            return False
        size = len(content)
        if size > self.max_bytes:
            logger.debug(f"Payload of {size} bytes exceeds cache max_bytes={self.max_bytes}; not cached.")
            return False

        key = reference_key(ref)
        entry = CacheEntry(reference=ref, content=bytes(content), content_type=content_type)
        with self._lock:
            self._remove(key)
            self._failures.pop(key, None)
            while self._entries and (len(self._entries) >= self.max_entries
                                     or self._total_bytes + size > self.max_bytes):
                _, evicted = self._entries.popitem(last=False)
                self._total_bytes -= evicted.size
                self.evictions += 1
            self._entries[key] = entry
            self._total_bytes += size
        return True

    def invalidate(self, ref: Any) -> bool:
        """Drop any cached payload and recorded failure for ``ref``.

        Returns:
            True if a payload was cached for the reference.
        """
        key = reference_key(ref)
        with self._lock:
            self._failures.pop(key, None)
            return self._remove(key) is not None

    def mark_failed(self, ref: Any, failure: Any, window_seconds: float) -> None:
        """Remember a failure for ``window_seconds`` so callers can skip refetching."""
        if window_seconds <= 0:
            return
        with self._lock:
            self._failures[reference_key(ref)] = (time.time() + window_seconds, failure)

    def get_failure(self, ref: Any) -> Optional[Any]:
        """Return a failure recorded for ``ref`` if its window has not elapsed."""
        key = reference_key(ref)
        with self._lock:
            recorded = self._failures.get(key)
            if recorded is None:
                return None
            expires_at, failure = recorded
            if time.time() >= expires_at:
                del self._failures[key]
                return None
            return failure

    def clear(self) -> None:
        """Clear all entries and failures and reset statistics."""
        with self._lock:
            self._entries.clear()
            self._failures.clear()
            self._total_bytes = 0
            self.hits = 0
            self.misses = 0
            self.evictions = 0

    def __contains__(self, ref: Any) -> bool:
        """Check if ``ref`` is cached without updating LRU order."""
        with self._lock:
            return reference_key(ref) in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    @property
    def total_bytes(self) -> int:
        with self._lock:
            return self._total_bytes

    @property
    def stats(self) -> Dict[str, Any]:
        """Get cache statistics.

        Returns:
            Dictionary with size, bytes, bounds, hits, misses, evictions and hit_rate.
        """
        with self._lock:
            total = self.hits + self.misses
            hit_rate = self.hits / total if total > 0 else 0.0
            return {
                "enabled": self.enabled,
                "size": len(self._entries),
                "bytes": self._total_bytes,
                "max_entries": self.max_entries,
                "max_bytes": self.max_bytes,
                "hits": self.hits,
                "misses": self.misses,
                "evictions": self.evictions,
                "hit_rate": round(hit_rate, 4),
            }
