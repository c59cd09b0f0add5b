"""
Core caching functionality for the TurtleCoin API proxy.

This module provides the in-memory response cache that sits between HTTP
clients and the upstream daemons. Entries are keyed by upstream node, port
and logical operation, and expire after a fixed time-to-live.
"""
import asyncio
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

import structlog

logger = structlog.get_logger()


@dataclass(frozen=True)
class CacheEntry:
    """A cached value together with the moment it stops being valid."""
    value: Any
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return self.expires_at <= now


class ResponseCache:
    """
    Simple in-memory TTL cache for upstream daemon responses.

    There is no size bound and no LRU policy: an entry lives until its
    TTL elapses. Expired entries are treated as absent on read and are
    physically removed by ``sweep``, which ``run_sweeper`` calls every
    half TTL.
    """

    def __init__(self, default_ttl: int = 30, clock: Callable[[], float] = time.monotonic):
        """
        Initialize the cache.

        Args:
            default_ttl: Default time-to-live in seconds for cached items
            clock: Monotonic time source, replaceable in tests
        """
        if default_ttl <= 0:
            raise ValueError("default_ttl must be positive")
        self._cache: Dict[str, CacheEntry] = {}
        self._default_ttl = default_ttl
        self._clock = clock
        self._lock = threading.RLock()
        self._hits = 0
        self._misses = 0

    @property
    def default_ttl(self) -> int:
        return self._default_ttl

    @property
    def check_period(self) -> int:
        """Seconds between two sweeps."""
        return max(1, round(self._default_ttl / 2))

    def get_entry(self, key: str) -> Optional[CacheEntry]:
        """
        Get the live entry stored under ``key``.

        Args:
            key: Cache key to retrieve

        Returns:
            The entry, or None if missing or expired
        """
        with self._lock:
            entry = self._cache.get(key)
            if entry is None:
                self._misses += 1
                return None

            if entry.is_expired(self._clock()):
                del self._cache[key]
                self._misses += 1
                return None

            self._hits += 1
            return entry

    def get(self, key: str) -> Optional[Any]:
        """Get a value from the cache, or None if not found or expired."""
        entry = self.get_entry(key)
        if entry is None:
            return None
        return entry.value

    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        """
        Set a value in the cache, replacing any existing entry.

        Args:
            key: Cache key
            value: Value to cache
            ttl: Time-to-live in seconds, or None to use default

        Returns:
            True if successful
        """
        ttl = self._default_ttl if ttl is None else ttl
        with self._lock:
            self._cache[key] = CacheEntry(value=value, expires_at=self._clock() + ttl)
        return True

    def expire(self, key: str) -> bool:
        """
        Remove a key from the cache.

        Returns:
            True if an entry was removed, False if key not found
        """
        with self._lock:
            return self._cache.pop(key, None) is not None

    def sweep(self) -> int:
        """Evict every entry whose TTL has elapsed and return how many were removed."""
        with self._lock:
            now = self._clock()
            expired = [key for key, entry in self._cache.items() if entry.is_expired(now)]
            for key in expired:
                del self._cache[key]
        if expired:
            logger.debug("cache_swept", evicted=len(expired))
        return len(expired)

    async def run_sweeper(self) -> None:
        """Sweep the cache every ``check_period`` seconds until cancelled."""
        logger.info("cache_sweeper_started", check_period=self.check_period)
        try:
            while True:
                await asyncio.sleep(self.check_period)
                self.sweep()
        finally:
            logger.info("cache_sweeper_stopped")

    def flush(self) -> bool:
        """Clear all keys and counters."""
        with self._lock:
            self._cache.clear()
            self._hits = 0
            self._misses = 0
        return True

    def __len__(self) -> int:
        with self._lock:
            return len(self._cache)

    def get_stats(self) -> Dict[str, Any]:
        """
        Get cache statistics.

        Returns:
            Dictionary with cache statistics
        """
        with self._lock:
            total_requests = self._hits + self._misses
            hit_ratio = self._hits / total_requests if total_requests > 0 else 0

            return {
                'size': len(self._cache),
                'default_ttl': self._default_ttl,
                'hits': self._hits,
                'misses': self._misses,
                'hit_ratio': hit_ratio,
                'items': list(self._cache.keys())
            }


def cache_key(host: Any, port: Any, operation_id: str) -> str:
    """
    Build the cache key for one upstream operation.

    The key depends only on the upstream identity and the operation, never
    on the payload being stored.

    Args:
        host: Upstream host name, or a sentinel such as ``network``
        port: Upstream port
        operation_id: Operation name, or the serialized body of an RPC POST

    Returns:
        A string to use as a cache key
    """
    return ":".join([str(host), str(port), operation_id])
