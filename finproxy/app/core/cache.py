"""In-memory TTL cache for upstream responses.

The cache is content-agnostic: callers decide what is worth storing. Entries
are evicted oldest-first by creation time when the cache is full, which is
enough for short-lived entries where capacity pressure is rare.
"""

import time
from dataclasses import dataclass
from typing import Any, Dict, Generic, Optional, TypeVar

from finproxy.app.core.expiring_map import EVICT_CAPACITY, Clock, ExpiringMap
from finproxy.app.core.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class CachedResponse:
    """Everything needed to replay a successful upstream response."""

    status_code: int
    content_type: str
    body: bytes


class TTLCache(Generic[T]):
    """TTL cache with bounded size and hit/miss accounting.

    Example:
        >>> cache = TTLCache(default_ttl=10.0, max_size=1000)
        >>> cache.set("https://finnhub.io/api/v1/quote?symbol=AAPL", response)
        >>> cache.get("https://finnhub.io/api/v1/quote?symbol=AAPL")

    Args:
        default_ttl: TTL in seconds used when ``set`` gets none.
        max_size: Maximum number of resident entries.
        cleanup_interval: Seconds between background sweeps of expired entries.
        clock: Monotonic time source in seconds.
    """

    def __init__(
        self,
        default_ttl: float = 10.0,
        max_size: int = 1000,
        cleanup_interval: float = 30.0,
        clock: Clock = time.monotonic,
    ) -> None:
        self.default_ttl = default_ttl
        self.max_size = max_size
        self.cleanup_interval = cleanup_interval
        self._store: ExpiringMap[str, T] = ExpiringMap(
            max_size=max_size,
            sweep_interval=cleanup_interval,
            clock=clock,
            on_evict=self._on_evict,
            name="response_cache",
        )
        self._hits = 0
        self._misses = 0

    def __len__(self) -> int:
        return len(self._store)

    def get(self, key: str) -> Optional[T]:
        """Retrieve a value from the cache.

        Expired entries are deleted on the spot and count as misses.

        Returns:
            The cached value, or None if not found or expired.
        """
        value = self._store.get(key)
        if value is None:
            self._misses += 1
            return None
        self._hits += 1
        return value

    def set(self, key: str, value: T, ttl_seconds: Optional[float] = None) -> None:
        """Store a value in the cache.

        Args:
            key: The cache key.
            value: The value to store.
            ttl_seconds: Time-to-live in seconds, ``default_ttl`` when omitted.
        """
        ttl = self.default_ttl if ttl_seconds is None else ttl_seconds
        self._store.set(key, value, ttl=ttl)

    def has(self, key: str) -> bool:
        """Check if a key exists and is not expired. Does not touch stats."""
        return self._store.contains(key)

    def delete(self, key: str) -> bool:
        """Remove a value from the cache.

        Returns:
            True if an entry was removed.
        """
        return self._store.delete(key)

    def clear(self) -> None:
        """Clear all entries and reset hit/miss counters."""
        self._store.clear()
        self._hits = 0
        self._misses = 0

    def cleanup_expired(self) -> int:
        """Remove all expired entries.

        Returns:
            Number of entries removed.
        """
        return self._store.sweep()

    def get_stats(self) -> Dict[str, Any]:
        total = self._hits + self._misses
        return {
            "size": len(self._store),
            "max_size": self.max_size,
            "hits": self._hits,
            "misses": self._misses,
            "total_requests": total,
            "hit_rate": round(self._hits / total, 4) if total > 0 else 0.0,
        }

    async def start(self) -> None:
        await self._store.start()

    async def stop(self) -> None:
        await self._store.stop()

    async def destroy(self) -> None:
        """Stop the background sweep and drop every entry."""
        await self._store.stop()
        self.clear()

    def _on_evict(self, key: str, value: T, reason: str) -> None:
        if reason == EVICT_CAPACITY:
            logger.debug("Response cache full, evicted oldest entry")
