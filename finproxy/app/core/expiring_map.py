"""Bounded key/value map with per-entry deadlines.

Both the rate limiter's bucket table and the response cache are built on
this map: entries expire lazily on read, a background task sweeps expired
entries on a fixed interval, and inserting a new key into a full map first
drops expired entries and then the entry created or touched longest ago.

All mutating methods are synchronous. Under a single asyncio event loop each
call runs to completion without yielding, so no lock is needed.
"""

import asyncio
import time
from dataclasses import dataclass
from typing import Callable, Dict, Generic, Optional, TypeVar

from finproxy.app.core.logging import get_logger

logger = get_logger(__name__)

K = TypeVar("K")
V = TypeVar("V")

Clock = Callable[[], float]

EVICT_EXPIRED = "expired"
EVICT_CAPACITY = "capacity"


@dataclass
class _Entry(Generic[V]):
    """Internal entry with creation time and deadline (clock seconds)."""

    value: V
    created_at: float
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return now > self.expires_at


class ExpiringMap(Generic[K, V]):
    """Generic expiring map shared by the limiter and the cache.

    Usage:
        buckets = ExpiringMap(max_size=1000, sweep_interval=300.0)
        await buckets.start()
        buckets.set("finnhub.io:1.2.3.4", bucket, ttl=300.0)
        ...
        await buckets.stop()

    Args:
        max_size: Maximum number of resident entries.
        sweep_interval: Seconds between background sweeps.
        clock: Monotonic time source in seconds (injectable for tests).
        on_evict: Called as ``on_evict(key, value, reason)`` whenever an entry
            is dropped because it expired or the map was full. Explicit
            ``delete``/``clear`` calls do not trigger it.
        name: Label used in log messages.
    """

    def __init__(
        self,
        max_size: int,
        sweep_interval: float,
        clock: Clock = time.monotonic,
        on_evict: Optional[Callable[[K, V, str], None]] = None,
        name: str = "expiring_map",
    ):
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self.max_size = max_size
        self.sweep_interval = sweep_interval
        self.name = name
        self._clock = clock
        self._on_evict = on_evict
        # Insertion order == creation or last touch; set() and touch() re-insert
        self._data: Dict[K, _Entry[V]] = {}
        self._task: Optional[asyncio.Task] = None
        self._stop_event: Optional[asyncio.Event] = None

    def __len__(self) -> int:
        return len(self._data)

    def __contains__(self, key: object) -> bool:
        return self.contains(key)  # type: ignore[arg-type]

    def now(self) -> float:
        return self._clock()

    def get(self, key: K) -> Optional[V]:
        """Return the live value for key, dropping it if it has expired."""
        entry = self._data.get(key)
        if entry is None:
            return None
        if entry.is_expired(self._clock()):
            self._evict(key, EVICT_EXPIRED)
            return None
        return entry.value

    def contains(self, key: K) -> bool:
        return self.get(key) is not None

    def set(self, key: K, value: V, ttl: float) -> None:
        """Store value under key with a deadline ``ttl`` seconds from now.

        Replacing an existing key resets its creation time.
        """
        now = self._clock()
        if key in self._data:
            del self._data[key]
        elif len(self._data) >= self.max_size:
            self._make_room()
        self._data[key] = _Entry(value=value, created_at=now, expires_at=now + ttl)

    def touch(self, key: K, ttl: float) -> bool:
        """Move the deadline of an entry to ``ttl`` seconds from now.

        A touched entry also becomes the newest for capacity eviction, so a
        key in active use is never the one dropped when the map is full.
        """
        entry = self._data.pop(key, None)
        if entry is None:
            return False
        entry.expires_at = self._clock() + ttl
        self._data[key] = entry
        return True

    def delete(self, key: K) -> bool:
        return self._data.pop(key, None) is not None

    def clear(self) -> None:
        self._data.clear()

    def oldest_key(self) -> Optional[K]:
        return next(iter(self._data), None)

    def sweep(self) -> int:
        """Remove all expired entries.

        Returns:
            Number of entries removed.
        """
        now = self._clock()
        expired = [key for key, entry in self._data.items() if entry.is_expired(now)]
        for key in expired:
            self._evict(key, EVICT_EXPIRED)
        return len(expired)

    def _make_room(self) -> None:
        self.sweep()
        while len(self._data) >= self.max_size:
            oldest = self.oldest_key()
            if oldest is None:
                break
            self._evict(oldest, EVICT_CAPACITY)

    def _evict(self, key: K, reason: str) -> None:
        entry = self._data.pop(key, None)
        if entry is not None and self._on_evict is not None:
            self._on_evict(key, entry.value, reason)

    @property
    def running(self) -> bool:
        return self._task is not None

    async def start(self) -> None:
        """Start the background sweep task."""
        if self._task is not None:
            logger.debug(f"{self.name} sweeper already running")
            return

        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._run_sweeps())
        logger.debug(f"Started {self.name} sweeper (interval: {self.sweep_interval}s)")

    async def stop(self) -> None:
        """Stop the background sweep task."""
        if self._task is None:
            return

        if self._stop_event is not None:
            self._stop_event.set()

        try:
            await asyncio.wait_for(self._task, timeout=5.0)
        except asyncio.TimeoutError:
            logger.warning(f"{self.name} sweeper did not stop gracefully, cancelling")
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        finally:
            self._task = None
            self._stop_event = None
            logger.debug(f"Stopped {self.name} sweeper")

    async def _run_sweeps(self) -> None:
        """Background task that sweeps expired entries periodically."""
        stop_event = self._stop_event
        assert stop_event is not None
        while not stop_event.is_set():
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=self.sweep_interval)
            except asyncio.TimeoutError:
                # Normal case: interval elapsed
                pass
            else:
                break

            removed = self.sweep()
            if removed:
                logger.debug(f"{self.name} sweep removed {removed} entries")
