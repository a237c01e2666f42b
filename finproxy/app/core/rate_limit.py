"""Per-(scope, key) token bucket rate limiting.

Each bucket refills continuously at ``refill_per_second`` up to ``capacity``
and every admitted request consumes one whole token. Scopes are upstream
hostnames with their own limits; keys are caller IPs.
"""

import math
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional

from finproxy.app.core.expiring_map import EVICT_CAPACITY, Clock, ExpiringMap
from finproxy.app.core.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class RateLimitConfig:
    """Bucket size and refill rate for one scope."""

    capacity: float
    refill_per_second: float

    def __post_init__(self) -> None:
        if self.capacity < 1:
            raise ValueError("capacity must be at least 1")
        if self.refill_per_second <= 0:
            raise ValueError("refill_per_second must be positive")


# 60 requests, one token back per second
DEFAULT_RATE_LIMIT = RateLimitConfig(capacity=60, refill_per_second=1.0)


@dataclass
class Bucket:
    """Token bucket state for one (scope, key) pair."""

    tokens: float
    capacity: float
    refill_per_second: float
    updated_at: float
    last_access: float = field(default=0.0)

    def refill(self, now: float) -> None:
        elapsed = max(0.0, now - self.updated_at)
        self.tokens = min(self.capacity, self.tokens + elapsed * self.refill_per_second)
        self.updated_at = now
        self.last_access = now

    def try_consume(self) -> bool:
        if self.tokens < 1:
            return False
        self.tokens -= 1
        return True

    def seconds_until_token(self) -> float:
        if self.tokens >= 1:
            return 0.0
        return (1 - self.tokens) / self.refill_per_second


@dataclass
class RateLimitResult:
    """Result of a rate limit check."""

    allowed: bool
    limit: int
    remaining: int
    retry_after: Optional[int] = None


class TokenBucketRateLimiter:
    """In-memory token bucket limiter.

    Buckets live in an ExpiringMap whose deadline is the bucket's last access
    plus ``cleanup_interval``: idle buckets are swept in the background and a
    bucket that has been idle past the cutoff is recreated full on its next
    use. The table never holds more than ``max_buckets`` buckets; when it is
    full, the bucket used longest ago is evicted.

    Checks never raise; running out of tokens is a normal ``allowed=False``.

    Args:
        default_config: Limits for scopes missing from ``scope_configs``.
        scope_configs: Per-scope limits, keyed by scope (upstream hostname).
        max_buckets: Maximum number of buckets kept in memory.
        cleanup_interval: Idle cutoff and background sweep interval in seconds.
        clock: Monotonic time source in seconds.
    """

    def __init__(
        self,
        default_config: RateLimitConfig = DEFAULT_RATE_LIMIT,
        scope_configs: Optional[Mapping[str, RateLimitConfig]] = None,
        max_buckets: int = 1000,
        cleanup_interval: float = 300.0,
        clock: Clock = time.monotonic,
    ):
        self.default_config = default_config
        self.scope_configs: Dict[str, RateLimitConfig] = dict(scope_configs or {})
        self.max_buckets = max_buckets
        self.cleanup_interval = cleanup_interval
        self._buckets: ExpiringMap[str, Bucket] = ExpiringMap(
            max_size=max_buckets,
            sweep_interval=cleanup_interval,
            clock=clock,
            on_evict=self._on_evict,
            name="rate_limiter",
        )

    def config_for(self, scope: str) -> RateLimitConfig:
        return self.scope_configs.get(scope, self.default_config)

    def check(self, key: str, scope: str) -> RateLimitResult:
        """Refill the (scope, key) bucket and try to consume one token."""
        bucket_id = f"{scope}:{key}"
        now = self._buckets.now()

        bucket = self._buckets.get(bucket_id)
        if bucket is None:
            config = self.config_for(scope)
            bucket = Bucket(
                tokens=float(config.capacity),
                capacity=float(config.capacity),
                refill_per_second=config.refill_per_second,
                updated_at=now,
                last_access=now,
            )
            self._buckets.set(bucket_id, bucket, ttl=self.cleanup_interval)
        else:
            bucket.refill(now)
            self._buckets.touch(bucket_id, self.cleanup_interval)

        if bucket.try_consume():
            return RateLimitResult(
                allowed=True,
                limit=int(bucket.capacity),
                remaining=int(bucket.tokens),
            )

        return RateLimitResult(
            allowed=False,
            limit=int(bucket.capacity),
            remaining=0,
            retry_after=max(1, math.ceil(bucket.seconds_until_token())),
        )

    def check_limit(self, key: str, scope: str) -> bool:
        """Return True if the request is admitted, False if throttled."""
        return self.check(key, scope).allowed

    def cleanup(self) -> int:
        """Drop buckets idle for longer than ``cleanup_interval``."""
        return self._buckets.sweep()

    def get_stats(self) -> Dict[str, Any]:
        return {
            "total_buckets": len(self._buckets),
            "max_buckets": self.max_buckets,
            "cleanup_interval_seconds": self.cleanup_interval,
            "default": {
                "capacity": self.default_config.capacity,
                "refill_per_second": self.default_config.refill_per_second,
            },
            "scopes": {
                scope: {
                    "capacity": config.capacity,
                    "refill_per_second": config.refill_per_second,
                }
                for scope, config in self.scope_configs.items()
            },
        }

    async def start(self) -> None:
        await self._buckets.start()

    async def stop(self) -> None:
        await self._buckets.stop()

    async def destroy(self) -> None:
        """Stop the background sweep and drop every bucket."""
        await self._buckets.stop()
        self._buckets.clear()

    def _on_evict(self, bucket_id: str, bucket: Bucket, reason: str) -> None:
        if reason == EVICT_CAPACITY:
            logger.warning(
                "Rate limit table full, evicted least recently used bucket",
                extra={"max_buckets": self.max_buckets},
            )
