"""Core utilities for the proxy application."""

from finproxy.app.core.cache import CachedResponse, TTLCache
from finproxy.app.core.config import settings
from finproxy.app.core.expiring_map import ExpiringMap
from finproxy.app.core.logging import get_logger, setup_logging
from finproxy.app.core.rate_limit import (
    DEFAULT_RATE_LIMIT,
    Bucket,
    RateLimitConfig,
    RateLimitResult,
    TokenBucketRateLimiter,
)

__all__ = [
    "CachedResponse",
    "TTLCache",
    "settings",
    "ExpiringMap",
    "get_logger",
    "setup_logging",
    "DEFAULT_RATE_LIMIT",
    "Bucket",
    "RateLimitConfig",
    "RateLimitResult",
    "TokenBucketRateLimiter",
]
