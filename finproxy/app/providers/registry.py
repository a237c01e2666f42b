"""Static registry of allowlisted upstream hosts.

Each host carries its provider and its rate limit in one record, so the
allowlist and the per-host limits cannot drift apart.
"""

from dataclasses import dataclass
from typing import Dict, FrozenSet, Optional

from finproxy.app.core.rate_limit import RateLimitConfig
from finproxy.app.providers.base import Provider


@dataclass(frozen=True)
class UpstreamHost:
    """One allowlisted upstream host."""

    hostname: str
    provider: Provider
    rate_limit: RateLimitConfig


UPSTREAM_HOSTS: Dict[str, UpstreamHost] = {
    host.hostname: host
    for host in (
        # 5 requests per 12 seconds
        UpstreamHost(
            "www.alphavantage.co",
            Provider.ALPHA_VANTAGE,
            RateLimitConfig(capacity=5, refill_per_second=1 / 12),
        ),
        # 60 request burst, one per second sustained
        UpstreamHost(
            "finnhub.io",
            Provider.FINNHUB,
            RateLimitConfig(capacity=60, refill_per_second=1.0),
        ),
        # 5 requests per 12 seconds
        UpstreamHost(
            "api.polygon.io",
            Provider.POLYGON,
            RateLimitConfig(capacity=5, refill_per_second=1 / 12),
        ),
        # 8 requests per minute
        UpstreamHost(
            "api.twelvedata.com",
            Provider.TWELVE_DATA,
            RateLimitConfig(capacity=8, refill_per_second=1 / 60),
        ),
    )
}

ALLOWLIST: FrozenSet[str] = frozenset(UPSTREAM_HOSTS)


def get_upstream_host(hostname: str) -> Optional[UpstreamHost]:
    return UPSTREAM_HOSTS.get(hostname)


def provider_for_host(hostname: str) -> Provider:
    host = UPSTREAM_HOSTS.get(hostname)
    return host.provider if host is not None else Provider.PASSTHROUGH


def rate_limit_configs() -> Dict[str, RateLimitConfig]:
    """Per-host limits keyed by hostname, as the limiter expects them."""
    return {hostname: host.rate_limit for hostname, host in UPSTREAM_HOSTS.items()}
