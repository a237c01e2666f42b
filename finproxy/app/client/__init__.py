"""Client side of the proxy, for dashboard code fetching widget data."""

from finproxy.app.client.fetcher import ProxyClient, fetch_via_proxy
from finproxy.app.client.retry import (
    ProxyFetchError,
    RetryPolicy,
    call_with_retry,
    with_retry,
)

__all__ = [
    "ProxyClient",
    "fetch_via_proxy",
    "ProxyFetchError",
    "RetryPolicy",
    "call_with_retry",
    "with_retry",
]
