"""Upstream provider package for the finance data proxy.

This package provides:
- The closed Provider enum and per-provider URL normalization
- The static registry of allowlisted upstream hosts and their rate limits
"""

from finproxy.app.providers.base import (
    Provider,
    ProviderCredentials,
    ProviderRequest,
    fill_param,
)
from finproxy.app.providers.registry import (
    ALLOWLIST,
    UPSTREAM_HOSTS,
    UpstreamHost,
    get_upstream_host,
    provider_for_host,
    rate_limit_configs,
)
from finproxy.app.providers.router import TRANSFORMS, build_provider_request

__all__ = [
    # Base
    "Provider",
    "ProviderCredentials",
    "ProviderRequest",
    "fill_param",
    # Registry
    "ALLOWLIST",
    "UPSTREAM_HOSTS",
    "UpstreamHost",
    "get_upstream_host",
    "provider_for_host",
    "rate_limit_configs",
    # Router
    "TRANSFORMS",
    "build_provider_request",
]
