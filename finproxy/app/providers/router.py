"""Provider dispatch for upstream request normalization."""

from typing import Callable, Dict, Optional

import httpx

from finproxy.app.providers.alpha_vantage import alpha_vantage
from finproxy.app.providers.base import Provider, ProviderCredentials, ProviderRequest
from finproxy.app.providers.finnhub import finnhub
from finproxy.app.providers.polygon import polygon
from finproxy.app.providers.registry import provider_for_host
from finproxy.app.providers.twelve_data import twelve_data

ProviderTransform = Callable[[httpx.URL, ProviderCredentials], ProviderRequest]


def passthrough(url: httpx.URL, credentials: ProviderCredentials) -> ProviderRequest:
    return ProviderRequest(final_url=str(url), headers={})


TRANSFORMS: Dict[Provider, ProviderTransform] = {
    Provider.ALPHA_VANTAGE: alpha_vantage,
    Provider.FINNHUB: finnhub,
    Provider.POLYGON: polygon,
    Provider.TWELVE_DATA: twelve_data,
    Provider.PASSTHROUGH: passthrough,
}

_missing = set(Provider) - set(TRANSFORMS)
if _missing:
    raise RuntimeError(f"No transform registered for providers: {sorted(_missing)}")


def build_provider_request(
    url: httpx.URL,
    provider: Optional[Provider] = None,
    credentials: Optional[ProviderCredentials] = None,
) -> ProviderRequest:
    """Map a validated upstream URL to the exact request the provider expects.

    Only fills gaps: parameters the caller supplied are never overwritten.

    Args:
        url: URL that already passed allowlist validation.
        provider: Override for the provider looked up from the host registry.
        credentials: Server-held keys; read from settings when omitted.

    Returns:
        ProviderRequest with the final URL (the cache key) and extra headers.
    """
    if provider is None:
        provider = provider_for_host(url.host)
    if credentials is None:
        credentials = ProviderCredentials.from_settings()
    return TRANSFORMS[provider](url, credentials)
