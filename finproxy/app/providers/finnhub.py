import httpx

from finproxy.app.providers.base import (
    JSON_ACCEPT,
    ProviderCredentials,
    ProviderRequest,
    fill_param,
)


def finnhub(url: httpx.URL, credentials: ProviderCredentials) -> ProviderRequest:
    """Finnhub takes its API token as the ``token`` query parameter."""
    url = fill_param(url, "token", credentials.finnhub_token)
    return ProviderRequest(final_url=str(url), headers={"accept": JSON_ACCEPT})
