import httpx

from finproxy.app.providers.base import (
    JSON_ACCEPT,
    ProviderCredentials,
    ProviderRequest,
    fill_param,
)

DEFAULT_FUNCTION = "GLOBAL_QUOTE"


def alpha_vantage(url: httpx.URL, credentials: ProviderCredentials) -> ProviderRequest:
    """Alpha Vantage needs a ``function`` and takes its key as ``apikey``."""
    url = fill_param(url, "function", DEFAULT_FUNCTION)
    url = fill_param(url, "apikey", credentials.alpha_vantage_key)
    return ProviderRequest(final_url=str(url), headers={"accept": JSON_ACCEPT})
