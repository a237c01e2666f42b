import httpx

from finproxy.app.providers.base import (
    JSON_ACCEPT,
    ProviderCredentials,
    ProviderRequest,
    fill_param,
)


def polygon(url: httpx.URL, credentials: ProviderCredentials) -> ProviderRequest:
    # Polygon's query-string key parameter is camel-cased
    url = fill_param(url, "apiKey", credentials.polygon_api_key)
    return ProviderRequest(final_url=str(url), headers={"accept": JSON_ACCEPT})
