import httpx

from finproxy.app.providers.base import (
    JSON_ACCEPT,
    ProviderCredentials,
    ProviderRequest,
    fill_param,
)


def twelve_data(url: httpx.URL, credentials: ProviderCredentials) -> ProviderRequest:
    url = fill_param(url, "apikey", credentials.twelve_data_api_key)
    return ProviderRequest(final_url=str(url), headers={"accept": JSON_ACCEPT})
