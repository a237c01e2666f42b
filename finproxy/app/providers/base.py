from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional

import httpx

JSON_ACCEPT = "application/json"


class Provider(str, Enum):
    """Upstream data providers the proxy knows how to normalize for."""

    ALPHA_VANTAGE = "alpha_vantage"
    FINNHUB = "finnhub"
    POLYGON = "polygon"
    TWELVE_DATA = "twelve_data"
    PASSTHROUGH = "passthrough"


@dataclass(frozen=True)
class ProviderRequest:
    """The concrete upstream call: final URL plus extra request headers.

    ``final_url`` is also the response cache key, so it includes any
    injected credentials.
    """

    final_url: str
    headers: Dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class ProviderCredentials:
    """Server-held API keys, read once from settings."""

    alpha_vantage_key: str = ""
    finnhub_token: str = ""
    polygon_api_key: str = ""
    twelve_data_api_key: str = ""

    @classmethod
    def from_settings(cls, settings: Optional[object] = None) -> "ProviderCredentials":
        if settings is None:
            from finproxy.app.core.config import settings as app_settings

            settings = app_settings
        return cls(
            alpha_vantage_key=getattr(settings, "alpha_vantage_key", ""),
            finnhub_token=getattr(settings, "finnhub_token", ""),
            polygon_api_key=getattr(settings, "polygon_api_key", ""),
            twelve_data_api_key=getattr(settings, "twelve_data_api_key", ""),
        )


def fill_param(url: httpx.URL, name: str, value: str) -> httpx.URL:
    """Set a query parameter only if the caller left it missing or empty.

    An empty ``value`` is never written, so a missing server key leaves the
    URL untouched and the upstream rejects the call on its own terms.
    """
    if not value or url.params.get(name):
        return url
    return url.copy_set_param(name, value)
