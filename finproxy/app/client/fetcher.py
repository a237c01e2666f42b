"""Client for fetching upstream JSON through the proxy.

This is the only interface dashboard code depends on: give it the upstream
URL, get back parsed JSON or a ProxyFetchError carrying the HTTP status.
"""

import dataclasses
import json
from typing import Any, Optional

import httpx

from finproxy.app.client.retry import ProxyFetchError, RetryPolicy, call_with_retry
from finproxy.app.core.logging import get_logger

logger = get_logger(__name__)


class ProxyClient:
    """Async client for ``GET /proxy``.

    Usage:
        async with ProxyClient("http://localhost:8000") as client:
            quote = await client.fetch_json(
                "https://finnhub.io/api/v1/quote?symbol=AAPL"
            )

    Args:
        base_url: Where the proxy is served.
        http_client: Optional client to reuse; its base URL is ignored in
            favor of ``base_url`` and it is not closed by this object.
        proxy_path: Path of the proxy endpoint.
        retry_policy: Backoff policy; retries 5xx, 408 and transport errors.
        timeout: Default per-attempt timeout in seconds.
    """

    def __init__(
        self,
        base_url: str = "http://localhost:8000",
        http_client: Optional[httpx.AsyncClient] = None,
        proxy_path: str = "/proxy",
        retry_policy: Optional[RetryPolicy] = None,
        timeout: float = 30.0,
    ):
        self.base_url = base_url.rstrip("/")
        self.proxy_path = proxy_path
        self.retry_policy = retry_policy or RetryPolicy()
        self.timeout = timeout
        self._http_client = http_client
        self._owns_client = http_client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self.timeout)
        return self._http_client

    async def aclose(self) -> None:
        if self._owns_client and self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

    async def __aenter__(self) -> "ProxyClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def fetch_json(
        self,
        url: str,
        *,
        retries: Optional[int] = None,
        timeout: Optional[float] = None,
    ) -> Any:
        """Fetch ``url`` through the proxy and return the parsed body.

        Args:
            url: Absolute upstream URL (encoded into the ``url`` parameter).
            retries: Override for the policy's ``max_retries``.
            timeout: Override for the per-attempt timeout in seconds.

        Raises:
            ProxyFetchError: On any non-2xx answer or transport failure that
                survived the retry policy.
        """
        policy = self.retry_policy
        if retries is not None:
            policy = dataclasses.replace(policy, max_retries=retries)

        return await call_with_retry(
            lambda: self._fetch_once(url, timeout if timeout is not None else self.timeout),
            policy,
            name="fetch_json",
        )

    async def _fetch_once(self, url: str, timeout: float) -> Any:
        client = self._get_client()
        try:
            response = await client.get(
                f"{self.base_url}{self.proxy_path}",
                params={"url": url},
                timeout=timeout,
            )
        except httpx.TimeoutException:
            raise ProxyFetchError(408, "Request timeout", code="TIMEOUT") from None
        except httpx.TransportError as e:
            raise ProxyFetchError(503, f"Proxy unreachable: {e}", code="NETWORK_ERROR") from e

        if not response.is_success:
            raise _error_from_response(response)

        return _parse_body(response)


def _error_from_response(response: httpx.Response) -> ProxyFetchError:
    message = f"Proxy error: {response.status_code}"
    code = details = None
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        message = body.get("error") or message
        code = body.get("code")
        details = body.get("details")
    return ProxyFetchError(response.status_code, message, code=code, details=details)


def _parse_body(response: httpx.Response) -> Any:
    content_type = response.headers.get("content-type", "")
    if "application/json" in content_type:
        try:
            return response.json()
        except ValueError:
            raise ProxyFetchError(
                response.status_code, "Invalid JSON from proxy", code="INVALID_RESPONSE"
            ) from None

    # Some providers label JSON as text/plain
    text = response.text
    try:
        return json.loads(text)
    except ValueError:
        return {"text": text}


async def fetch_via_proxy(
    url: str,
    *,
    base_url: str = "http://localhost:8000",
    retries: Optional[int] = None,
    timeout: Optional[float] = None,
    http_client: Optional[httpx.AsyncClient] = None,
) -> Any:
    """One-shot helper around :meth:`ProxyClient.fetch_json`."""
    async with ProxyClient(base_url=base_url, http_client=http_client) as client:
        return await client.fetch_json(url, retries=retries, timeout=timeout)
