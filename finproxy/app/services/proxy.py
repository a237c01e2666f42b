"""Proxy request orchestration.

validate -> rate-limit -> normalize -> cache lookup -> upstream GET ->
cache store. Each step short-circuits with a ProxyError subclass.
"""

import asyncio
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Dict, Optional

import httpx

from finproxy.app.core.cache import CachedResponse, TTLCache
from finproxy.app.core.logging import get_log_context, get_logger
from finproxy.app.core.rate_limit import TokenBucketRateLimiter
from finproxy.app.exceptions import (
    InternalProxyError,
    MissingUrlError,
    ProxyError,
    RateLimitExceededError,
    UpstreamError,
    UpstreamTimeoutError,
)
from finproxy.app.providers.base import ProviderCredentials
from finproxy.app.providers.registry import provider_for_host
from finproxy.app.providers.router import build_provider_request
from finproxy.app.services.url_validator import validate_url

if TYPE_CHECKING:
    from finproxy.app.api.metrics import MetricsCollector

logger = get_logger(__name__)

DEFAULT_ACCEPT = "application/json, text/plain;q=0.9,*/*;q=0.1"
DEFAULT_CONTENT_TYPE = "application/octet-stream"


def is_json_content_type(content_type: str) -> bool:
    """True for application/json and structured-syntax ``+json`` types."""
    media_type = content_type.split(";", 1)[0].strip().lower()
    return media_type == "application/json" or media_type.endswith("+json")


def _redact(url: str) -> str:
    # Query strings carry injected credentials
    return url.split("?", 1)[0]


@dataclass(frozen=True)
class ProxyResult:
    """A successful proxied response."""

    status_code: int
    content_type: str
    body: bytes
    cache_hit: bool
    elapsed_ms: int


class ProxyService:
    """Serves ``GET /proxy`` requests against allowlisted upstream hosts.

    Holds no per-request state of its own: buckets live in the rate limiter
    and responses in the cache. With ``single_flight`` enabled, concurrent
    misses for the same final URL share one upstream call. Every request that
    joined a shared call is still a miss: it reports ``cache_hit=False`` and
    is not counted as served from cache, while the upstream call is counted
    once.

    Args:
        http_client: Shared client for upstream calls.
        rate_limiter: Limiter scoped by upstream hostname.
        cache: Response cache keyed by final upstream URL.
        credentials: Server-held provider keys; read from settings when omitted.
        upstream_timeout: Deadline in seconds for one upstream call.
        cache_ttl: TTL in seconds for stored responses.
        user_agent: User-Agent sent upstream.
        single_flight: Share in-flight upstream calls between identical misses.
        metrics: Optional collector for outcome counters.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        rate_limiter: TokenBucketRateLimiter,
        cache: TTLCache[CachedResponse],
        credentials: Optional[ProviderCredentials] = None,
        upstream_timeout: float = 30.0,
        cache_ttl: float = 10.0,
        user_agent: str = "FinDashboard/1.0",
        single_flight: bool = False,
        metrics: Optional["MetricsCollector"] = None,
    ):
        self.http_client = http_client
        self.rate_limiter = rate_limiter
        self.cache = cache
        self.credentials = credentials or ProviderCredentials.from_settings()
        self.upstream_timeout = upstream_timeout
        self.cache_ttl = cache_ttl
        self.user_agent = user_agent
        self.single_flight = single_flight
        self.metrics = metrics
        self._inflight: Dict[str, "asyncio.Task[CachedResponse]"] = {}

    async def fetch(
        self,
        raw_url: Optional[str],
        caller_key: str = "unknown",
        request_id: Optional[str] = None,
    ) -> ProxyResult:
        """Proxy one GET request.

        Raises:
            ProxyError: One of its subclasses, already carrying the HTTP
                status and error code for the response.
        """
        started = time.monotonic()
        try:
            result = await self._fetch(raw_url, caller_key, request_id, started)
        except ProxyError as e:
            self._record(e.code)
            raise
        except Exception as e:
            logger.exception(
                "Unexpected proxy failure",
                extra=get_log_context(request_id=request_id, client_ip=caller_key),
            )
            self._record(InternalProxyError.code)
            raise InternalProxyError(f"Proxy failed: {e}") from e
        self._record("OK", cache_hit=result.cache_hit)
        return result

    async def _fetch(
        self,
        raw_url: Optional[str],
        caller_key: str,
        request_id: Optional[str],
        started: float,
    ) -> ProxyResult:
        if not raw_url:
            raise MissingUrlError()

        url = validate_url(raw_url)
        host = url.host

        limit = self.rate_limiter.check(caller_key, host)
        if not limit.allowed:
            logger.info(
                "Rate limit exceeded",
                extra=get_log_context(
                    request_id=request_id, upstream_host=host, client_ip=caller_key
                ),
            )
            raise RateLimitExceededError(host, retry_after=limit.retry_after, limit=limit.limit)

        provider_request = build_provider_request(
            url, provider_for_host(host), self.credentials
        )
        cache_key = provider_request.final_url

        cached = self.cache.get(cache_key)
        if cached is not None:
            logger.debug(
                f"Cache hit for {host}",
                extra=get_log_context(request_id=request_id, upstream_host=host, cache="HIT"),
            )
            return self._result(cached, cache_hit=True, started=started)

        if self.single_flight:
            response = await self._shared_upstream_call(cache_key, provider_request.headers, host)
        else:
            response = await self._call_upstream(cache_key, provider_request.headers, host)

        logger.info(
            f"Proxied {_redact(cache_key)}",
            extra=get_log_context(
                request_id=request_id,
                upstream_host=host,
                client_ip=caller_key,
                cache="MISS",
                status_code=response.status_code,
            ),
        )
        return self._result(response, cache_hit=False, started=started)

    async def _shared_upstream_call(
        self, final_url: str, headers: Dict[str, str], host: str
    ) -> CachedResponse:
        task = self._inflight.get(final_url)
        if task is None:
            task = asyncio.ensure_future(self._call_upstream(final_url, headers, host))
            self._inflight[final_url] = task
            task.add_done_callback(lambda t: self._forget_inflight(final_url, t))
        # Shielded so a cancelled caller doesn't cancel the call for the others
        return await asyncio.shield(task)

    def _forget_inflight(self, final_url: str, task: "asyncio.Task[CachedResponse]") -> None:
        if self._inflight.get(final_url) is task:
            del self._inflight[final_url]
        if not task.cancelled():
            # Mark the exception retrieved when every waiter has gone away
            task.exception()

    async def _call_upstream(
        self, final_url: str, headers: Dict[str, str], host: str
    ) -> CachedResponse:
        request_headers = {"accept": DEFAULT_ACCEPT, "user-agent": self.user_agent}
        request_headers.update(headers)

        started = time.monotonic()
        try:
            upstream = await asyncio.wait_for(
                self.http_client.get(final_url, headers=request_headers),
                timeout=self.upstream_timeout,
            )
        except (asyncio.TimeoutError, httpx.TimeoutException):
            logger.warning(
                f"Upstream timeout for {host}",
                extra=get_log_context(upstream_host=host),
            )
            raise UpstreamTimeoutError() from None
        except httpx.HTTPError as e:
            logger.error(
                f"Upstream request to {host} failed: {type(e).__name__}",
                extra=get_log_context(upstream_host=host),
            )
            raise InternalProxyError(f"Proxy failed: {e}") from e
        finally:
            if self.metrics is not None:
                self.metrics.record_upstream_call(host, time.monotonic() - started)

        if not upstream.is_success:
            details = upstream.text or "Unknown error"
            logger.error(
                f"Upstream error for {host}: {upstream.status_code}",
                extra=get_log_context(upstream_host=host, status_code=upstream.status_code),
            )
            raise UpstreamError(upstream.status_code, details=details)

        response = CachedResponse(
            status_code=upstream.status_code,
            content_type=upstream.headers.get("content-type", DEFAULT_CONTENT_TYPE),
            body=upstream.content,
        )

        if is_json_content_type(response.content_type):
            self.cache.set(final_url, response, self.cache_ttl)
            logger.debug(f"Cached response for {host}")

        return response

    @staticmethod
    def _result(response: CachedResponse, cache_hit: bool, started: float) -> ProxyResult:
        return ProxyResult(
            status_code=response.status_code,
            content_type=response.content_type,
            body=response.body,
            cache_hit=cache_hit,
            elapsed_ms=int((time.monotonic() - started) * 1000),
        )

    def _record(self, code: str, cache_hit: bool = False) -> None:
        if self.metrics is not None:
            self.metrics.record_outcome(code, cache_hit=cache_hit)
