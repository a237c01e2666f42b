"""Retry with exponential backoff for calls through the proxy.

Only idempotent GETs go through here. Server-side failures (5xx), timeouts
(408) and transport errors are retried; every other 4xx, 429 included, is
raised immediately so upstream throttling is respected.
"""

import asyncio
import functools
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Tuple, Type, TypeVar

import httpx

from finproxy.app.core.logging import get_logger

logger = get_logger(__name__)

F = TypeVar("F", bound=Callable[..., Any])
T = TypeVar("T")

RETRYABLE_STATUS_CODES = frozenset({408})


class ProxyFetchError(Exception):
    """A failed fetch through the proxy.

    Attributes:
        status_code: HTTP status returned by the proxy (408 for client-side
            timeouts, 503 when the proxy could not be reached)
        message: Human readable error, from the proxy's ``error`` field
        code: Proxy error code such as ``RATE_LIMIT_EXCEEDED``, when known
        details: Upstream detail text, when the proxy supplied one
    """

    def __init__(
        self,
        status_code: int,
        message: str,
        code: Optional[str] = None,
        details: Optional[str] = None,
    ):
        self.status_code = status_code
        self.message = message
        self.code = code
        self.details = details
        super().__init__(f"{status_code}: {message}")


@dataclass
class RetryPolicy:
    """Configuration for retry behavior with exponential backoff.

    Attributes:
        max_retries: Maximum number of retry attempts (default: 3)
        base_delay: Initial delay between retries in seconds (default: 0.5)
        max_delay: Maximum delay between retries in seconds (default: 10.0)
        exponential_base: Base for exponential calculation (default: 2.0)
        retryable_exceptions: Transport exceptions that trigger a retry

    Example:
        >>> policy = RetryPolicy(max_retries=5, base_delay=1.0)
        >>> delay = policy.calculate_delay(attempt=2)  # Returns 4.0
    """

    max_retries: int = 3
    base_delay: float = 0.5
    max_delay: float = 10.0
    exponential_base: float = 2.0
    retryable_exceptions: Tuple[Type[Exception], ...] = (
        httpx.NetworkError,
        httpx.TimeoutException,
    )

    def calculate_delay(self, attempt: int) -> float:
        """Delay before retry ``attempt`` (0-indexed), capped at max_delay."""
        delay = self.base_delay * (self.exponential_base**attempt)
        return min(delay, self.max_delay)

    def is_retryable(self, exception: Exception) -> bool:
        """Check if an exception should trigger a retry.

        ProxyFetchError is retried for 5xx and 408 only.
        """
        if isinstance(exception, ProxyFetchError):
            return (
                exception.status_code >= 500
                or exception.status_code in RETRYABLE_STATUS_CODES
            )
        if isinstance(exception, httpx.HTTPStatusError):
            return exception.response.status_code >= 500

        return isinstance(exception, self.retryable_exceptions)


async def call_with_retry(
    func: Callable[[], Awaitable[T]],
    policy: Optional[RetryPolicy] = None,
    name: Optional[str] = None,
) -> T:
    """Await ``func()`` until it succeeds, fails permanently or retries run out."""
    retry_policy = policy or RetryPolicy()
    label = name or getattr(func, "__name__", "call")

    attempt = 0
    while True:
        try:
            return await func()
        except Exception as e:
            if not retry_policy.is_retryable(e):
                logger.debug(f"Non-retryable exception in {label}: {type(e).__name__}: {e}")
                raise

            if attempt >= retry_policy.max_retries:
                logger.warning(
                    f"Max retries ({retry_policy.max_retries}) exceeded for {label}: "
                    f"{type(e).__name__}: {e}"
                )
                raise

            delay = retry_policy.calculate_delay(attempt)
            logger.warning(
                f"Retry {attempt + 1}/{retry_policy.max_retries} for {label} "
                f"after {type(e).__name__}: {e}. Waiting {delay:.2f}s..."
            )
            await asyncio.sleep(delay)
            attempt += 1


def with_retry(policy: Optional[RetryPolicy] = None) -> Callable[[F], F]:
    """Decorator form of :func:`call_with_retry` for async functions.

    Example:
        >>> @with_retry(policy=RetryPolicy(max_retries=2))
        ... async def load_quote(client):
        ...     return await client.fetch_json(QUOTE_URL, retries=0)
    """

    def decorator(func: F) -> F:
        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            return await call_with_retry(
                lambda: func(*args, **kwargs), policy, name=func.__name__
            )

        return wrapper  # type: ignore

    return decorator
