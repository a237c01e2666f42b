"""Custom exceptions for the proxy application."""

from typing import Any, Dict, Optional


class ProxyError(Exception):
    """Base class for proxy failures with HTTP status code and error code.

    Every failure of a proxied request is terminal for that request and is
    rendered as ``{"error", "code", "details"?}`` with ``no-store`` caching.
    """

    status_code: int = 500
    code: str = "INTERNAL_ERROR"

    def __init__(self, message: str = "Proxy error", details: Optional[str] = None):
        self.message = message
        self.details = details
        super().__init__(message)

    def to_response(self) -> Dict[str, Any]:
        """Convert to the JSON error body returned to the caller."""
        body: Dict[str, Any] = {"error": self.message, "code": self.code}
        if self.details:
            body["details"] = self.details
        return body

    def response_headers(self) -> Dict[str, str]:
        return {"cache-control": "no-store"}


class MissingUrlError(ProxyError):
    """Raised when the ``url`` query parameter is absent or empty.

    Maps to HTTP 400 Bad Request.
    """

    status_code = 400
    code = "MISSING_URL"

    def __init__(self, message: str = "Missing url parameter"):
        super().__init__(message)


class InvalidUrlError(ProxyError):
    """Raised for malformed URLs or a protocol other than http/https.

    Maps to HTTP 400 Bad Request.
    """

    status_code = 400
    code = "INVALID_URL"

    def __init__(self, message: str = "Invalid URL format"):
        super().__init__(message)


class BlockedHostError(InvalidUrlError):
    """Raised when the target host is not on the allowlist."""

    def __init__(self, host: str):
        self.host = host
        super().__init__(f"Host {host} is not in the allowlist")


class SuspiciousPathError(InvalidUrlError):
    """Raised when the target path contains ``..`` or ``//``."""

    def __init__(self, message: str = "Invalid path detected"):
        super().__init__(message)


class RateLimitExceededError(ProxyError):
    """Raised when the caller has no tokens left for the target host.

    Maps to HTTP 429 Too Many Requests, with a Retry-After hint.
    """

    status_code = 429
    code = "RATE_LIMIT_EXCEEDED"

    def __init__(self, host: str, retry_after: Optional[int] = None, limit: Optional[int] = None):
        self.host = host
        self.retry_after = retry_after
        self.limit = limit
        super().__init__("Rate limit exceeded", details=f"Too many requests to {host}")

    def response_headers(self) -> Dict[str, str]:
        headers = super().response_headers()
        if self.retry_after is not None:
            headers["retry-after"] = str(self.retry_after)
        if self.limit is not None:
            headers["x-ratelimit-limit"] = str(self.limit)
            headers["x-ratelimit-remaining"] = "0"
        return headers


class UpstreamError(ProxyError):
    """Raised when the upstream answers with a non-2xx status.

    The upstream status is passed through as the response status.
    """

    code = "UPSTREAM_ERROR"

    def __init__(self, upstream_status: int, details: Optional[str] = None):
        self.upstream_status = upstream_status
        self.status_code = upstream_status
        super().__init__(f"Upstream error: {upstream_status}", details=details)


class UpstreamTimeoutError(ProxyError):
    """Raised when the upstream call exceeds its deadline.

    Maps to HTTP 408 Request Timeout.
    """

    status_code = 408
    code = "TIMEOUT"

    def __init__(self, message: str = "Request timeout"):
        super().__init__(message)


class InternalProxyError(ProxyError):
    """Raised for transport failures and anything unexpected.

    Maps to HTTP 500 Internal Server Error.
    """

    status_code = 500
    code = "INTERNAL_ERROR"
