"""Allowlist guard for proxied upstream URLs."""

from typing import AbstractSet, Optional
from urllib.parse import urlsplit

import httpx

from finproxy.app.exceptions import BlockedHostError, InvalidUrlError, SuspiciousPathError
from finproxy.app.providers.registry import ALLOWLIST

ALLOWED_SCHEMES = ("http", "https")
SUSPICIOUS_PATH_PATTERNS = ("..", "//")


def validate_url(raw_url: str, allowlist: Optional[AbstractSet[str]] = None) -> httpx.URL:
    """Validate a caller-supplied upstream URL before any network work.

    Checks run in order: parse, protocol, host membership, path patterns.
    The path check looks at the raw path, before any dot-segment
    normalization could hide a traversal attempt.

    Args:
        raw_url: Absolute URL taken from the ``url`` query parameter.
        allowlist: Exact hostnames allowed; the registry allowlist by default.

    Returns:
        The parsed URL.

    Raises:
        InvalidUrlError: Malformed URL or protocol other than http/https.
        BlockedHostError: Host is not an exact allowlist member.
        SuspiciousPathError: Path contains ``..`` or ``//``.
    """
    hosts = ALLOWLIST if allowlist is None else allowlist

    try:
        parts = urlsplit(raw_url)
    except ValueError:
        raise InvalidUrlError("Invalid URL format") from None

    if parts.scheme.lower() not in ALLOWED_SCHEMES:
        raise InvalidUrlError("Only HTTP and HTTPS protocols are allowed")

    hostname = parts.hostname or ""
    if hostname not in hosts:
        raise BlockedHostError(hostname)

    if any(pattern in parts.path for pattern in SUSPICIOUS_PATH_PATTERNS):
        raise SuspiciousPathError()

    try:
        return httpx.URL(raw_url)
    except httpx.InvalidURL:
        raise InvalidUrlError("Invalid URL format") from None
