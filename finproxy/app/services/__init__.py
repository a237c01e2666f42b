"""Services package for the proxy.

This package provides:
- URL validation against the upstream allowlist
- The proxy request orchestrator
"""

from finproxy.app.services.proxy import ProxyResult, ProxyService, is_json_content_type
from finproxy.app.services.url_validator import validate_url

__all__ = [
    "ProxyResult",
    "ProxyService",
    "is_json_content_type",
    "validate_url",
]
