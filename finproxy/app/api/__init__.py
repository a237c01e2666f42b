"""API endpoints package for the proxy."""

from finproxy.app.api.metrics import router as metrics_router
from finproxy.app.api.proxy import router as proxy_router

__all__ = [
    "metrics_router",
    "proxy_router",
]
