"""Pooled HTTP client for upstream provider calls.

One client is opened per application lifespan and handed to the proxy
service, so every upstream call reuses the same keep-alive pool.
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import httpx

from finproxy.app.core.config import Settings, settings as default_settings


def upstream_timeouts(config: Settings) -> httpx.Timeout:
    # Per-phase transport limits; the proxy also enforces its own overall deadline
    return httpx.Timeout(
        connect=config.httpx_connect_timeout,
        read=config.httpx_read_timeout,
        write=config.httpx_write_timeout,
        pool=config.httpx_pool_timeout,
    )


def upstream_limits(config: Settings) -> httpx.Limits:
    return httpx.Limits(
        max_connections=config.httpx_max_connections,
        max_keepalive_connections=config.httpx_max_keepalive_connections,
        keepalive_expiry=config.httpx_keepalive_expiry,
    )


def create_upstream_client(config: Optional[Settings] = None) -> httpx.AsyncClient:
    """Build the client used for allowlisted upstream hosts.

    Redirects are never followed: a 3xx from an allowlisted host could
    otherwise send the proxy to a host outside the allowlist. The caller
    owns the client and must close it.
    """
    config = config or default_settings
    return httpx.AsyncClient(
        timeout=upstream_timeouts(config),
        limits=upstream_limits(config),
        headers={"user-agent": config.upstream_user_agent},
        follow_redirects=False,
    )


@asynccontextmanager
async def upstream_client(config: Optional[Settings] = None) -> AsyncIterator[httpx.AsyncClient]:
    """Open the upstream client for the application lifespan.

        async with upstream_client(settings) as http_client:
            app.state.proxy_service = ProxyService(http_client, ...)
            yield
    """
    client = create_upstream_client(config)
    try:
        yield client
    finally:
        await client.aclose()
