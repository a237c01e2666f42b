from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from finproxy.app.api.metrics import MetricsCollector, router as metrics_router
from finproxy.app.api.proxy import router as proxy_router
from finproxy.app.core.cache import CachedResponse, TTLCache
from finproxy.app.core.config import Settings, settings as default_settings
from finproxy.app.core.http_client import upstream_client
from finproxy.app.core.logging import get_logger, setup_logging
from finproxy.app.core.rate_limit import RateLimitConfig, TokenBucketRateLimiter
from finproxy.app.exceptions import InternalProxyError, ProxyError
from finproxy.app.middleware.request_id import RequestIdMiddleware, get_request_id
from finproxy.app.providers.base import ProviderCredentials
from finproxy.app.providers.registry import rate_limit_configs
from finproxy.app.services.proxy import ProxyService


def create_app(app_settings: Optional[Settings] = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        app_settings: Settings to build the services from; the process-wide
            settings when omitted.

    Returns:
        Configured FastAPI application instance
    """
    config = app_settings or default_settings

    setup_logging()
    logger = get_logger(__name__)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Build the limiter, cache and proxy service for this process.

        Both background sweeps start here and are stopped, with their tables
        cleared, on shutdown.
        """
        async with upstream_client(config) as http_client:
            rate_limiter = TokenBucketRateLimiter(
                default_config=RateLimitConfig(
                    capacity=config.rate_limit_default_capacity,
                    refill_per_second=config.rate_limit_default_refill_per_second,
                ),
                scope_configs=rate_limit_configs(),
                max_buckets=config.rate_limit_max_buckets,
                cleanup_interval=config.rate_limit_cleanup_interval,
            )
            cache: TTLCache[CachedResponse] = TTLCache(
                default_ttl=config.cache_default_ttl,
                max_size=config.cache_max_size,
                cleanup_interval=config.cache_cleanup_interval,
            )
            metrics = MetricsCollector()

            app.state.rate_limiter = rate_limiter
            app.state.cache = cache
            app.state.metrics = metrics
            app.state.proxy_service = ProxyService(
                http_client=http_client,
                rate_limiter=rate_limiter,
                cache=cache,
                credentials=ProviderCredentials.from_settings(config),
                upstream_timeout=config.upstream_timeout,
                cache_ttl=config.cache_default_ttl,
                user_agent=config.upstream_user_agent,
                single_flight=config.proxy_single_flight,
                metrics=metrics,
            )

            await rate_limiter.start()
            await cache.start()

            logger.info(
                "Application startup complete",
                extra={
                    "allowlisted_hosts": sorted(rate_limiter.scope_configs),
                    "single_flight": config.proxy_single_flight,
                    "debug_mode": config.debug,
                },
            )

            try:
                yield
            finally:
                await rate_limiter.destroy()
                await cache.destroy()
                app.state.proxy_service = None
                logger.info("Application shutdown complete")

    app = FastAPI(
        title="FinProxy",
        description="Allowlisted, rate limited and cached proxy for finance data APIs",
        version="1.0.0",
        lifespan=lifespan,
    )

    # Add middleware (order matters: last added = first executed)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_credentials=False,
        allow_methods=["GET", "HEAD", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "X-Proxy-Cache", "X-Response-Time", "Retry-After"],
        max_age=600,
    )
    app.add_middleware(GZipMiddleware, minimum_size=1000)
    app.add_middleware(RequestIdMiddleware)

    app.include_router(proxy_router)
    app.include_router(metrics_router)

    @app.get("/health")
    async def health(request: Request) -> dict[str, Any]:
        """Health check with cache and rate limiter status."""
        state = request.app.state
        service = getattr(state, "proxy_service", None)
        if service is None:
            return {"status": "starting", "components": {}}

        return {
            "status": "ok",
            "components": {
                "cache": {
                    "status": "ok",
                    "size": len(state.cache),
                    "max_size": state.cache.max_size,
                },
                "rate_limiter": {
                    "status": "ok",
                    "buckets": state.rate_limiter.get_stats()["total_buckets"],
                },
            },
        }

    @app.exception_handler(ProxyError)
    async def proxy_error_handler(request: Request, exc: ProxyError) -> JSONResponse:
        """Render a ProxyError as the non-cacheable JSON error body."""
        return JSONResponse(
            status_code=exc.status_code,
            content=exc.to_response(),
            headers=exc.response_headers(),
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Global exception handler for unhandled exceptions.

        Never returns a traceback; debug mode adds the exception message.
        """
        request_id = get_request_id(request)
        logger.exception(
            f"Unhandled exception [request_id={request_id}]",
            extra={
                "request_id": request_id,
                "exception_type": type(exc).__name__,
            },
        )

        error = InternalProxyError(
            "Internal server error",
            details=f"{type(exc).__name__}: {exc}" if config.debug else None,
        )
        return JSONResponse(
            status_code=error.status_code,
            content=error.to_response(),
            headers=error.response_headers(),
        )

    return app


# Create the application instance
app = create_app()
