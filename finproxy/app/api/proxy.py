"""Same-origin proxy endpoint used by the dashboard widgets."""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, Response

from finproxy.app.api.deps import get_client_ip, get_proxy_service
from finproxy.app.middleware.request_id import get_request_id
from finproxy.app.services.proxy import ProxyService

router = APIRouter(tags=["proxy"])

# Browsers may reuse a response briefly and serve it stale while refetching
SUCCESS_CACHE_CONTROL = "public, max-age=5, stale-while-revalidate=25"


@router.head("/proxy")
async def proxy_head() -> Response:
    """Liveness check."""
    return Response(status_code=200)


@router.get("/proxy")
async def proxy_get(
    request: Request,
    url: Optional[str] = Query(default=None, description="Percent-encoded absolute upstream URL"),
    service: ProxyService = Depends(get_proxy_service),
) -> Response:
    """Fetch an allowlisted upstream URL and relay its body.

    Failures are raised as ProxyError subclasses and rendered by the
    application's exception handler.
    """
    result = await service.fetch(
        url,
        caller_key=get_client_ip(request),
        request_id=get_request_id(request),
    )
    return Response(
        content=result.body,
        status_code=result.status_code,
        headers={
            "content-type": result.content_type,
            "cache-control": SUCCESS_CACHE_CONTROL,
            "x-proxy-cache": "HIT" if result.cache_hit else "MISS",
            "x-response-time": f"{result.elapsed_ms}ms",
        },
    )
