"""FastAPI dependencies resolving the services built in the app lifespan."""

from fastapi import Request

from finproxy.app.services.proxy import ProxyService


def get_proxy_service(request: Request) -> ProxyService:
    service = getattr(request.app.state, "proxy_service", None)
    if service is None:
        raise RuntimeError("Proxy service not initialized. Ensure lifespan context is active.")
    return service


def get_client_ip(request: Request) -> str:
    """Caller key for rate limiting.

    First X-Forwarded-For hop, then X-Real-IP, then the socket peer, then
    the ``unknown`` sentinel.
    """
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first_hop = forwarded.split(",")[0].strip()
        if first_hop:
            return first_hop

    real_ip = request.headers.get("x-real-ip", "").strip()
    if real_ip:
        return real_ip

    if request.client and request.client.host:
        return request.client.host
    return "unknown"
