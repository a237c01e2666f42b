"""Correlation IDs for proxied requests.

A dashboard may send its own X-Request-ID so browser-side and proxy-side
logs line up; otherwise one is minted here. The ID is echoed on every
response, errors included.
"""

import uuid
from typing import Optional

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

REQUEST_ID_HEADER = "X-Request-ID"

# Longer inbound IDs are replaced rather than echoed into logs
MAX_REQUEST_ID_LENGTH = 128


def accept_request_id(value: Optional[str]) -> Optional[str]:
    """Return the inbound ID if it is safe to reuse, else None."""
    if not value:
        return None
    value = value.strip()
    if not value or len(value) > MAX_REQUEST_ID_LENGTH or not value.isprintable():
        return None
    return value


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Attach ``request.state.request_id`` and echo it in the response."""

    def __init__(self, app, header_name: str = REQUEST_ID_HEADER):
        super().__init__(app)
        self.header_name = header_name

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = accept_request_id(request.headers.get(self.header_name))
        request.state.request_id = request_id or str(uuid.uuid4())

        response = await call_next(request)
        response.headers[self.header_name] = request.state.request_id
        return response


def get_request_id(request: Request) -> str:
    return getattr(request.state, "request_id", "unknown")
