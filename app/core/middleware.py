"""HTTP request filters for correlation and response hardening.

These functions are request filters (see ``app.core.filters``):

- ``request_id_filter`` accepts an incoming X-Request-ID header or generates a
  UUID, stores it in contextvars for log correlation, echoes it back and adds
  the request duration.
- ``security_headers_filter`` adds browser hardening headers to every
  response, including rejections produced further down the chain.

Usage:
    app.middleware("http")(FilterChain([request_id_filter, security_headers_filter]))
"""

from __future__ import annotations

import time
import uuid

from fastapi import Request, Response

from app.core.config import settings
from app.core.filters import CallNext
from app.core.logging import clear_request_id, set_request_id

SECURITY_HEADERS: dict[str, str] = {
    "X-Frame-Options": "DENY",
    "X-XSS-Protection": "1; mode=block",
    "X-Content-Type-Options": "nosniff",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Permissions-Policy": "geolocation=(), microphone=(), camera=()",
}


async def request_id_filter(request: Request, call_next: CallNext) -> Response:
    """Generate or propagate the request correlation id.

    If the client provides the configured request id header, that value is
    used; otherwise a new UUID is generated. The id is cleared from context
    once the downstream chain returns.

    Args:
        request: The incoming HTTP request object.
        call_next: The next filter or route handler.

    Returns:
        Response: The downstream response with request id and duration headers.
    """

    header_name = settings.log.request_id_header
    request_id = request.headers.get(header_name) or str(uuid.uuid4())
    set_request_id(request_id)
    start = time.perf_counter()
    try:
        response: Response = await call_next(request)
    finally:
        clear_request_id()

    duration_ms = (time.perf_counter() - start) * 1000
    response.headers[header_name] = request_id
    response.headers.setdefault("X-Request-Duration-ms", f"{duration_ms:.2f}")
    return response


async def security_headers_filter(request: Request, call_next: CallNext) -> Response:
    """Add the hardening headers unless disabled in settings."""

    response = await call_next(request)
    if settings.app.security_headers_enabled:
        for name, value in SECURITY_HEADERS.items():
            response.headers.setdefault(name, value)
    return response
