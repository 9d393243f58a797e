"""HTTP middleware for request ID propagation and correlation.

The middleware:
- Reuses an incoming X-Request-ID / Request-ID header or generates a UUID,
  the same identity the rate limiter records for the request
- Stores request_id in contextvars for log correlation
- Echoes request_id and total duration in response headers

Usage:
    app.middleware("http")(request_id_middleware)
"""

from __future__ import annotations

import time

from fastapi import Request, Response

from sliding_limiter.core.config import settings
from sliding_limiter.core.identity import resolve_request_id
from sliding_limiter.core.logging import clear_request_id, set_request_id


async def request_id_middleware(request: Request, call_next) -> Response:
    """Bind a correlation id to the request for its whole lifecycle.

    Args:
        request: The incoming HTTP request object.
        call_next: The next middleware/route handler in the stack.

    Returns:
        Response: The downstream response with request id and duration
            headers added.
    """

    request_id = resolve_request_id(request.headers)
    set_request_id(request_id)
    start = time.perf_counter()
    try:
        response: Response = await call_next(request)
    finally:
        clear_request_id()

    duration_ms = (time.perf_counter() - start) * 1000
    response.headers[settings.log.request_id_header] = request_id
    response.headers.setdefault("X-Request-Duration-ms", f"{duration_ms:.2f}")
    return response
