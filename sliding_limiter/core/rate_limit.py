"""Rate limiting dependencies for FastAPI routes.

This module wires the sliding window evaluator into the HTTP layer.

Design goals:
- Minimal coupling: routes depend on a dependency function only.
- The verdict is computed by the evaluator; this module only decides what
  "continue" and "reject" mean for an HTTP request.
- Store outages are surfaced as ``StoreUnavailableError`` and let through by
  default (fail-open). Pass ``fail_open=False`` or set
  ``RATE_LIMIT_FAIL_OPEN=false`` to reject instead.

Usage:
    @router.get("/search", dependencies=[Depends(api_ip_rate_limit(20000, 2))])
    async def search(): ...
"""

from __future__ import annotations

import asyncio
import contextvars
import inspect
import logging
import math
from typing import Any, Awaitable, Callable

from fastapi import HTTPException, Request, status

from sliding_limiter.adapters.rate_limit.base import RateLimitResult, WindowPolicy
from sliding_limiter.core.config import settings
from sliding_limiter.core.errors import StoreUnavailableError
from sliding_limiter.core.identity import resolve_request_id
from sliding_limiter.core.keys import (
    SCOPE_DISCRIMINATORS,
    Discriminator,
    EventContext,
    build_key,
    global_discriminator,
    route_discriminator,
    route_ip_discriminator,
)
from sliding_limiter.core.logging import get_request_id, hash_identifier
from sliding_limiter.core.store_client import get_counter_store
from sliding_limiter.services.sliding_window import SlidingWindowEvaluator

logger = logging.getLogger(__name__)

RejectAction = Callable[[Request, RateLimitResult], Any]
RateLimitDependency = Callable[[Request], Awaitable[None]]


def _too_many_requests(result: RateLimitResult, include_headers: bool) -> HTTPException:
    """Build the default 429 response for a denied request."""

    headers: dict[str, str] = {}
    if include_headers:
        retry_after_s = math.ceil((result.retry_after_ms or 0) / 1000)
        headers["Retry-After"] = str(retry_after_s)
        headers["X-RateLimit-Limit"] = str(result.limit)
        headers["X-RateLimit-Remaining"] = str(result.remaining)

    return HTTPException(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        detail="Rate limit exceeded. Try again later.",
        headers=headers or None,
    )


async def evaluate_with_timeout(
    key: str,
    event_id: str,
    policy: WindowPolicy,
    timeout_seconds: float,
) -> RateLimitResult:
    """Run a blocking evaluation off the event loop, bounded by a timeout.

    The store script may still complete server-side after the timeout; only
    the wait is abandoned.

    Raises:
        StoreUnavailableError: On store failure or when the timeout elapses.
    """

    evaluator = SlidingWindowEvaluator(get_counter_store())
    loop = asyncio.get_running_loop()
    # Executor threads don't inherit contextvars; carry the request id over
    context = contextvars.copy_context()
    try:
        return await asyncio.wait_for(
            loop.run_in_executor(None, context.run, evaluator.evaluate, key, event_id, policy),
            timeout=timeout_seconds,
        )
    except asyncio.TimeoutError as exc:
        raise StoreUnavailableError(
            code="store_timeout",
            message="Rate limit store did not answer in time",
            details={
                "backend": evaluator.store.backend_name,
                "timeout_seconds": timeout_seconds,
            },
        ) from exc


def rate_limit(
    policy: WindowPolicy,
    key_func: Discriminator,
    *,
    on_reject: RejectAction | None = None,
    namespace: str | None = None,
    fail_open: bool | None = None,
    timeout_seconds: float | None = None,
    include_headers: bool | None = None,
) -> RateLimitDependency:
    """Create a FastAPI dependency enforcing ``policy`` per ``key_func`` scope.

    Args:
        policy: Window size and threshold (validated when constructed).
        key_func: Maps the request context to its scope discriminator.
        on_reject: Called as ``on_reject(request, result)`` when a request is
            denied; may be async. It shapes the response by raising (for
            example an ``HTTPException``). If it returns normally, the default
            429 is raised.
        namespace: Key prefix; defaults to ``RATE_LIMIT_KEY_NAMESPACE``.
        fail_open: Let requests through when the store is unavailable;
            defaults to ``RATE_LIMIT_FAIL_OPEN``.
        timeout_seconds: Maximum wait for a verdict; defaults to
            ``RATE_LIMIT_TIMEOUT_SECONDS``.
        include_headers: Add Retry-After / X-RateLimit-* to the default 429;
            defaults to ``RATE_LIMIT_INCLUDE_HEADERS``.

    Returns:
        An async dependency taking the request.
    """

    scope_name = getattr(key_func, "__name__", "custom")

    async def dependency(request: Request) -> None:
        cfg = settings.limiter
        prefix = cfg.key_namespace if namespace is None else namespace
        should_fail_open = cfg.fail_open if fail_open is None else fail_open

        context = EventContext.from_request(request)
        key = build_key(prefix, key_func, context)
        # Reuse the id the middleware bound so stored entries match logs and responses
        event_id = get_request_id() or resolve_request_id(context.headers)

        try:
            result = await evaluate_with_timeout(
                key,
                event_id,
                policy,
                cfg.timeout_seconds if timeout_seconds is None else timeout_seconds,
            )
        except StoreUnavailableError as exc:
            logger.warning(
                "rate_limit.store_unavailable",
                extra={
                    "scope": scope_name,
                    "key_hash": hash_identifier(key),
                    "error_code": exc.code,
                    "fail_open": should_fail_open,
                },
            )
            if should_fail_open:
                return
            raise

        request.state.rate_limit = result
        log_extra = {
            "scope": scope_name,
            "key_hash": hash_identifier(key),
            "limit": result.limit,
            "count": result.count,
            "remaining": result.remaining,
            "window_ms": policy.window_ms,
        }

        if result.allowed:
            logger.debug("rate_limit.allowed", extra=log_extra)
            return

        logger.warning(
            "rate_limit.denied",
            extra={**log_extra, "retry_after_ms": result.retry_after_ms},
        )

        if on_reject is not None:
            outcome = on_reject(request, result)
            if inspect.isawaitable(outcome):
                await outcome

        raise _too_many_requests(
            result,
            cfg.include_headers if include_headers is None else include_headers,
        )

    return dependency


def api_rate_limit(
    window_ms: int,
    threshold: int,
    on_reject: RejectAction | None = None,
    **options: Any,
) -> RateLimitDependency:
    """Limit each route on its own, across all clients."""

    return rate_limit(
        WindowPolicy(window_ms=window_ms, threshold=threshold),
        route_discriminator,
        on_reject=on_reject,
        **options,
    )


def api_ip_rate_limit(
    window_ms: int,
    threshold: int,
    on_reject: RejectAction | None = None,
    **options: Any,
) -> RateLimitDependency:
    """Limit each (client IP, route) pair on its own."""

    return rate_limit(
        WindowPolicy(window_ms=window_ms, threshold=threshold),
        route_ip_discriminator,
        on_reject=on_reject,
        **options,
    )


def global_rate_limit(
    window_ms: int,
    threshold: int,
    on_reject: RejectAction | None = None,
    **options: Any,
) -> RateLimitDependency:
    """Limit all requests through the dependency with one shared counter."""

    return rate_limit(
        WindowPolicy(window_ms=window_ms, threshold=threshold),
        global_discriminator,
        on_reject=on_reject,
        **options,
    )


_configured_gate: RateLimitDependency | None = None
_configured_gate_config: tuple[str, int, int] | None = None


def _get_configured_gate() -> RateLimitDependency:
    """Return the gate described by RATE_LIMIT_* settings.

    Rebuilt when the scope or policy settings change (primarily in tests).
    """

    global _configured_gate, _configured_gate_config

    cfg = settings.limiter
    config = (cfg.scope, cfg.window_ms, cfg.threshold)

    if _configured_gate is None or _configured_gate_config != config:
        _configured_gate = rate_limit(
            WindowPolicy(window_ms=cfg.window_ms, threshold=cfg.threshold),
            SCOPE_DISCRIMINATORS[cfg.scope],
        )
        _configured_gate_config = config

    return _configured_gate


async def enforce_rate_limit(request: Request) -> None:
    """FastAPI dependency enforcing the limit configured in settings.

    Does nothing when ``RATE_LIMIT_ENABLED`` is false.

    Raises:
        HTTPException: 429 Too Many Requests when the request is denied.
        StoreUnavailableError: When the store fails and fail-open is off.
    """

    if not settings.limiter.enabled:
        return

    await _get_configured_gate()(request)
