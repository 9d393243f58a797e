"""Factory pattern for creating counter store instances."""

import logging

from sliding_limiter.adapters.rate_limit.base import AbstractCounterStore
from sliding_limiter.adapters.rate_limit.in_memory import InMemoryCounterStore
from sliding_limiter.adapters.rate_limit.redis_store import RedisCounterStore
from sliding_limiter.core.config import settings
from sliding_limiter.core.errors import ValidationAppError

logger = logging.getLogger(__name__)


def create_counter_store() -> AbstractCounterStore:
    """Instantiate the counter store configured by ``RATE_LIMIT_BACKEND``.

    Returns:
        AbstractCounterStore: Redis store for shared limits, or the
            per-process in-memory store.

    Raises:
        ValidationAppError: If the backend name is unknown.
    """
    backend = settings.limiter.backend.lower()

    if backend == "redis":
        logger.info(
            "store.client_created",
            extra={
                "backend": backend,
                "max_connections": settings.redis.max_connections,
                "socket_timeout_s": settings.redis.socket_timeout_seconds,
            },
        )
        return RedisCounterStore.from_url(
            settings.redis.url,
            socket_timeout=settings.redis.socket_timeout_seconds,
            connect_timeout=settings.redis.connect_timeout_seconds,
            max_connections=settings.redis.max_connections,
        )

    if backend == "memory":
        logger.warning(
            "store.client_created",
            extra={"backend": backend, "hint": "limits are not shared across processes"},
        )
        return InMemoryCounterStore()

    raise ValidationAppError(
        code="unknown_store_backend",
        message=f"Unknown rate limit backend: '{backend}'. Supported backends: redis, memory",
    )
