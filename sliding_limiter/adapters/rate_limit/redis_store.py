"""Redis-backed sliding window counter store.

Each scope key is a sorted set of ``member -> timestamp_ms``. The whole
purge/insert/count/expire sequence runs server-side as one Lua script, so
concurrent evaluations from any number of processes serialize on Redis
instead of racing between round trips.
"""

from __future__ import annotations

import logging

import redis
from redis.exceptions import RedisError

from sliding_limiter.adapters.rate_limit.base import AbstractCounterStore, WindowSnapshot
from sliding_limiter.core.errors import StoreUnavailableError
from sliding_limiter.core.logging import hash_identifier

logger = logging.getLogger(__name__)


# KEYS[1] scope key
# ARGV: now_ms, window_ms, threshold, member
# Returns {count, retry_after_ms}
SLIDING_WINDOW_SCRIPT = """
local key = KEYS[1]
local now = tonumber(ARGV[1])
local window = tonumber(ARGV[2])
local threshold = tonumber(ARGV[3])
local member = ARGV[4]

redis.call('ZREMRANGEBYSCORE', key, '-inf', '(' .. (now - window))
redis.call('ZADD', key, now, member)
local count = redis.call('ZCARD', key)
redis.call('PEXPIRE', key, window)

local retry_after = 0
if count > threshold then
    local blocking = redis.call('ZRANGE', key, count - threshold, count - threshold, 'WITHSCORES')
    retry_after = tonumber(blocking[2]) + window - now + 1
end

return {count, retry_after}
"""


class RedisCounterStore(AbstractCounterStore):
    """Counter store talking to a shared Redis instance or cluster endpoint."""

    backend_name = "redis"

    def __init__(self, client: redis.Redis) -> None:
        """Wrap an existing client and register the window script.

        Args:
            client: Connected (or lazily connecting) redis-py client. The
                client's pool is shared by all evaluations in the process.
        """
        self._client = client
        self._script = client.register_script(SLIDING_WINDOW_SCRIPT)

    @classmethod
    def from_url(
        cls,
        url: str,
        *,
        socket_timeout: float,
        connect_timeout: float,
        max_connections: int,
    ) -> "RedisCounterStore":
        pool = redis.ConnectionPool.from_url(
            url,
            socket_timeout=socket_timeout,
            socket_connect_timeout=connect_timeout,
            max_connections=max_connections,
            decode_responses=True,
        )
        return cls(redis.Redis(connection_pool=pool))

    def record_event(
        self,
        key: str,
        member: str,
        now_ms: int,
        window_ms: int,
        threshold: int,
    ) -> WindowSnapshot:
        try:
            count, retry_after_ms = self._script(
                keys=[key],
                args=[now_ms, window_ms, threshold, member],
            )
        except RedisError as exc:
            logger.warning(
                "store.script_failed",
                extra={
                    "key_hash": hash_identifier(key),
                    "error_type": type(exc).__name__,
                },
            )
            raise StoreUnavailableError(
                code="store_unavailable",
                message="Rate limit store is unavailable",
                details={"backend": self.backend_name, "error_type": type(exc).__name__},
            ) from exc

        return WindowSnapshot(count=int(count), retry_after_ms=int(retry_after_ms))

    def reset(self, key: str) -> None:
        try:
            self._client.delete(key)
        except RedisError as exc:
            raise StoreUnavailableError(
                code="store_unavailable",
                message="Rate limit store is unavailable",
                details={"backend": self.backend_name, "error_type": type(exc).__name__},
            ) from exc

    def ping(self) -> bool:
        try:
            return bool(self._client.ping())
        except RedisError as exc:
            logger.warning(
                "store.ping_failed",
                extra={"error_type": type(exc).__name__},
            )
            return False

    def close(self) -> None:
        self._client.close()
