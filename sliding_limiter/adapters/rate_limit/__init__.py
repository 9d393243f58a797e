"""Counter store adapters.

The sliding window evaluator talks to a shared store through a small
abstraction so the same code runs against Redis in production and against
an in-process store in development and tests.
"""

from sliding_limiter.adapters.rate_limit.base import (
    AbstractCounterStore,
    RateLimitResult,
    WindowPolicy,
    WindowSnapshot,
)
from sliding_limiter.adapters.rate_limit.factory import create_counter_store
from sliding_limiter.adapters.rate_limit.in_memory import InMemoryCounterStore
from sliding_limiter.adapters.rate_limit.redis_store import RedisCounterStore

__all__ = [
    "AbstractCounterStore",
    "InMemoryCounterStore",
    "RateLimitResult",
    "RedisCounterStore",
    "WindowPolicy",
    "WindowSnapshot",
    "create_counter_store",
]
