"""Pytest configuration and fixtures shared across all test modules.

Environment is set before any import of ``sliding_limiter`` so settings are
built from it, and the process-wide counter store is swapped for a fresh
in-memory one around every test.
"""

import os

# CRITICAL: Set this before any imports that might load settings
os.environ["APP_ENV"] = "testing"
os.environ.setdefault("RATE_LIMIT_BACKEND", "memory")
os.environ.setdefault("RATE_LIMIT_ENABLED", "true")
os.environ.setdefault("RATE_LIMIT_SCOPE", "route_ip")
os.environ.setdefault("RATE_LIMIT_WINDOW_MS", "60000")
os.environ.setdefault("RATE_LIMIT_THRESHOLD", "3")
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/15")

import pytest

from sliding_limiter.adapters.rate_limit.in_memory import InMemoryCounterStore
from sliding_limiter.core.store_client import reset_counter_store, set_counter_store


@pytest.fixture(autouse=True)
def memory_store():
    """Install an isolated in-memory counter store for each test."""
    store = InMemoryCounterStore()
    set_counter_store(store)
    yield store
    reset_counter_store()
