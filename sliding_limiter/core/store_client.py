"""Process-wide counter store handle.

All limiter dependencies in a process share one store (and therefore one
connection pool). It is created on first use; tests swap it with
``set_counter_store`` and drop it with ``reset_counter_store``.
"""

from __future__ import annotations

import logging
import threading

from sliding_limiter.adapters.rate_limit.base import AbstractCounterStore
from sliding_limiter.adapters.rate_limit.factory import create_counter_store

logger = logging.getLogger(__name__)

_store: AbstractCounterStore | None = None
_store_lock = threading.Lock()


def get_counter_store() -> AbstractCounterStore:
    """Return the process-wide store, creating it once if needed.

    Concurrent first calls are serialized so only one pool is ever built.
    """

    global _store

    store = _store
    if store is not None:
        return store

    with _store_lock:
        if _store is None:
            _store = create_counter_store()
        return _store


def set_counter_store(store: AbstractCounterStore) -> None:
    """Install ``store`` as the process-wide store, replacing any existing one."""

    global _store

    with _store_lock:
        previous, _store = _store, store
    if previous is not None and previous is not store:
        previous.close()


def reset_counter_store() -> None:
    """Close and forget the process-wide store; the next use recreates it."""

    global _store

    with _store_lock:
        previous, _store = _store, None
    if previous is not None:
        previous.close()
        logger.debug("store.client_reset", extra={"backend": previous.backend_name})
