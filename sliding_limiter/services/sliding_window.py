"""Sliding window admission evaluation.

For a scope key the evaluator keeps every event of the last ``window_ms``
milliseconds in the shared store and admits an event when, counting itself,
at most ``threshold`` events are live. Because the window slides with the
clock instead of resetting on fixed boundaries, a burst straddling a
boundary cannot get twice the nominal rate through.

Denied events are recorded like admitted ones, so a client retrying while
throttled keeps its own window full.
"""

from __future__ import annotations

import logging
import secrets
import time
from typing import Callable

from sliding_limiter.adapters.rate_limit.base import (
    AbstractCounterStore,
    RateLimitResult,
    WindowPolicy,
)
from sliding_limiter.core.logging import hash_identifier

logger = logging.getLogger(__name__)


def _now_ms() -> int:
    return int(time.time() * 1000)


class SlidingWindowEvaluator:
    """Decides admit/deny for events against a counter store.

    The evaluator holds no per-key state; everything shared lives in the
    store, so any number of evaluators in any number of processes can point
    at the same store.
    """

    def __init__(
        self,
        store: AbstractCounterStore,
        *,
        clock: Callable[[], int] = _now_ms,
    ) -> None:
        """Initialize the evaluator.

        Args:
            store: Counter store executing the atomic window update.
            clock: Time source returning epoch milliseconds.
        """
        self._store = store
        self._clock = clock

    @property
    def store(self) -> AbstractCounterStore:
        return self._store

    @staticmethod
    def _entry_member(event_id: str) -> str:
        # A resent id must still occupy its own slot; ZADD would otherwise
        # just move the earlier entry.
        return f"{event_id}:{secrets.token_hex(4)}"

    def evaluate(
        self,
        key: str,
        event_id: str,
        policy: WindowPolicy,
        *,
        now_ms: int | None = None,
    ) -> RateLimitResult:
        """Record an event and decide whether it is admitted.

        Args:
            key: Scope key of the event.
            event_id: Request identity of the event.
            policy: Window size and threshold to enforce.
            now_ms: Event timestamp; defaults to the evaluator clock.

        Returns:
            RateLimitResult; ``allowed`` is True when the live count,
            including this event, is within the threshold.

        Raises:
            StoreUnavailableError: If the store cannot complete the update.
                No retry is attempted.
        """
        if not key:
            raise ValueError("key must be a non-empty string")

        now = self._clock() if now_ms is None else now_ms
        snapshot = self._store.record_event(
            key,
            self._entry_member(event_id),
            now,
            policy.window_ms,
            policy.threshold,
        )

        allowed = snapshot.count <= policy.threshold
        result = RateLimitResult(
            allowed=allowed,
            limit=policy.threshold,
            count=snapshot.count,
            remaining=max(0, policy.threshold - snapshot.count),
            retry_after_ms=None if allowed else max(0, snapshot.retry_after_ms),
        )

        logger.debug(
            "rate_limit.evaluated",
            extra={
                "key_hash": hash_identifier(key),
                "allowed": allowed,
                "count": snapshot.count,
                "limit": policy.threshold,
                "window_ms": policy.window_ms,
            },
        )
        return result

    def reset(self, key: str) -> None:
        """Forget every recorded event of a scope key."""
        self._store.reset(key)
