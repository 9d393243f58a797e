"""Counter store interfaces and limiter value types.

The evaluator depends on this abstraction (not the concrete implementation)
so the storage backend can be Redis in production and in-memory in tests.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass

from sliding_limiter.core.errors import InvalidPolicyError


@dataclass(frozen=True)
class WindowPolicy:
    """Sliding window configuration bound to a call site.

    Attributes:
        window_ms: Window length in milliseconds.
        threshold: Maximum live events inside the window, inclusive.

    Raises:
        InvalidPolicyError: If either value is not positive.
    """

    window_ms: int
    threshold: int

    def __post_init__(self) -> None:
        if self.window_ms <= 0:
            raise InvalidPolicyError(
                code="invalid_policy",
                message="window_ms must be > 0",
                details={"window_ms": self.window_ms},
            )
        if self.threshold < 1:
            raise InvalidPolicyError(
                code="invalid_policy",
                message="threshold must be >= 1",
                details={"threshold": self.threshold},
            )


@dataclass(frozen=True)
class WindowSnapshot:
    """Outcome of one atomic store update.

    Attributes:
        count: Live entries for the key after purging and inserting.
        retry_after_ms: When ``count`` exceeds the threshold, milliseconds
            until enough entries expire for the next event to fit; else 0.
    """

    count: int
    retry_after_ms: int = 0


@dataclass(frozen=True)
class RateLimitResult:
    """Admission verdict for one event.

    Attributes:
        allowed: Whether the event is admitted.
        limit: Threshold of the policy that was applied.
        count: Live entries in the window, including this event.
        remaining: Events still admissible in the current window.
        retry_after_ms: Suggested wait when denied, None when admitted.
    """

    allowed: bool
    limit: int
    count: int
    remaining: int
    retry_after_ms: int | None

    @property
    def denied(self) -> bool:
        return not self.allowed


class AbstractCounterStore(ABC):
    """Interface for shared counter stores backing the sliding window."""

    backend_name: str = "abstract"

    @abstractmethod
    def record_event(
        self,
        key: str,
        member: str,
        now_ms: int,
        window_ms: int,
        threshold: int,
    ) -> WindowSnapshot:
        """Purge, insert, count and refresh expiry as one atomic step.

        Implementations must not split this into separate read and write
        round trips: concurrent evaluations on the same key from other
        processes would race between them.

        Args:
            key: Scope key.
            member: Unique entry id for this event.
            now_ms: Event timestamp (epoch milliseconds), used as the score.
            window_ms: Window length; entries older than ``now_ms - window_ms``
                are removed and the record expires after this long idle.
            threshold: Policy threshold, used only to compute retry-after.

        Returns:
            WindowSnapshot with the live count after insertion.

        Raises:
            StoreUnavailableError: If the store cannot complete the step.
        """
        raise NotImplementedError

    @abstractmethod
    def reset(self, key: str) -> None:
        """Drop the Window Record of a scope key."""
        raise NotImplementedError

    @abstractmethod
    def ping(self) -> bool:
        """Return True when the store is reachable."""
        raise NotImplementedError

    def close(self) -> None:
        """Release connections held by the store."""
