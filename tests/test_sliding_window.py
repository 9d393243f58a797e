"""Tests for the sliding window evaluator.

Runs against the in-memory store with explicit timestamps so window
boundaries are exact.
"""

from unittest.mock import Mock

import pytest

from sliding_limiter.adapters.rate_limit.base import WindowPolicy, WindowSnapshot
from sliding_limiter.adapters.rate_limit.in_memory import InMemoryCounterStore
from sliding_limiter.core.errors import InvalidPolicyError, StoreUnavailableError
from sliding_limiter.services.sliding_window import SlidingWindowEvaluator


@pytest.fixture
def evaluator() -> SlidingWindowEvaluator:
    return SlidingWindowEvaluator(InMemoryCounterStore())


class TestThreshold:
    def test_admits_exactly_threshold_within_window(self, evaluator: SlidingWindowEvaluator) -> None:
        policy = WindowPolicy(window_ms=1000, threshold=3)

        verdicts = [
            evaluator.evaluate("k", f"e{i}", policy, now_ms=10_000 + i * 100).allowed
            for i in range(3)
        ]

        assert verdicts == [True, True, True]
        denied = evaluator.evaluate("k", "e3", policy, now_ms=10_300)
        assert denied.allowed is False
        assert denied.denied is True

    def test_remaining_counts_down(self, evaluator: SlidingWindowEvaluator) -> None:
        policy = WindowPolicy(window_ms=1000, threshold=2)

        first = evaluator.evaluate("k", "a", policy, now_ms=10_000)
        second = evaluator.evaluate("k", "b", policy, now_ms=10_001)

        assert (first.remaining, second.remaining) == (1, 0)
        assert first.retry_after_ms is None
        assert second.limit == 2

    def test_denied_result_carries_retry_after(self, evaluator: SlidingWindowEvaluator) -> None:
        policy = WindowPolicy(window_ms=1000, threshold=1)
        evaluator.evaluate("k", "a", policy, now_ms=10_000)

        denied = evaluator.evaluate("k", "b", policy, now_ms=10_400)

        assert denied.allowed is False
        assert denied.remaining == 0
        # the denied event itself has to expire too
        assert denied.retry_after_ms == 1001


class TestWindowSlide:
    def test_admits_again_after_window_passes(self, evaluator: SlidingWindowEvaluator) -> None:
        policy = WindowPolicy(window_ms=1000, threshold=2)
        evaluator.evaluate("k", "a", policy, now_ms=10_000)
        evaluator.evaluate("k", "b", policy, now_ms=10_000)
        assert evaluator.evaluate("k", "c", policy, now_ms=10_500).allowed is False

        # "a", "b" and the denied "c" have all left the window by now
        assert evaluator.evaluate("k", "d", policy, now_ms=11_501).allowed is True

    def test_no_boundary_burst(self, evaluator: SlidingWindowEvaluator) -> None:
        policy = WindowPolicy(window_ms=1000, threshold=2)
        evaluator.evaluate("k", "a", policy, now_ms=10_900)
        evaluator.evaluate("k", "b", policy, now_ms=10_950)

        # a fixed 1s bucket would reset at 11_000; the sliding window does not
        assert evaluator.evaluate("k", "c", policy, now_ms=11_010).allowed is False


class TestDeniedEventsCount:
    def test_retries_while_denied_keep_window_full(self, evaluator: SlidingWindowEvaluator) -> None:
        policy = WindowPolicy(window_ms=1000, threshold=1)
        evaluator.evaluate("k", "a", policy, now_ms=10_000)
        assert evaluator.evaluate("k", "b", policy, now_ms=10_800).allowed is False

        # "a" is gone but the denied "b" is still live
        result = evaluator.evaluate("k", "c", policy, now_ms=11_200)
        assert result.allowed is False
        assert result.count == 2

    def test_resent_event_id_takes_its_own_slot(self, evaluator: SlidingWindowEvaluator) -> None:
        policy = WindowPolicy(window_ms=1000, threshold=2)

        results = [
            evaluator.evaluate("k", "same-request-id", policy, now_ms=10_000 + i)
            for i in range(3)
        ]

        assert [r.count for r in results] == [1, 2, 3]
        assert results[-1].allowed is False


def test_scopes_are_isolated(evaluator: SlidingWindowEvaluator) -> None:
    policy = WindowPolicy(window_ms=1000, threshold=1)
    evaluator.evaluate("scope-a", "e1", policy, now_ms=10_000)

    assert evaluator.evaluate("scope-a", "e2", policy, now_ms=10_001).allowed is False
    assert evaluator.evaluate("scope-b", "e3", policy, now_ms=10_002).allowed is True


def test_uses_clock_when_no_timestamp_given() -> None:
    store = Mock()
    store.record_event.return_value = WindowSnapshot(count=1)
    evaluator = SlidingWindowEvaluator(store, clock=lambda: 42_000)

    evaluator.evaluate("k", "e", WindowPolicy(window_ms=1000, threshold=5))

    key, member, now_ms, window_ms, threshold = store.record_event.call_args.args
    assert (key, now_ms, window_ms, threshold) == ("k", 42_000, 1000, 5)
    assert member.startswith("e:")


def test_store_failure_propagates() -> None:
    store = Mock()
    store.record_event.side_effect = StoreUnavailableError(
        code="store_unavailable", message="down"
    )
    evaluator = SlidingWindowEvaluator(store)

    with pytest.raises(StoreUnavailableError):
        evaluator.evaluate("k", "e", WindowPolicy(window_ms=1000, threshold=1))

    store.record_event.assert_called_once()


def test_rejects_empty_key(evaluator: SlidingWindowEvaluator) -> None:
    with pytest.raises(ValueError):
        evaluator.evaluate("", "e", WindowPolicy(window_ms=1000, threshold=1))


def test_reset_clears_scope(evaluator: SlidingWindowEvaluator) -> None:
    policy = WindowPolicy(window_ms=1000, threshold=1)
    evaluator.evaluate("k", "a", policy, now_ms=10_000)

    evaluator.reset("k")

    assert evaluator.evaluate("k", "b", policy, now_ms=10_001).allowed is True


@pytest.mark.parametrize(
    "kwargs",
    [
        {"window_ms": 0, "threshold": 1},
        {"window_ms": -5, "threshold": 1},
        {"window_ms": 1000, "threshold": 0},
    ],
)
def test_invalid_policy(kwargs: dict) -> None:
    with pytest.raises(InvalidPolicyError) as exc_info:
        WindowPolicy(**kwargs)

    assert exc_info.value.code == "invalid_policy"
