"""Unit tests for the in-memory counter store adapter."""

import threading

from sliding_limiter.adapters.rate_limit.in_memory import InMemoryCounterStore


def test_counts_every_recorded_event() -> None:
    store = InMemoryCounterStore()

    assert store.record_event("k", "a", 1000, 500, 5).count == 1
    assert store.record_event("k", "b", 1001, 500, 5).count == 2
    assert store.record_event("k", "c", 1002, 500, 5).count == 3


def test_purges_only_strictly_older_entries() -> None:
    store = InMemoryCounterStore()
    store.record_event("k", "a", 1000, 500, 5)
    store.record_event("k", "b", 1100, 500, 5)

    # cutoff 1000: the entry scored exactly 1000 is still live
    assert store.record_event("k", "c", 1500, 500, 5).count == 3
    # cutoff 1001: "a" goes
    assert store.record_event("k", "d", 1501, 500, 5).count == 3


def test_readding_member_moves_it_instead_of_duplicating() -> None:
    store = InMemoryCounterStore()
    store.record_event("k", "same", 1000, 500, 5)

    assert store.record_event("k", "same", 1200, 500, 5).count == 1
    # the entry now lives at 1200, so it survives a cutoff of 1100
    assert store.record_event("k", "other", 1600, 500, 5).count == 2


def test_record_expires_when_idle_for_a_window() -> None:
    store = InMemoryCounterStore()
    store.record_event("k", "a", 1000, 500, 5)
    store.record_event("k", "b", 1000, 500, 5)

    assert store.record_event("k", "c", 1500, 500, 5).count == 1


def test_retry_after_points_at_first_entry_to_expire() -> None:
    store = InMemoryCounterStore()
    store.record_event("k", "a", 1000, 500, 2)
    store.record_event("k", "b", 1100, 500, 2)

    snapshot = store.record_event("k", "c", 1200, 500, 2)

    assert snapshot.count == 3
    # "a" and "b" must both leave before a new event fits: 1100 + 500 + 1 - 1200
    assert snapshot.retry_after_ms == 401


def test_retry_after_is_zero_within_threshold() -> None:
    store = InMemoryCounterStore()

    assert store.record_event("k", "a", 1000, 500, 2).retry_after_ms == 0


def test_isolated_by_key() -> None:
    store = InMemoryCounterStore()
    store.record_event("k1", "a", 1000, 500, 5)
    store.record_event("k1", "b", 1000, 500, 5)

    assert store.record_event("k2", "a", 1000, 500, 5).count == 1


def test_reset_drops_record() -> None:
    store = InMemoryCounterStore()
    store.record_event("k", "a", 1000, 500, 5)

    store.reset("k")

    assert store.record_event("k", "b", 1001, 500, 5).count == 1


def test_concurrent_events_are_all_counted() -> None:
    store = InMemoryCounterStore()

    def worker(offset: int) -> None:
        for i in range(50):
            store.record_event("k", f"{offset}-{i}", 1000, 10_000, 1)

    threads = [threading.Thread(target=worker, args=(n,)) for n in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert store.record_event("k", "last", 1000, 10_000, 1).count == 401


def test_ping_is_always_true() -> None:
    assert InMemoryCounterStore().ping() is True


def test_idle_keys_are_swept_on_later_calls() -> None:
    store = InMemoryCounterStore()
    for i in range(1000):
        store.record_event(f"k{i}", "a", 1000, 100, 5)

    store.record_event("fresh", "a", 10_000_000, 100, 5)

    assert list(store._records) == ["fresh"]


def test_sweep_keeps_keys_still_in_their_window() -> None:
    store = InMemoryCounterStore()
    store.record_event("old", "a", 1000, 100, 5)
    store.record_event("busy", "a", 1000, 500, 5)

    store.record_event("other", "a", 1200, 100, 5)

    assert set(store._records) == {"busy", "other"}
    assert store.record_event("busy", "b", 1300, 500, 5).count == 2
