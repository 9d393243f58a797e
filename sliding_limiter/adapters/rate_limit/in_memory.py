"""In-memory sliding window counter store.

Notes:
- Per-process only: running multiple workers multiplies the effective limit.
- Thread-safe: uses a lock around shared state, which plays the role the Lua
  script plays for Redis.
- Idle records are swept on later calls, so keys that stop receiving traffic
  do not accumulate.
"""

from __future__ import annotations

import bisect
import heapq
import threading
from dataclasses import dataclass, field

from sliding_limiter.adapters.rate_limit.base import AbstractCounterStore, WindowSnapshot


@dataclass
class _WindowRecord:
    # (score, member) pairs kept sorted; members maps member -> score
    entries: list[tuple[int, str]] = field(default_factory=list)
    members: dict[str, int] = field(default_factory=dict)
    expires_at_ms: int = 0


class InMemoryCounterStore(AbstractCounterStore):
    """Sorted-set emulation of the Redis Window Record.

    Semantics match the Redis backend: strictly older entries are purged,
    re-adding an existing member moves it to the new score, and a record
    untouched for ``window_ms`` disappears.
    """

    backend_name = "memory"

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._records: dict[str, _WindowRecord] = {}
        # (expires_at_ms, key); stale pairs are skipped when the record moved on
        self._expiry_heap: list[tuple[int, str]] = []

    def _sweep_expired(self, now_ms: int) -> None:
        heap = self._expiry_heap
        while heap and heap[0][0] <= now_ms:
            _, key = heapq.heappop(heap)
            record = self._records.get(key)
            if record is not None and record.expires_at_ms <= now_ms:
                del self._records[key]

    def _live_record(self, key: str, now_ms: int) -> _WindowRecord:
        record = self._records.get(key)
        if record is None or record.expires_at_ms <= now_ms:
            record = _WindowRecord()
            self._records[key] = record
        return record

    @staticmethod
    def _purge(record: _WindowRecord, cutoff_ms: int) -> None:
        # (cutoff,) sorts before every (cutoff, member), so this keeps score == cutoff
        stale = bisect.bisect_left(record.entries, (cutoff_ms,))
        for _, member in record.entries[:stale]:
            del record.members[member]
        del record.entries[:stale]

    @staticmethod
    def _add(record: _WindowRecord, member: str, score: int) -> None:
        previous = record.members.get(member)
        if previous is not None:
            record.entries.remove((previous, member))
        bisect.insort(record.entries, (score, member))
        record.members[member] = score

    def record_event(
        self,
        key: str,
        member: str,
        now_ms: int,
        window_ms: int,
        threshold: int,
    ) -> WindowSnapshot:
        with self._lock:
            self._sweep_expired(now_ms)
            record = self._live_record(key, now_ms)
            self._purge(record, now_ms - window_ms)
            self._add(record, member, now_ms)
            record.expires_at_ms = now_ms + window_ms
            heapq.heappush(self._expiry_heap, (record.expires_at_ms, key))

            count = len(record.entries)
            retry_after_ms = 0
            if count > threshold:
                blocking_score = record.entries[count - threshold][0]
                retry_after_ms = blocking_score + window_ms - now_ms + 1
            return WindowSnapshot(count=count, retry_after_ms=retry_after_ms)

    def reset(self, key: str) -> None:
        with self._lock:
            self._records.pop(key, None)

    def ping(self) -> bool:
        return True

    def close(self) -> None:
        with self._lock:
            self._records.clear()
            self._expiry_heap.clear()
