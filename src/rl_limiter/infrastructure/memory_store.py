"""In-process CounterStore for single-process development and tests.

Mirrors the Redis semantics (TTL sentinels, exclusive prune bound, set TTL of
window + 1s) against an injectable clock. State lives in this process only,
so it must never back more than one worker.

Expired keys are dropped when touched, and a sweep over every key runs at
most once per sweep interval so idle identities do not accumulate.
"""

import asyncio
import bisect
from dataclasses import dataclass, field

from src.rl_common.datetime_utils import Clock, SystemClock, ms_to_seconds_ceil
from src.rl_common.id_generator import EntryIdGenerator
from src.rl_limiter.domain.store import TTL_MISSING, TTL_NONE, LogAdmission


@dataclass
class _Counter:
    count: int = 0
    expires_at: int | None = None  # Unix ms


@dataclass
class _EventLog:
    entries: list[tuple[int, str]] = field(default_factory=list)  # sorted (score, member)
    expires_at: int | None = None

    def prune(self, cutoff_ms: int) -> None:
        # Drop entries scored strictly below the cutoff
        del self.entries[: bisect.bisect_left(self.entries, (cutoff_ms, ""))]


def _expired(record: _Counter | _EventLog, now: int) -> bool:
    return record.expires_at is not None and record.expires_at <= now


class InMemoryCounterStore:
    def __init__(
        self,
        clock: Clock | None = None,
        id_generator: EntryIdGenerator | None = None,
        sweep_interval_seconds: int = 60,
    ) -> None:
        self._clock = clock or SystemClock()
        self._ids = id_generator or EntryIdGenerator()
        self._counters: dict[str, _Counter] = {}
        self._logs: dict[str, _EventLog] = {}
        self._lock = asyncio.Lock()
        self._sweep_interval_ms = sweep_interval_seconds * 1000
        self._next_sweep = self._clock.now_ms() + self._sweep_interval_ms

    def _sweep(self, now: int) -> None:
        if now < self._next_sweep:
            return
        self._counters = {k: c for k, c in self._counters.items() if not _expired(c, now)}
        self._logs = {k: log for k, log in self._logs.items() if not _expired(log, now)}
        self._next_sweep = now + self._sweep_interval_ms

    def _expire(self, key: str, now: int) -> None:
        self._sweep(now)
        counter = self._counters.get(key)
        if counter and _expired(counter, now):
            del self._counters[key]
        log = self._logs.get(key)
        if log and _expired(log, now):
            del self._logs[key]

    def _append(self, log: _EventLog, timestamp_ms: int, window_seconds: int, now: int) -> None:
        bisect.insort(log.entries, (timestamp_ms, self._ids.next_id(timestamp_ms)))
        log.expires_at = now + (window_seconds + 1) * 1000

    async def increment_and_expire(self, key: str, window_seconds: int) -> int:
        async with self._lock:
            now = self._clock.now_ms()
            self._expire(key, now)
            counter = self._counters.setdefault(key, _Counter())
            counter.count += 1
            if counter.expires_at is None:
                counter.expires_at = now + window_seconds * 1000
            return counter.count

    async def get_ttl(self, key: str) -> int:
        async with self._lock:
            now = self._clock.now_ms()
            self._expire(key, now)
            record = self._counters.get(key) or self._logs.get(key)
            if record is None:
                return TTL_MISSING
            if record.expires_at is None:
                return TTL_NONE
            return ms_to_seconds_ceil(record.expires_at - now)

    async def add_timestamped_entry(
        self, key: str, timestamp_ms: int, window_seconds: int
    ) -> None:
        async with self._lock:
            now = self._clock.now_ms()
            self._expire(key, now)
            log = self._logs.setdefault(key, _EventLog())
            self._append(log, timestamp_ms, window_seconds, now)

    async def prune_and_count(self, key: str, cutoff_ms: int) -> int:
        async with self._lock:
            self._expire(key, self._clock.now_ms())
            log = self._logs.get(key)
            if log is None:
                return 0
            log.prune(cutoff_ms)
            return len(log.entries)

    async def record_if_under_limit(
        self,
        key: str,
        timestamp_ms: int,
        cutoff_ms: int,
        limit: int,
        window_seconds: int,
    ) -> LogAdmission:
        async with self._lock:
            now = self._clock.now_ms()
            self._expire(key, now)
            log = self._logs.get(key)
            if log is not None:
                log.prune(cutoff_ms)
            count = len(log.entries) if log else 0
            recorded = count < limit
            if recorded:
                log = self._logs.setdefault(key, _EventLog())
                self._append(log, timestamp_ms, window_seconds, now)
            oldest = log.entries[0][0] if log and log.entries else None
            return LogAdmission(recorded=recorded, count=count, oldest_ms=oldest)

    async def oldest_entry(self, key: str) -> int | None:
        async with self._lock:
            self._expire(key, self._clock.now_ms())
            log = self._logs.get(key)
            if not log or not log.entries:
                return None
            return log.entries[0][0]

    async def get_count(self, key: str) -> int:
        async with self._lock:
            self._expire(key, self._clock.now_ms())
            counter = self._counters.get(key)
            return counter.count if counter else 0
