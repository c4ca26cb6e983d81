# src/rl_limiter/domain/store.py
"""CounterStore Protocol: the atomic primitives the limiters depend on.

Each call is one round trip and atomic on the store side, so two processes
hitting the same key always observe a serialized view. Implementations raise
StoreUnavailableError for every connectivity, server or timeout failure.
"""
from dataclasses import dataclass
from typing import Protocol

TTL_NONE = -1  # key exists without expiry
TTL_MISSING = -2  # key does not exist


@dataclass(frozen=True)
class LogAdmission:
    """Outcome of one conditional sliding-window insert."""

    recorded: bool
    count: int  # entries inside the window before this request
    oldest_ms: int | None  # minimum score after the insert, None if the log is empty


class CounterStore(Protocol):
    async def increment_and_expire(self, key: str, window_seconds: int) -> int: ...

    async def get_ttl(self, key: str) -> int: ...

    async def add_timestamped_entry(
        self, key: str, timestamp_ms: int, window_seconds: int
    ) -> None: ...

    async def prune_and_count(self, key: str, cutoff_ms: int) -> int: ...

    # prune + count + add-if-under-limit as one atomic step
    async def record_if_under_limit(
        self,
        key: str,
        timestamp_ms: int,
        cutoff_ms: int,
        limit: int,
        window_seconds: int,
    ) -> LogAdmission: ...

    async def oldest_entry(self, key: str) -> int | None: ...

    # Read-only peek for the quota status endpoint; never mutates.
    async def get_count(self, key: str) -> int: ...
