"""Time source used by the limiters and the stores."""

import time
from typing import Protocol


class Clock(Protocol):
    def now_ms(self) -> int: ...


class SystemClock:
    """Wall-clock time in Unix milliseconds."""

    def now_ms(self) -> int:
        return time.time_ns() // 1_000_000


def ms_to_seconds_ceil(ms: int) -> int:
    """Round a millisecond span up to whole seconds, never below zero."""
    if ms <= 0:
        return 0
    return (ms + 999) // 1000
