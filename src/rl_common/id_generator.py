"""Unique member IDs for sliding-window event logs.

A sorted-set member must be unique per request even when two requests share
the same millisecond score, otherwise the set silently dedupes them and one
request stops consuming quota.

Layout: "{timestamp_ms}:{instance}:{sequence}"
  - instance: random 48-bit token chosen once per process
  - sequence: monotonic per-process counter, never reused
"""

import itertools
import secrets
import threading


class EntryIdGenerator:
    def __init__(self, instance: str | None = None) -> None:
        self._instance = instance or secrets.token_hex(6)
        self._sequence = itertools.count(1)
        self._lock = threading.Lock()

    def next_id(self, timestamp_ms: int) -> str:
        with self._lock:
            seq = next(self._sequence)
        return f"{timestamp_ms}:{self._instance}:{seq}"

