"""Sliding-window log limiter.

Each allowed request is one sorted-set member scored by its timestamp (ms).
Pruning members older than now - window, counting and recording happen in one
atomic store call, so a burst of limit + 1 concurrent requests admits exactly
limit of them. Denied requests are not recorded and do not consume quota.

Preferred for expensive endpoints (AI inference) where fairness matters more
than raw throughput; costs O(log n) store work per request.
"""

from src.rl_common.datetime_utils import ms_to_seconds_ceil
from src.rl_limiter.domain.models import Decision, Policy
from src.rl_limiter.domain.store import CounterStore


class SlidingWindowLimiter:
    def __init__(self, store: CounterStore) -> None:
        self._store = store

    async def _reset_at(self, key: str, policy: Policy, now_ms: int) -> int:
        oldest = await self._store.oldest_entry(key)
        return (oldest if oldest is not None else now_ms) + policy.window_ms

    async def hit(self, key: str, policy: Policy, now_ms: int) -> Decision:
        admission = await self._store.record_if_under_limit(
            key,
            timestamp_ms=now_ms,
            cutoff_ms=now_ms - policy.window_ms,
            limit=policy.limit,
            window_seconds=policy.window_seconds,
        )
        oldest = admission.oldest_ms if admission.oldest_ms is not None else now_ms
        reset_at = oldest + policy.window_ms

        if not admission.recorded:
            return Decision(
                allowed=False,
                limit=policy.limit,
                remaining=0,
                reset_at=reset_at,
                retry_after_seconds=max(1, ms_to_seconds_ceil(reset_at - now_ms)),
            )
        return Decision(
            allowed=True,
            limit=policy.limit,
            remaining=policy.limit - admission.count - 1,
            reset_at=reset_at,
        )

    async def peek(self, key: str, policy: Policy, now_ms: int) -> Decision:
        """Current quota without recording a request.

        Pruning is safe here: it only drops entries that no longer count.
        """
        count = await self._store.prune_and_count(key, now_ms - policy.window_ms)
        reset_at = await self._reset_at(key, policy, now_ms)
        allowed = count < policy.limit
        return Decision(
            allowed=allowed,
            limit=policy.limit,
            remaining=max(0, policy.limit - count),
            reset_at=reset_at,
            retry_after_seconds=0 if allowed else max(1, ms_to_seconds_ceil(reset_at - now_ms)),
        )
