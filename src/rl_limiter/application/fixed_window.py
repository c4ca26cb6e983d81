"""Fixed-window counter limiter.

One counter per (identity, endpoint); the first hit of a window sets the TTL
and every later hit in that window shares the same reset boundary. Bursts of
up to 2x the limit across a window edge are the accepted cost of O(1) work.

Tie-break: count == limit is the last allowed request, limit + 1 the first
denied one. Denied hits still increment (the counter only ever grows within a
window), they are simply rejected.
"""

from src.rl_limiter.domain.models import Decision, Policy
from src.rl_limiter.domain.store import CounterStore


class FixedWindowLimiter:
    def __init__(self, store: CounterStore) -> None:
        self._store = store

    async def _ttl_or_window(self, key: str, window_seconds: int) -> int:
        ttl = await self._store.get_ttl(key)
        # -1 / -2 sentinels: no TTL yet or key gone, assume a fresh window
        return ttl if ttl > 0 else window_seconds

    async def hit(self, key: str, policy: Policy, now_ms: int) -> Decision:
        count = await self._store.increment_and_expire(key, policy.window_seconds)
        if count == 1:
            ttl = policy.window_seconds
        else:
            ttl = await self._ttl_or_window(key, policy.window_seconds)
        reset_at = now_ms + ttl * 1000

        if count > policy.limit:
            return Decision(
                allowed=False,
                limit=policy.limit,
                remaining=0,
                reset_at=reset_at,
                retry_after_seconds=ttl,
            )
        return Decision(
            allowed=True,
            limit=policy.limit,
            remaining=max(0, policy.limit - count),
            reset_at=reset_at,
        )

    async def peek(self, key: str, policy: Policy, now_ms: int) -> Decision:
        """Current quota without consuming a request."""
        count = await self._store.get_count(key)
        ttl = await self._ttl_or_window(key, policy.window_seconds)
        allowed = count < policy.limit
        return Decision(
            allowed=allowed,
            limit=policy.limit,
            remaining=max(0, policy.limit - count),
            reset_at=now_ms + ttl * 1000,
            retry_after_seconds=0 if allowed else ttl,
        )
