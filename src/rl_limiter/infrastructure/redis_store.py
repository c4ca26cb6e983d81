"""Redis-backed CounterStore.

Fixed-window counters are plain string keys driven by a Lua script so that
INCR and the one-time EXPIRE happen in a single atomic step. Sliding-window
logs are sorted sets scored by request timestamp (ms). The limiter admits
requests through a second script (prune, count, add when under the limit);
the standalone prune and add primitives run as MULTI/EXEC transactions.

Every call is bounded by asyncio.timeout; any Redis, socket or timeout error
surfaces as StoreUnavailableError.
"""

import asyncio
import logging
from collections.abc import Awaitable
from typing import TypeVar

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from src.rl_common.errors import StoreUnavailableError
from src.rl_common.id_generator import EntryIdGenerator
from src.rl_limiter.domain.store import LogAdmission

logger = logging.getLogger(__name__)

T = TypeVar("T")

# TTL is set only when the key has none, so the window is anchored at the
# first hit and not renewed by later ones. TTL == -1 also repairs a key that
# somehow lost its expiry.
_INCREMENT_AND_EXPIRE_LUA = """
local count = redis.call('INCR', KEYS[1])
if redis.call('TTL', KEYS[1]) == -1 then
    redis.call('EXPIRE', KEYS[1], ARGV[1])
end
return count
"""

# Prune, count and conditionally add in one step so concurrent requests for
# the same key cannot all see room under the limit.
# KEYS[1] log; ARGV: cutoff_ms, timestamp_ms, member, limit, ttl_seconds
_RECORD_IF_UNDER_LIMIT_LUA = """
redis.call('ZREMRANGEBYSCORE', KEYS[1], '-inf', '(' .. ARGV[1])
local count = redis.call('ZCARD', KEYS[1])
local recorded = 0
if count < tonumber(ARGV[4]) then
    redis.call('ZADD', KEYS[1], ARGV[2], ARGV[3])
    redis.call('EXPIRE', KEYS[1], ARGV[5])
    recorded = 1
end
local oldest = redis.call('ZRANGE', KEYS[1], 0, 0, 'WITHSCORES')
return {count, recorded, oldest[2] or '-1'}
"""


class RedisCounterStore:
    def __init__(
        self,
        client: aioredis.Redis,
        operation_timeout_ms: int = 250,
        id_generator: EntryIdGenerator | None = None,
    ) -> None:
        self._redis = client
        self._timeout = operation_timeout_ms / 1000
        self._ids = id_generator or EntryIdGenerator()
        self._increment_script = client.register_script(_INCREMENT_AND_EXPIRE_LUA)
        self._record_script = client.register_script(_RECORD_IF_UNDER_LIMIT_LUA)

    async def _run(self, op: str, awaitable: Awaitable[T]) -> T:
        try:
            async with asyncio.timeout(self._timeout):
                return await awaitable
        except (RedisError, OSError, TimeoutError) as exc:
            logger.debug("Redis %s failed: %r", op, exc)
            raise StoreUnavailableError(f"Redis {op} failed: {exc!r}") from exc

    async def increment_and_expire(self, key: str, window_seconds: int) -> int:
        result = await self._run(
            "increment_and_expire",
            self._increment_script(keys=[key], args=[window_seconds]),
        )
        return int(result)

    async def get_ttl(self, key: str) -> int:
        return int(await self._run("get_ttl", self._redis.ttl(key)))

    async def add_timestamped_entry(
        self, key: str, timestamp_ms: int, window_seconds: int
    ) -> None:
        member = self._ids.next_id(timestamp_ms)

        async def _add() -> None:
            async with self._redis.pipeline(transaction=True) as pipe:
                pipe.zadd(key, {member: timestamp_ms})
                # One extra second so the set outlives its newest entry's window
                pipe.expire(key, window_seconds + 1)
                await pipe.execute()

        await self._run("add_timestamped_entry", _add())

    async def prune_and_count(self, key: str, cutoff_ms: int) -> int:
        async def _prune() -> int:
            async with self._redis.pipeline(transaction=True) as pipe:
                # "(" makes the bound exclusive: scores strictly below cutoff go
                pipe.zremrangebyscore(key, "-inf", f"({cutoff_ms}")
                pipe.zcard(key)
                _, count = await pipe.execute()
            return int(count)

        return await self._run("prune_and_count", _prune())

    async def record_if_under_limit(
        self,
        key: str,
        timestamp_ms: int,
        cutoff_ms: int,
        limit: int,
        window_seconds: int,
    ) -> LogAdmission:
        member = self._ids.next_id(timestamp_ms)
        count, recorded, oldest = await self._run(
            "record_if_under_limit",
            self._record_script(
                keys=[key],
                args=[cutoff_ms, timestamp_ms, member, limit, window_seconds + 1],
            ),
        )
        oldest_ms = int(float(oldest))
        return LogAdmission(
            recorded=bool(int(recorded)),
            count=int(count),
            oldest_ms=oldest_ms if oldest_ms >= 0 else None,
        )

    async def oldest_entry(self, key: str) -> int | None:
        rows = await self._run(
            "oldest_entry", self._redis.zrange(key, 0, 0, withscores=True)
        )
        if not rows:
            return None
        _, score = rows[0]
        return int(score)

    async def get_count(self, key: str) -> int:
        value = await self._run("get_count", self._redis.get(key))
        return int(value) if value is not None else 0
