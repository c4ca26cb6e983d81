"""Redis client factory: the counter store for rate limiting.

No module-level pool: the app lifespan creates one client, hangs it on
app.state and injects it into RedisCounterStore, then closes it on shutdown.
"""

import redis.asyncio as aioredis

from config.settings import Settings


def create_redis(settings: Settings) -> aioredis.Redis:
    """Build a Redis client whose socket timeouts match the operation budget."""
    timeout = settings.REDIS_OPERATION_TIMEOUT_MS / 1000
    return aioredis.from_url(
        settings.REDIS_URL,
        decode_responses=True,
        socket_timeout=timeout,
        socket_connect_timeout=timeout,
    )


async def close_redis(client: aioredis.Redis) -> None:
    """Close the Redis connection pool."""
    await client.aclose()
