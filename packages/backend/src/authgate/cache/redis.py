"""Redis-backed cache store.

Learn: The fixed-window counter is INCR + TTL in one MULTI/EXEC
transaction, so every instance sees the same count. When the TTL comes
back as -1 the key was just created (or lost its expiry) and we start
the window clock with EXPIRE. The key itself carries no timestamp;
expiry is what resets the window.

OAuth state uses GETDEL so two callbacks racing on the same state can't
both consume it.

Key naming: authgate:rl:{bucket}:{client} and authgate:oauth:{state}
"""

from typing import Optional

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from authgate.cache.base import CacheError

KEY_PREFIX = "authgate"


def connect(redis_url: str) -> aioredis.Redis:
    """Build a Redis client (connections are opened lazily)."""
    return aioredis.from_url(
        redis_url,
        encoding="utf-8",
        decode_responses=True,
    )


class RedisCache:
    """CacheStore over redis.asyncio."""

    def __init__(self, client: aioredis.Redis, prefix: str = KEY_PREFIX):
        self.client = client
        self.prefix = prefix

    async def increment(self, key: str, window_seconds: int) -> tuple[int, int]:
        full_key = f"{self.prefix}:rl:{key}"
        try:
            async with self.client.pipeline(transaction=True) as pipe:
                pipe.incr(full_key)
                pipe.ttl(full_key)
                count, ttl = await pipe.execute()
            if ttl < 0:
                await self.client.expire(full_key, window_seconds)
                ttl = window_seconds
        except RedisError as e:
            raise CacheError(str(e)) from e
        return int(count), int(ttl)

    async def put_oauth_state(self, state: str, provider: str, ttl_seconds: int) -> None:
        try:
            await self.client.set(
                f"{self.prefix}:oauth:{state}", provider, ex=ttl_seconds
            )
        except RedisError as e:
            raise CacheError(str(e)) from e

    async def pop_oauth_state(self, state: str) -> Optional[str]:
        try:
            value = await self.client.getdel(f"{self.prefix}:oauth:{state}")
        except RedisError as e:
            raise CacheError(str(e)) from e
        if isinstance(value, bytes):
            value = value.decode("utf-8")
        return value

    async def ping(self) -> None:
        try:
            await self.client.ping()
        except RedisError as e:
            raise CacheError(str(e)) from e

    async def close(self) -> None:
        await self.client.aclose()
