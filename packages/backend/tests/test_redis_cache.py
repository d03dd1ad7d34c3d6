"""Redis cache store tests (fakeredis)."""

import pytest
import pytest_asyncio
from fakeredis import FakeServer
from fakeredis.aioredis import FakeRedis

from authgate.cache.base import CacheError
from authgate.cache.redis import RedisCache
from authgate.services.admission_gate import AdmissionGate
from authgate.auth.errors import RateLimited


@pytest_asyncio.fixture()
async def redis_cache():
    client = FakeRedis(decode_responses=True)
    yield RedisCache(client)
    await client.aclose()


@pytest.mark.asyncio
async def test_increment_counts_and_sets_ttl(redis_cache):
    assert await redis_cache.increment("auth:1.2.3.4", 60) == (1, 60)
    count, ttl = await redis_cache.increment("auth:1.2.3.4", 60)
    assert count == 2
    assert 0 < ttl <= 60
    assert await redis_cache.client.ttl("authgate:rl:auth:1.2.3.4") > 0


@pytest.mark.asyncio
async def test_increment_keys_are_independent(redis_cache):
    await redis_cache.increment("auth:a", 60)
    await redis_cache.increment("auth:a", 60)
    assert (await redis_cache.increment("auth:b", 60))[0] == 1


@pytest.mark.asyncio
async def test_counter_restarts_when_key_expires(redis_cache):
    await redis_cache.increment("auth:a", 60)
    await redis_cache.client.delete("authgate:rl:auth:a")
    assert (await redis_cache.increment("auth:a", 60))[0] == 1


@pytest.mark.asyncio
async def test_gate_over_redis(redis_cache):
    gate = AdmissionGate(redis_cache, window_seconds=60, max_attempts=3)
    for _ in range(3):
        await gate.admit("9.9.9.9")
    with pytest.raises(RateLimited):
        await gate.admit("9.9.9.9")


@pytest.mark.asyncio
async def test_oauth_state_pops_once(redis_cache):
    await redis_cache.put_oauth_state("s1", "github", 600)
    assert await redis_cache.pop_oauth_state("s1") == "github"
    assert await redis_cache.pop_oauth_state("s1") is None
    assert await redis_cache.pop_oauth_state("never-issued") is None


@pytest.mark.asyncio
async def test_connection_failure_raises_cache_error():
    server = FakeServer()
    server.connected = False
    cache = RedisCache(FakeRedis(server=server, decode_responses=True))
    with pytest.raises(CacheError):
        await cache.increment("auth:a", 60)
    with pytest.raises(CacheError):
        await cache.ping()
