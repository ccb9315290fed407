import os
import time

import fakeredis.aioredis
import pytest
import pytest_asyncio
import redis.asyncio as redis

from app.core.config import settings
from app.core.errors import Throttled
from app.services.rate_limit import SlidingWindowRateLimiter, enforce_bid_rate_limit


class StepClock:
    def __init__(self, start: float):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest_asyncio.fixture
async def redis_client():
    # a real server when REDIS_URL_TEST is set, otherwise an in-process fake
    url = os.getenv("REDIS_URL_TEST")
    client = redis.from_url(url, decode_responses=True) if url else fakeredis.aioredis.FakeRedis(decode_responses=True)
    try:
        await client.flushdb()
        yield client
    finally:
        await client.aclose()


@pytest.fixture
def clock():
    return StepClock(float(int(time.time())))


@pytest.fixture
def limiter(redis_client, clock):
    return SlidingWindowRateLimiter(client=redis_client, clock=clock)


@pytest.mark.asyncio
async def test_sixth_attempt_in_window_is_refused(limiter, redis_client, clock):
    results = []
    for _ in range(5):
        results.append(await limiter.allow(key="bid:u1", limit=5, window_seconds=60))
        clock.advance(1)

    assert all(r.allowed for r in results)
    assert [r.remaining for r in results] == [4, 3, 2, 1, 0]

    refused = await limiter.allow(key="bid:u1", limit=5, window_seconds=60)
    assert refused.allowed is False
    assert refused.remaining == 0
    # the refused attempt is not left behind in the window
    assert await redis_client.zcard("rl:bid:u1") == 5


@pytest.mark.asyncio
async def test_refused_attempts_do_not_extend_the_block(limiter, redis_client, clock):
    for _ in range(5):
        await limiter.allow(key="bid:u2", limit=5, window_seconds=60)

    for _ in range(3):
        clock.advance(10)
        assert (await limiter.allow(key="bid:u2", limit=5, window_seconds=60)).allowed is False
    assert await redis_client.zcard("rl:bid:u2") == 5

    # the first five age out 60s after they were made, regardless of the refusals
    clock.advance(31)
    assert (await limiter.allow(key="bid:u2", limit=5, window_seconds=60)).allowed is True


@pytest.mark.asyncio
async def test_members_older_than_window_are_trimmed(limiter, redis_client, clock):
    for _ in range(5):
        await limiter.allow(key="bid:u3", limit=5, window_seconds=60)

    clock.advance(61)
    res = await limiter.allow(key="bid:u3", limit=5, window_seconds=60)
    assert res.allowed is True
    assert res.remaining == 4
    assert await redis_client.zcard("rl:bid:u3") == 1


@pytest.mark.asyncio
async def test_reset_seconds_counts_down_from_oldest_attempt(limiter, clock):
    await limiter.allow(key="bid:u4", limit=2, window_seconds=60)
    clock.advance(10)
    await limiter.allow(key="bid:u4", limit=2, window_seconds=60)
    clock.advance(20)

    refused = await limiter.allow(key="bid:u4", limit=2, window_seconds=60)
    assert refused.allowed is False
    assert refused.reset_seconds == 30


@pytest.mark.asyncio
async def test_keys_are_counted_separately(limiter):
    for _ in range(2):
        await limiter.allow(key="bid:a", limit=2, window_seconds=60)
    assert (await limiter.allow(key="bid:a", limit=2, window_seconds=60)).allowed is False
    assert (await limiter.allow(key="bid:b", limit=2, window_seconds=60)).allowed is True


@pytest.mark.asyncio
async def test_enforce_raises_throttled_with_wait_time(limiter, monkeypatch):
    monkeypatch.setattr(settings, "bid_rate_limit", 1)
    monkeypatch.setattr(settings, "bid_rate_window_seconds", 60)

    await enforce_bid_rate_limit(limiter, "u5")
    with pytest.raises(Throttled) as exc:
        await enforce_bid_rate_limit(limiter, "u5")
    assert "60s" in exc.value.detail["message"]
