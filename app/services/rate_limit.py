from __future__ import annotations
import time
import uuid
from dataclasses import dataclass
from typing import Callable

import redis.asyncio as redis

from app.core.config import settings
from app.core.errors import Throttled

@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    remaining: int
    reset_seconds: int

class SlidingWindowRateLimiter:
    """
    Per-key rolling window kept in Redis so every API instance shares it.

    Each attempt is a sorted-set member scored by its timestamp; members older
    than the window are trimmed before counting.
    """

    def __init__(
        self,
        redis_url: str | None = None,
        *,
        client: redis.Redis | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self.r = client if client is not None else redis.from_url(redis_url, decode_responses=True)
        self._clock = clock

    async def allow(self, *, key: str, limit: int, window_seconds: int) -> RateLimitResult:
        now = self._clock()
        rkey = f"rl:{key}"
        member = f"{now:.6f}:{uuid.uuid4().hex[:8]}"

        async with self.r.pipeline(transaction=True) as pipe:
            pipe.zremrangebyscore(rkey, 0, now - window_seconds)
            pipe.zadd(rkey, {member: now})
            pipe.zcard(rkey)
            pipe.zrange(rkey, 0, 0, withscores=True)
            pipe.expire(rkey, window_seconds)
            _, _, count, oldest, _ = await pipe.execute()

        if count > limit:
            # rejected attempts do not consume quota
            await self.r.zrem(rkey, member)

        oldest_ts = oldest[0][1] if oldest else now
        reset = max(0, int(oldest_ts + window_seconds - now))
        remaining = max(0, limit - count)
        return RateLimitResult(allowed=count <= limit, remaining=remaining, reset_seconds=reset)

    async def aclose(self) -> None:
        await self.r.aclose()


_bid_limiter: SlidingWindowRateLimiter | None = None


def get_bid_rate_limiter() -> SlidingWindowRateLimiter:
    global _bid_limiter
    if _bid_limiter is None:
        _bid_limiter = SlidingWindowRateLimiter(settings.redis_url)
    return _bid_limiter


async def enforce_bid_rate_limit(limiter: SlidingWindowRateLimiter, user_id: str) -> None:
    res = await limiter.allow(
        key=f"bid:{user_id}",
        limit=settings.bid_rate_limit,
        window_seconds=settings.bid_rate_window_seconds,
    )
    if not res.allowed:
        raise Throttled(f"Too many bids. Try again in {res.reset_seconds}s.")
