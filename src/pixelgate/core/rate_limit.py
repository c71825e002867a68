"""
Two-tier sliding-window rate limiting on Redis.

Each (scope, window) pair is a sorted set of request timestamps. A check trims
entries older than the window, records the request, and counts, all inside
one MULTI/EXEC so concurrent gateway instances see the same counters. A denied
request removes its entry from every window it was recorded in, so rejected
traffic does not eat quota.
"""
from __future__ import annotations

import logging
import math
import time
import uuid
from dataclasses import dataclass
from typing import Callable, Literal, Union

from redis.asyncio import Redis
from redis.exceptions import RedisError

logger = logging.getLogger("pixelgate.rate_limit")

MINUTE_SECONDS = 60
DAY_SECONDS = 24 * 60 * 60


@dataclass(frozen=True)
class RateLimitAllowed:
    remaining: int
    allowed: Literal[True] = True


@dataclass(frozen=True)
class RateLimitDenied:
    reason: Literal["minute", "day"]
    retry_after_seconds: int
    limit: int
    remaining: int
    allowed: Literal[False] = False


RateLimitResult = Union[RateLimitAllowed, RateLimitDenied]


@dataclass(frozen=True)
class _WindowResult:
    allowed: bool
    remaining: int
    reset_ms: int
    key: str
    member: str


class RateLimiter:
    def __init__(
        self,
        redis: Redis,
        clock: Callable[[], float] = time.time,
        prefix: str = "ratelimit:ipx",
    ) -> None:
        self._redis = redis
        self._clock = clock
        self.prefix = prefix

    def _key(self, window_name: str, scope_key: str) -> str:
        return f"{self.prefix}:{window_name}:{scope_key}"

    async def _hit(self, scope_key: str, window_name: str, window_seconds: int, limit: int) -> _WindowResult:
        now_ms = int(self._clock() * 1000)
        window_ms = window_seconds * 1000
        key = self._key(window_name, scope_key)
        member = f"{now_ms}:{uuid.uuid4().hex}"

        pipe = self._redis.pipeline(transaction=True)
        pipe.zremrangebyscore(key, 0, now_ms - window_ms)
        pipe.zadd(key, {member: now_ms})
        pipe.zcard(key)
        pipe.zrange(key, 0, 0, withscores=True)
        pipe.pexpire(key, window_ms)
        _, _, count, oldest, _ = await pipe.execute()

        oldest_ms = int(oldest[0][1]) if oldest else now_ms
        reset_ms = oldest_ms + window_ms

        if count > limit:
            await self._redis.zrem(key, member)
            return _WindowResult(allowed=False, remaining=0, reset_ms=reset_ms, key=key, member=member)

        return _WindowResult(
            allowed=True, remaining=max(0, limit - count), reset_ms=reset_ms, key=key, member=member
        )

    def _retry_after(self, reset_ms: int) -> int:
        now_ms = self._clock() * 1000
        return max(1, math.ceil((reset_ms - now_ms) / 1000))

    async def check(self, scope_key: str, per_minute_limit: int, per_day_limit: int) -> RateLimitResult:
        """
        Admit or deny one request for `scope_key`.

        The minute window is checked first; the day window is only consulted
        when the minute window admitted the request. Redis failures fail open.
        """
        try:
            minute = await self._hit(scope_key, "minute", MINUTE_SECONDS, per_minute_limit)
            if not minute.allowed:
                return RateLimitDenied(
                    reason="minute",
                    retry_after_seconds=self._retry_after(minute.reset_ms),
                    limit=per_minute_limit,
                    remaining=minute.remaining,
                )

            day = await self._hit(scope_key, "day", DAY_SECONDS, per_day_limit)
            if not day.allowed:
                # release the minute slot taken above
                await self._redis.zrem(minute.key, minute.member)
                return RateLimitDenied(
                    reason="day",
                    retry_after_seconds=self._retry_after(day.reset_ms),
                    limit=per_day_limit,
                    remaining=day.remaining,
                )
        except RedisError:
            logger.warning("rate_limiter_unavailable_failing_open", exc_info=True, extra={"scope": scope_key})
            return RateLimitAllowed(remaining=0)

        return RateLimitAllowed(remaining=min(minute.remaining, day.remaining))

    async def reset(self, scope_key: str) -> None:
        await self._redis.delete(self._key("minute", scope_key), self._key("day", scope_key))
