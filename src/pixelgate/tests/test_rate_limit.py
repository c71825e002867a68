import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from pixelgate.core.rate_limit import RateLimitAllowed, RateLimitDenied, RateLimiter

pytestmark = pytest.mark.asyncio


@pytest.fixture
def limiter(redis, clock):
    return RateLimiter(redis, clock=clock)


async def test_nth_call_allowed_next_denied_by_minute(limiter):
    n = 5
    for i in range(n):
        result = await limiter.check("key-1", n, 1000)
        assert isinstance(result, RateLimitAllowed), i

    denied = await limiter.check("key-1", n, 1000)
    assert isinstance(denied, RateLimitDenied)
    assert denied.reason == "minute"
    assert denied.limit == n
    assert denied.remaining == 0
    assert 1 <= denied.retry_after_seconds <= 60


async def test_remaining_is_min_of_both_windows(limiter):
    result = await limiter.check("key-1", 10, 3)
    assert result.remaining == 2
    result = await limiter.check("key-1", 2, 100)
    assert result.remaining == 0


async def test_day_window_denies_after_minute_passes(limiter, clock):
    for _ in range(3):
        assert (await limiter.check("key-1", 100, 3)).allowed
        clock.advance(61)

    denied = await limiter.check("key-1", 100, 3)
    assert denied.reason == "day"
    assert denied.limit == 3
    # oldest hit was ~183s ago, so the day window frees up in a bit under 24h
    assert 24 * 3600 - 200 <= denied.retry_after_seconds <= 24 * 3600


async def test_window_slides(limiter, clock):
    for _ in range(2):
        await limiter.check("key-1", 2, 1000)
    clock.advance(30)
    assert not (await limiter.check("key-1", 2, 1000)).allowed

    clock.advance(31)
    assert (await limiter.check("key-1", 2, 1000)).allowed


async def test_retry_after_tracks_oldest_entry(limiter, clock):
    await limiter.check("key-1", 1, 1000)
    clock.advance(45)
    denied = await limiter.check("key-1", 1, 1000)
    assert denied.retry_after_seconds == 15


async def test_retry_after_is_at_least_one_second(limiter, clock):
    await limiter.check("key-1", 1, 1000)
    clock.advance(59.9)
    denied = await limiter.check("key-1", 1, 1000)
    assert denied.retry_after_seconds == 1


async def test_denied_requests_do_not_consume_quota(limiter, clock, redis):
    await limiter.check("key-1", 1, 1000)
    for _ in range(10):
        await limiter.check("key-1", 1, 1000)
    assert await redis.zcard("ratelimit:ipx:minute:key-1") == 1
    # denied by the minute window, so the day window never saw them
    assert await redis.zcard("ratelimit:ipx:day:key-1") == 1


async def test_day_denials_release_their_minute_slot(limiter, redis):
    assert (await limiter.check("key-1", 100, 1)).allowed
    for _ in range(5):
        denied = await limiter.check("key-1", 100, 1)
        assert denied.reason == "day"

    assert await redis.zcard("ratelimit:ipx:minute:key-1") == 1
    assert await redis.zcard("ratelimit:ipx:day:key-1") == 1


async def test_scopes_are_independent(limiter):
    await limiter.check("key-1", 1, 1000)
    assert (await limiter.check("key-2", 1, 1000)).allowed
    assert not (await limiter.check("key-1", 1, 1000)).allowed


async def test_reset_clears_both_windows(limiter):
    await limiter.check("key-1", 1, 1)
    assert not (await limiter.check("key-1", 1, 1)).allowed

    await limiter.reset("key-1")
    assert (await limiter.check("key-1", 1, 1)).allowed


async def test_shared_store_across_instances(redis, clock):
    a = RateLimiter(redis, clock=clock)
    b = RateLimiter(redis, clock=clock)
    await a.check("key-1", 2, 1000)
    await b.check("key-1", 2, 1000)
    assert not (await a.check("key-1", 2, 1000)).allowed


class BrokenRedis:
    def pipeline(self, transaction=True):
        raise RedisConnectionError("redis down")


async def test_fails_open_when_redis_is_down(caplog):
    limiter = RateLimiter(BrokenRedis())
    result = await limiter.check("key-1", 1, 1)
    assert result == RateLimitAllowed(remaining=0)
    assert "rate_limiter_unavailable_failing_open" in caplog.text
