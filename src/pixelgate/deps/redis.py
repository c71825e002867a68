from redis.asyncio import Redis
from pixelgate.config import Settings


def create_redis(settings: Settings) -> Redis:
    return Redis.from_url(settings.redis_url, decode_responses=True)


async def close_redis(client: Redis) -> None:
    await client.aclose()
