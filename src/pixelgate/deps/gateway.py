from fastapi import Request
from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from pixelgate.config import Settings
from pixelgate.core.background import BackgroundRunner
from pixelgate.core.config_cache import ConfigCache
from pixelgate.core.config_store import SqlConfigStore
from pixelgate.core.gateway import Gateway
from pixelgate.core.processor import HttpImageProcessor, ImageProcessor
from pixelgate.core.rate_limit import RateLimiter
from pixelgate.core.request_log import RequestLogger
from pixelgate.core.usage import UsageRecorder


def build_gateway(
    settings: Settings,
    redis: Redis,
    session_factory: async_sessionmaker[AsyncSession],
    processor: ImageProcessor | None = None,
) -> Gateway:
    runner = BackgroundRunner()
    return Gateway(
        config_cache=ConfigCache(
            SqlConfigStore(session_factory),
            ttl_seconds=settings.config_cache_ttl_seconds,
            timeout=settings.store_timeout_seconds,
        ),
        rate_limiter=RateLimiter(redis),
        usage_recorder=UsageRecorder(
            redis, session_factory, runner, throttle_seconds=settings.usage_throttle_seconds
        ),
        request_logger=RequestLogger(
            session_factory,
            retention_days=settings.request_log_retention_days,
            cleanup_probability=settings.request_log_cleanup_probability,
        ),
        processor=processor or HttpImageProcessor(settings.processor_url, timeout=settings.processor_timeout_seconds),
        runner=runner,
        require_signature=settings.require_signed_urls,
        default_per_minute=settings.default_rate_limit_per_minute,
        default_per_day=settings.default_rate_limit_per_day,
        processor_timeout=settings.processor_timeout_seconds,
    )


def get_gateway(request: Request) -> Gateway:
    return request.app.state.gateway
