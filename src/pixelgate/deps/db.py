from collections.abc import AsyncIterator

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from pixelgate.config import settings

# policy lookups sit on the request path, so connects and queries are bounded
engine: AsyncEngine = create_async_engine(
    settings.postgres_dsn,
    pool_pre_ping=True,
    pool_size=settings.postgres_pool_size,
    connect_args={"timeout": settings.store_timeout_seconds, "command_timeout": settings.store_timeout_seconds},
)

SessionLocal = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


async def get_db() -> AsyncIterator[AsyncSession]:
    async with SessionLocal() as session:
        yield session
