"""Shared fixtures: file-backed SQLite, fakeredis, a fake image engine."""

import uuid
from collections.abc import AsyncGenerator
from datetime import datetime, timezone

import fakeredis
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from pixelgate.config import settings
from pixelgate.core.background import BackgroundRunner
from pixelgate.core.config_cache import ConfigCache
from pixelgate.core.config_store import SqlConfigStore
from pixelgate.core.gateway import Gateway
from pixelgate.core.processor import ProcessedImage, ProcessorError
from pixelgate.core.rate_limit import RateLimiter
from pixelgate.core.request_log import RequestLogger
from pixelgate.core.usage import UsageRecorder
from pixelgate.deps.db import get_db
from pixelgate.main import create_app
from pixelgate.models.api_key import ApiKey
from pixelgate.models.base import Base
from pixelgate.models.project import Project
from pixelgate.models.team import Team

ADMIN_TOKEN = "test-admin-token"


class FakeClock:
    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeProcessor:
    """Stands in for the external image engine."""

    def __init__(self, data: bytes = b"\x89optimized-bytes", fmt: str = "webp", fail: Exception | None = None):
        self.data = data
        self.fmt = fmt
        self.fail = fail
        self.calls: list[tuple[str, dict]] = []

    async def process(self, source, operations):
        self.calls.append((source, operations))
        if self.fail is not None:
            raise self.fail
        fmt = operations.get("f") if isinstance(operations.get("f"), str) else self.fmt
        return ProcessedImage(data=self.data, format=fmt, original_size=4096)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest_asyncio.fixture
async def db_engine(tmp_path):
    # a file rather than :memory: so concurrent sessions see the same database
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'pixelgate.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind=db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def redis():
    r = fakeredis.FakeAsyncRedis(decode_responses=True)
    yield r
    await r.flushall()
    await r.aclose()


@pytest.fixture
def runner() -> BackgroundRunner:
    return BackgroundRunner()


@pytest.fixture
def processor() -> FakeProcessor:
    return FakeProcessor()


async def seed_project(
    session_factory,
    slug: str = "my-blog",
    team_slug: str = "acme",
    allowed_source_domains: list[str] | None = None,
    allowed_referer_domains: list[str] | None = None,
) -> Project:
    now = datetime.now(timezone.utc)
    async with session_factory() as session:
        team = Team(slug=team_slug, name=team_slug.title(), created_at=now)
        session.add(team)
        await session.flush()
        project = Project(
            team_id=team.id,
            slug=slug,
            name=slug,
            allowed_source_domains=allowed_source_domains,
            allowed_referer_domains=allowed_referer_domains,
            created_at=now,
        )
        session.add(project)
        await session.commit()
        return project


async def seed_api_key(
    session_factory,
    project_id: uuid.UUID,
    per_minute: int | None = 60,
    per_day: int | None = 10_000,
    revoked: bool = False,
    expires_at: datetime | None = None,
) -> ApiKey:
    now = datetime.now(timezone.utc)
    suffix = uuid.uuid4().hex[:22]
    async with session_factory() as session:
        api_key = ApiKey(
            project_id=project_id,
            name="test key",
            public_key=f"pk_{suffix}",
            key_prefix=f"pk_{suffix}"[:12],
            secret_key=f"sk_{uuid.uuid4().hex}",
            rate_limit_per_minute=per_minute,
            rate_limit_per_day=per_day,
            expires_at=expires_at,
            revoked_at=now if revoked else None,
            created_at=now,
        )
        session.add(api_key)
        await session.commit()
        return api_key


def make_gateway(session_factory, redis, runner, processor, require_signature=False, **kwargs) -> Gateway:
    return Gateway(
        config_cache=ConfigCache(SqlConfigStore(session_factory), ttl_seconds=60),
        rate_limiter=RateLimiter(redis),
        usage_recorder=UsageRecorder(redis, session_factory, runner),
        # cleanup disabled unless a test asks for it
        request_logger=RequestLogger(session_factory, cleanup_probability=0.0),
        processor=processor,
        runner=runner,
        require_signature=require_signature,
        **kwargs,
    )


@pytest.fixture
def gateway(session_factory, redis, runner, processor) -> Gateway:
    return make_gateway(session_factory, redis, runner, processor)


@pytest.fixture
def signed_gateway(session_factory, redis, runner, processor) -> Gateway:
    return make_gateway(session_factory, redis, runner, processor, require_signature=True)


def _client_for(gateway: Gateway, redis, session_factory):
    app = create_app(gateway=gateway, redis=redis)

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


@pytest_asyncio.fixture
async def client(gateway, redis, session_factory) -> AsyncGenerator[AsyncClient, None]:
    async with _client_for(gateway, redis, session_factory) as ac:
        yield ac


@pytest_asyncio.fixture
async def signed_client(signed_gateway, redis, session_factory) -> AsyncGenerator[AsyncClient, None]:
    async with _client_for(signed_gateway, redis, session_factory) as ac:
        yield ac


@pytest.fixture
def admin_headers(monkeypatch) -> dict:
    monkeypatch.setattr(settings, "admin_token", ADMIN_TOKEN)
    return {"X-Admin-Token": ADMIN_TOKEN}
