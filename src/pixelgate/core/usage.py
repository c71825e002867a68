"""
Write-throttled "last used" tracking.

Gateway instances are short-lived and share no memory, so batching in process
is not an option. Instead each (API key, project) pair takes a Redis
SET NX EX lock; only the winner writes to the database, bounding writes to one
per key per throttle window no matter how many instances are serving traffic.
"""
from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone

from redis.asyncio import Redis
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from pixelgate.core.background import BackgroundRunner
from pixelgate.models.api_key import ApiKey
from pixelgate.models.project import Project

logger = logging.getLogger("pixelgate.usage")

THROTTLE_SECONDS = 30
APIKEY_USAGE_PREFIX = "usage:apikey:"
PROJECT_USAGE_PREFIX = "usage:project:"


class UsageRecorder:
    def __init__(
        self,
        redis: Redis,
        session_factory: async_sessionmaker[AsyncSession],
        runner: BackgroundRunner,
        throttle_seconds: int = THROTTLE_SECONDS,
    ) -> None:
        self._redis = redis
        self._session_factory = session_factory
        self._runner = runner
        self.throttle_seconds = throttle_seconds

    def record_usage(self, key_id: uuid.UUID | None, project_id: uuid.UUID) -> None:
        """Fire-and-forget; returns before anything touches Redis or the database."""
        now = datetime.now(timezone.utc)
        if key_id is not None:
            self._runner.submit(self.touch_api_key(key_id, now), name=f"usage-apikey-{key_id}")
        self._runner.submit(self.touch_project(project_id, now), name=f"usage-project-{project_id}")

    async def _acquire(self, lock_key: str) -> bool:
        won = await self._redis.set(lock_key, "1", nx=True, ex=self.throttle_seconds)
        return bool(won)

    async def touch_api_key(self, key_id: uuid.UUID, now: datetime) -> bool:
        try:
            if not await self._acquire(f"{APIKEY_USAGE_PREFIX}{key_id}"):
                return False
            async with self._session_factory() as session:
                await session.execute(update(ApiKey).where(ApiKey.id == key_id).values(last_used_at=now))
                await session.commit()
            return True
        except Exception:
            logger.exception("api_key_last_used_update_failed", extra={"api_key_id": str(key_id)})
            return False

    async def touch_project(self, project_id: uuid.UUID, now: datetime) -> bool:
        try:
            if not await self._acquire(f"{PROJECT_USAGE_PREFIX}{project_id}"):
                return False
            async with self._session_factory() as session:
                await session.execute(
                    update(Project).where(Project.id == project_id).values(last_activity_at=now)
                )
                await session.commit()
            return True
        except Exception:
            logger.exception("project_last_activity_update_failed", extra={"project_id": str(project_id)})
            return False
