import logging
import random
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Literal
from urllib.parse import urlsplit, urlunsplit

from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from pixelgate.models.request_log import RequestLog

logger = logging.getLogger("pixelgate.request_log")

RETENTION_DAYS = 30
CLEANUP_PROBABILITY = 0.01

RequestStatus = Literal["success", "error", "forbidden", "rate_limited"]


@dataclass(frozen=True)
class RequestLogData:
    source_url: str
    status: RequestStatus
    processing_time_ms: int | None = None
    original_size: int | None = None
    optimized_size: int | None = None


def sanitize_url(url: str) -> str:
    """Drop query string and fragment so signed-URL params never reach the logs."""
    try:
        parts = urlsplit(url)
        if parts.scheme and parts.netloc:
            return urlunsplit((parts.scheme, parts.netloc, parts.path, "", ""))
    except ValueError:
        pass
    return url.split("?", 1)[0].split("#", 1)[0]


class RequestLogger:
    """
    Audit trail of optimize requests.

    Retention is enforced by sampling: after roughly one write in
    1 / cleanup_probability the logger deletes rows older than the retention
    window, so no scheduled job is needed.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        retention_days: int = RETENTION_DAYS,
        cleanup_probability: float = CLEANUP_PROBABILITY,
        rng: Callable[[], float] = random.random,
    ) -> None:
        self._session_factory = session_factory
        self.retention_days = retention_days
        self.cleanup_probability = cleanup_probability
        self._rng = rng

    async def log(self, project_id: uuid.UUID, data: RequestLogData) -> None:
        try:
            async with self._session_factory() as session:
                session.add(
                    RequestLog(
                        project_id=project_id,
                        source_url=sanitize_url(data.source_url),
                        status=data.status,
                        processing_time_ms=data.processing_time_ms,
                        original_size=data.original_size,
                        optimized_size=data.optimized_size,
                        created_at=datetime.now(timezone.utc),
                    )
                )
                await session.commit()
        except Exception:
            # never fail the image request because of the audit trail
            logger.exception("request_log_write_failed", extra={"project_id": str(project_id)})
            return

        if self._rng() < self.cleanup_probability:
            await self.cleanup()

    async def cleanup(self) -> int:
        cutoff = datetime.now(timezone.utc) - timedelta(days=self.retention_days)
        try:
            async with self._session_factory() as session:
                res = await session.execute(delete(RequestLog).where(RequestLog.created_at < cutoff))
                await session.commit()
        except Exception:
            logger.exception("request_log_cleanup_failed")
            return 0

        deleted = res.rowcount or 0
        logger.info("request_log_cleanup", extra={"deleted": deleted, "retention_days": self.retention_days})
        return deleted
