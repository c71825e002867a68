import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from redis.exceptions import RedisError
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from pixelgate.deps.db import engine

router = APIRouter()
logger = logging.getLogger("pixelgate.health")


@router.get("/health")
async def health(request: Request):
    checks = {"postgres": "ok", "redis": "ok"}

    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except (SQLAlchemyError, OSError):
        logger.warning("health_postgres_failed", exc_info=True)
        checks["postgres"] = "down"

    # the rate limiter fails open, so a dead Redis degrades rather than kills the gateway
    try:
        await request.app.state.redis.ping()
    except RedisError:
        logger.warning("health_redis_failed", exc_info=True)
        checks["redis"] = "down"

    if checks["postgres"] != "ok":
        return JSONResponse(status_code=503, content={"status": "down", **checks})
    status = "ok" if checks["redis"] == "ok" else "degraded"
    return {"status": status, **checks}
