import logging
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from redis.asyncio import Redis

from pixelgate.config import settings
from pixelgate.logging import setup_logging
from pixelgate.core.errors import GatewayError
from pixelgate.core.gateway import Gateway
from pixelgate.core.request_id import RequestIdMiddleware
from pixelgate.api.health import router as health_router
from pixelgate.api.admin import router as admin_router
from pixelgate.api.optimize import router as optimize_router
from pixelgate.deps.db import SessionLocal
from pixelgate.deps.gateway import build_gateway
from pixelgate.deps.redis import close_redis, create_redis


setup_logging(settings.log_level)
logger = logging.getLogger("pixelgate")


def create_app(gateway: Gateway | None = None, redis: Redis | None = None) -> FastAPI:
    app = FastAPI(title="Pixelgate", version="0.1.0")

    owns_redis = redis is None
    app.state.redis = redis if redis is not None else create_redis(settings)
    app.state.gateway = gateway or build_gateway(settings, app.state.redis, SessionLocal)

    app.add_middleware(RequestIdMiddleware)
    app.include_router(health_router)
    app.include_router(admin_router)
    app.include_router(optimize_router)

    @app.exception_handler(GatewayError)
    async def gateway_error_handler(request: Request, exc: GatewayError):
        logger.info(
            "request_rejected",
            extra={
                "request_id": getattr(request.state, "request_id", None),
                "kind": exc.kind,
                "status_code": exc.status_code,
            },
        )
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=exc.headers())

    @app.on_event("shutdown")
    async def shutdown():
        # let detached usage / request-log writes finish before the pools close
        await app.state.gateway.runner.drain()
        aclose = getattr(app.state.gateway.processor, "aclose", None)
        if aclose is not None:
            await aclose()
        if owns_redis:
            await close_redis(app.state.redis)

    @app.middleware("http")
    async def log_completed_requests(request: Request, call_next):
        response = await call_next(request)

        request_id = getattr(request.state, "request_id", None)
        if request_id:
            logger.info(
                "request_completed",
                extra={"request_id": request_id, "path": request.url.path, "status_code": response.status_code},
            )

        return response

    return app


app = create_app()
