"""
Admission pipeline for optimize requests.

    parse path -> resolve project -> referer / source domain
      -> signature (optional) -> rate limit -> image processor
      -> usage + request log (detached)

Any rejection raises a GatewayError and skips every later stage; nothing is
sent to the image processor unless all admission checks passed.
"""
from __future__ import annotations

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Mapping

from pixelgate.core.background import BackgroundRunner
from pixelgate.core.config_cache import ConfigCache
from pixelgate.core.config_store import ApiKeyConfig, ProjectConfig
from pixelgate.core.domains import is_allowed, is_url_allowed
from pixelgate.core.errors import (
    ConfigNotFound,
    ExpiredSignature,
    ForbiddenDomain,
    InvalidSignature,
    RateLimited,
    UpstreamProcessingFailure,
)
from pixelgate.core.operations import (
    ensure_protocol,
    normalize_image_url,
    parse_image_path,
    parse_operations,
    resolve_content_type,
)
from pixelgate.core.processor import ImageProcessor, ProcessorError
from pixelgate.core.rate_limit import RateLimiter
from pixelgate.core.request_log import RequestLogData, RequestLogger, RequestStatus
from pixelgate.core.signing import is_expired, parse_signature_params, verify
from pixelgate.core.usage import UsageRecorder

logger = logging.getLogger("pixelgate.gateway")

CACHE_CONTROL = "public, max-age=31536000, immutable"


@dataclass(frozen=True)
class OptimizeRequest:
    project_slug: str
    # path segments after the tenant prefix, still percent-encoded
    segments: list[str]
    query: Mapping[str, str] = field(default_factory=dict)
    referer: str | None = None
    team_slug: str | None = None


@dataclass(frozen=True)
class OptimizedImage:
    data: bytes
    format: str
    processing_time_ms: int
    rate_limit_remaining: int

    @property
    def content_type(self) -> str:
        return resolve_content_type(self.format)

    def headers(self) -> dict[str, str]:
        return {
            "Content-Type": self.content_type,
            "Cache-Control": CACHE_CONTROL,
            "X-Processing-Time": f"{self.processing_time_ms}ms",
            "X-RateLimit-Remaining": str(self.rate_limit_remaining),
        }


def _as_utc(value: datetime) -> datetime:
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


class Gateway:
    def __init__(
        self,
        config_cache: ConfigCache,
        rate_limiter: RateLimiter,
        usage_recorder: UsageRecorder,
        request_logger: RequestLogger,
        processor: ImageProcessor,
        runner: BackgroundRunner,
        *,
        require_signature: bool = True,
        default_per_minute: int = 60,
        default_per_day: int = 10_000,
        processor_timeout: float | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.config_cache = config_cache
        self.rate_limiter = rate_limiter
        self.usage_recorder = usage_recorder
        self.request_logger = request_logger
        self.processor = processor
        self.runner = runner
        self.require_signature = require_signature
        self.default_per_minute = default_per_minute
        self.default_per_day = default_per_day
        self.processor_timeout = processor_timeout
        self._clock = clock

    def _log_request(self, project_id: uuid.UUID, source_url: str, status: RequestStatus, **sizes) -> None:
        data = RequestLogData(source_url=source_url, status=status, **sizes)
        self.runner.submit(self.request_logger.log(project_id, data), name=f"request-log-{status}")

    async def _resolve_project(self, req: OptimizeRequest) -> ProjectConfig:
        if req.team_slug is not None:
            project = await self.config_cache.get_project_by_team(req.team_slug, req.project_slug)
        else:
            project = await self.config_cache.get_project(req.project_slug)
        if project is None:
            raise ConfigNotFound("Project not found")
        return project

    async def _verify_signature(self, project: ProjectConfig, canonical: str, query: Mapping[str, str]) -> ApiKeyConfig:
        params = parse_signature_params(query)
        if params is None:
            raise InvalidSignature("Missing signature parameters")

        api_key = await self.config_cache.get_api_key(params.public_key)
        if api_key is None or api_key.project_id != project.id or api_key.revoked_at is not None:
            raise InvalidSignature("Invalid API key")

        now = self._clock()
        if api_key.expires_at is not None and _as_utc(api_key.expires_at).timestamp() <= now:
            raise InvalidSignature("API key expired")

        if is_expired(params.expires_at, now=now):
            raise ExpiredSignature("Signature expired")

        if not verify(api_key.secret_key, canonical, params.signature, params.expires_at, now=now):
            raise InvalidSignature("Invalid signature")

        return api_key

    def _quota(self, project: ProjectConfig, api_key: ApiKeyConfig | None) -> tuple[str, int, int]:
        if api_key is None:
            return f"project:{project.id}", self.default_per_minute, self.default_per_day
        return (
            str(api_key.id),
            api_key.rate_limit_per_minute or self.default_per_minute,
            api_key.rate_limit_per_day or self.default_per_day,
        )

    async def handle(self, req: OptimizeRequest) -> OptimizedImage:
        start = time.perf_counter()

        parsed = parse_image_path(req.segments)
        project = await self._resolve_project(req)

        if not is_url_allowed(req.referer, project.allowed_referer_domains):
            self._log_request(project.id, parsed.image_path, "forbidden")
            raise ForbiddenDomain("Forbidden: Invalid referer")

        image_url, source_host = normalize_image_url(ensure_protocol(parsed.image_path))
        if not is_allowed(source_host, project.allowed_source_domains):
            self._log_request(project.id, image_url, "forbidden")
            raise ForbiddenDomain("Forbidden: Source domain not allowed")

        api_key = None
        if self.require_signature:
            api_key = await self._verify_signature(project, parsed.canonical, req.query)

        scope, per_minute, per_day = self._quota(project, api_key)
        verdict = await self.rate_limiter.check(scope, per_minute, per_day)
        if not verdict.allowed:
            self._log_request(project.id, image_url, "rate_limited")
            logger.info(
                "rate_limited",
                extra={"project_id": str(project.id), "reason": verdict.reason, "retry_after": verdict.retry_after_seconds},
            )
            raise RateLimited(
                reason=verdict.reason,
                retry_after_seconds=verdict.retry_after_seconds,
                limit=verdict.limit,
                remaining=verdict.remaining,
            )

        operations = parse_operations(parsed.operations)
        try:
            processed = await asyncio.wait_for(
                self.processor.process(image_url, operations), timeout=self.processor_timeout
            )
        except ProcessorError as exc:
            details = str(exc)
        except asyncio.TimeoutError:
            details = "Image processing timed out"
        except Exception:
            logger.exception("image_processing_crashed", extra={"project_id": str(project.id)})
            details = "Internal processing error"
        else:
            details = None

        if details is not None:
            logger.error(
                "image_processing_failed",
                extra={"project_id": str(project.id), "image_path": parsed.image_path, "resolved_path": image_url},
            )
            self._log_request(project.id, image_url, "error")
            raise UpstreamProcessingFailure(details, image_path=parsed.image_path, resolved_path=image_url)

        elapsed_ms = int((time.perf_counter() - start) * 1000)

        self.usage_recorder.record_usage(api_key.id if api_key else None, project.id)
        self._log_request(
            project.id,
            image_url,
            "success",
            processing_time_ms=elapsed_ms,
            original_size=processed.original_size,
            optimized_size=len(processed.data),
        )

        return OptimizedImage(
            data=processed.data,
            format=processed.format,
            processing_time_ms=elapsed_ms,
            rate_limit_remaining=verdict.remaining,
        )
