from __future__ import annotations

from typing import Any

PATH_USAGE = "/v1/{projectSlug}/{operations}/{imageUrl}"
PATH_EXAMPLES = [
    "/v1/my-blog/w_800,f_webp/images.example.com/photo.jpg",
    "/v1/my-blog/_/cdn.mysite.com/banner.png",
]


class GatewayError(Exception):
    """
    A rejection of an optimize request.

    Every subclass maps to exactly one HTTP status. `extra` is merged into the
    JSON error body, so it must never contain secrets or signatures.
    """

    status_code: int = 500
    kind: str = "gateway_error"

    def __init__(self, detail: str, **extra: Any) -> None:
        super().__init__(detail)
        self.detail = detail
        self.extra = extra

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"error": self.detail, "kind": self.kind}
        body.update({k: v for k, v in self.extra.items() if v is not None})
        return body

    def headers(self) -> dict[str, str]:
        return {}


class MalformedPath(GatewayError):
    status_code = 400
    kind = "malformed_path"

    def __init__(self, detail: str = "Invalid path format") -> None:
        super().__init__(detail, usage=PATH_USAGE, examples=PATH_EXAMPLES)


class InvalidImageUrl(GatewayError):
    status_code = 400
    kind = "invalid_image_url"


class ForbiddenDomain(GatewayError):
    status_code = 403
    kind = "forbidden_domain"


class InvalidSignature(GatewayError):
    status_code = 401
    kind = "invalid_signature"


class ExpiredSignature(GatewayError):
    status_code = 403
    kind = "expired_signature"


class ConfigNotFound(GatewayError):
    status_code = 404
    kind = "config_not_found"


class ConfigStoreUnavailable(GatewayError):
    status_code = 503
    kind = "config_store_unavailable"


class RateLimited(GatewayError):
    status_code = 429
    kind = "rate_limited"

    def __init__(self, reason: str, retry_after_seconds: int, limit: int, remaining: int) -> None:
        super().__init__(
            f"Rate limit exceeded ({reason})",
            reason=reason,
            retry_after_seconds=retry_after_seconds,
            limit=limit,
            remaining=remaining,
        )
        self.reason = reason
        self.retry_after_seconds = retry_after_seconds
        self.limit = limit
        self.remaining = remaining

    def headers(self) -> dict[str, str]:
        return {
            "Retry-After": str(self.retry_after_seconds),
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
        }


class UpstreamProcessingFailure(GatewayError):
    status_code = 500
    kind = "upstream_processing_failure"

    def __init__(self, details: str, image_path: str | None = None, resolved_path: str | None = None) -> None:
        super().__init__(
            "Image processing failed",
            details=details,
            imagePath=image_path,
            resolvedPath=resolved_path if resolved_path != image_path else None,
        )
