import uuid
from datetime import datetime, timezone, timedelta

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field, field_validator
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from pixelgate.core.gateway import Gateway
from pixelgate.core.keys import generate_key_pair, key_prefix
from pixelgate.deps.admin_auth import require_admin
from pixelgate.deps.db import get_db
from pixelgate.deps.gateway import get_gateway
from pixelgate.models.api_key import ApiKey
from pixelgate.models.project import Project
from pixelgate.models.request_log import RequestLog

router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[Depends(require_admin)])


class ApiKeyCreateIn(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    rate_limit_per_minute: int | None = Field(default=None, ge=1, le=1_000_000)
    rate_limit_per_day: int | None = Field(default=None, ge=1, le=100_000_000)
    expires_at: datetime | None = None


class ApiKeyCreateOut(BaseModel):
    key_id: uuid.UUID
    project_id: uuid.UUID
    key_prefix: str
    public_key: str
    # only ever returned here
    secret_key: str


class ApiKeyLimitsIn(BaseModel):
    rate_limit_per_minute: int = Field(ge=1, le=1_000_000)
    rate_limit_per_day: int = Field(ge=1, le=100_000_000)


class ProjectDomainsIn(BaseModel):
    allowed_source_domains: list[str] | None = None
    allowed_referer_domains: list[str] | None = None

    @field_validator("allowed_source_domains", "allowed_referer_domains")
    @classmethod
    def _normalize(cls, value: list[str] | None) -> list[str] | None:
        if value is None:
            return None
        domains = []
        for raw in value:
            domain = raw.strip().lower().rstrip(".")
            if not domain or "/" in domain or ":" in domain:
                raise ValueError(f"Not a bare hostname: {raw!r}")
            domains.append(domain)
        return domains


async def _get_key(db: AsyncSession, key_id: uuid.UUID) -> ApiKey:
    api_key = await db.get(ApiKey, key_id)
    if not api_key:
        raise HTTPException(status_code=404, detail="Key not found")
    return api_key


@router.post("/projects/{project_id}/keys", response_model=ApiKeyCreateOut)
async def create_api_key(project_id: uuid.UUID, payload: ApiKeyCreateIn, db: AsyncSession = Depends(get_db)):
    now = datetime.now(timezone.utc)

    project = await db.get(Project, project_id)
    if not project:
        raise HTTPException(status_code=404, detail="Project not found")

    public_key, secret_key = generate_key_pair()

    existing = await db.execute(select(ApiKey).where(ApiKey.public_key == public_key))
    if existing.scalar_one_or_none():
        raise HTTPException(status_code=500, detail="Key generation collision")

    api_key = ApiKey(
        project_id=project_id,
        name=payload.name,
        public_key=public_key,
        key_prefix=key_prefix(public_key),
        secret_key=secret_key,
        rate_limit_per_minute=payload.rate_limit_per_minute,
        rate_limit_per_day=payload.rate_limit_per_day,
        expires_at=payload.expires_at,
        created_at=now,
        revoked_at=None,
    )
    db.add(api_key)
    await db.commit()
    await db.refresh(api_key)

    return ApiKeyCreateOut(
        key_id=api_key.id,
        project_id=project_id,
        key_prefix=api_key.key_prefix,
        public_key=public_key,
        secret_key=secret_key,
    )


@router.get("/projects/{project_id}/keys")
async def list_api_keys(project_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    result = await db.execute(select(ApiKey).where(ApiKey.project_id == project_id))
    keys = result.scalars().all()

    return [
        {
            "id": str(k.id),
            "name": k.name,
            "key_prefix": k.key_prefix,
            "created_at": k.created_at,
            "expires_at": k.expires_at,
            "revoked_at": k.revoked_at,
            "last_used_at": k.last_used_at,
            "rate_limit_per_minute": k.rate_limit_per_minute,
            "rate_limit_per_day": k.rate_limit_per_day,
        }
        for k in keys
    ]


@router.post("/keys/{key_id}/revoke")
async def revoke_api_key(
    key_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    gateway: Gateway = Depends(get_gateway),
):
    api_key = await _get_key(db, key_id)

    if api_key.revoked_at:
        return {"status": "already_revoked", "key_id": str(api_key.id)}

    api_key.revoked_at = datetime.now(timezone.utc)
    await db.commit()
    gateway.config_cache.invalidate_api_key(api_key.public_key)
    return {"status": "revoked", "key_id": str(api_key.id)}


@router.post("/keys/{key_id}/limits")
async def set_key_limits(
    key_id: uuid.UUID,
    payload: ApiKeyLimitsIn,
    db: AsyncSession = Depends(get_db),
    gateway: Gateway = Depends(get_gateway),
):
    api_key = await _get_key(db, key_id)

    api_key.rate_limit_per_minute = payload.rate_limit_per_minute
    api_key.rate_limit_per_day = payload.rate_limit_per_day
    await db.commit()
    gateway.config_cache.invalidate_api_key(api_key.public_key)

    return {
        "status": "ok",
        "key_id": str(api_key.id),
        "rate_limit_per_minute": api_key.rate_limit_per_minute,
        "rate_limit_per_day": api_key.rate_limit_per_day,
    }


@router.post("/keys/{key_id}/rate-limit/reset")
async def reset_key_rate_limit(
    key_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    gateway: Gateway = Depends(get_gateway),
):
    api_key = await _get_key(db, key_id)
    await gateway.rate_limiter.reset(str(api_key.id))
    return {"status": "reset", "key_id": str(api_key.id)}


@router.put("/projects/{project_id}/domains")
async def set_project_domains(
    project_id: uuid.UUID,
    payload: ProjectDomainsIn,
    db: AsyncSession = Depends(get_db),
    gateway: Gateway = Depends(get_gateway),
):
    project = await db.get(Project, project_id)
    if not project:
        raise HTTPException(status_code=404, detail="Project not found")

    project.allowed_source_domains = payload.allowed_source_domains
    project.allowed_referer_domains = payload.allowed_referer_domains
    await db.commit()

    # this process sees the change now; other instances within one cache TTL
    gateway.config_cache.invalidate(project.slug)

    return {
        "status": "ok",
        "project_id": str(project.id),
        "allowed_source_domains": project.allowed_source_domains,
        "allowed_referer_domains": project.allowed_referer_domains,
    }


@router.post("/cache/projects/{slug}/invalidate")
async def invalidate_project_cache(slug: str, gateway: Gateway = Depends(get_gateway)):
    gateway.config_cache.invalidate(slug)
    return {"status": "invalidated", "slug": slug}


@router.post("/cache/invalidate-all")
async def invalidate_all_caches(gateway: Gateway = Depends(get_gateway)):
    gateway.config_cache.invalidate_all()
    return {"status": "invalidated"}


def _resolve_timerange(
    from_ts: datetime | None,
    to_ts: datetime | None,
    default_hours: int = 24,
) -> tuple[datetime, datetime]:
    if not to_ts:
        to_ts = datetime.now(timezone.utc)
    if not from_ts:
        from_ts = to_ts - timedelta(hours=default_hours)

    # naive query params are taken as UTC
    if from_ts.tzinfo is None:
        from_ts = from_ts.replace(tzinfo=timezone.utc)
    if to_ts.tzinfo is None:
        to_ts = to_ts.replace(tzinfo=timezone.utc)

    if from_ts > to_ts:
        raise HTTPException(status_code=400, detail="from_ts must be <= to_ts")

    return from_ts, to_ts


@router.get("/projects/{project_id}/requests/summary")
async def request_summary(
    project_id: uuid.UUID,
    from_ts: datetime | None = None,
    to_ts: datetime | None = None,
    db: AsyncSession = Depends(get_db),
):
    from_ts, to_ts = _resolve_timerange(from_ts, to_ts)

    result = await db.execute(
        select(
            RequestLog.status,
            func.count().label("total"),
            func.avg(RequestLog.processing_time_ms).label("avg_processing_ms"),
            func.sum(RequestLog.optimized_size).label("bytes_served"),
        )
        .where(
            RequestLog.project_id == project_id,
            RequestLog.created_at >= from_ts,
            RequestLog.created_at <= to_ts,
        )
        .group_by(RequestLog.status)
    )

    rows = result.all()

    return {
        "from_ts": from_ts,
        "to_ts": to_ts,
        "by_status": {r.status: r.total for r in rows},
        "avg_processing_ms": {
            r.status: round(float(r.avg_processing_ms), 2) for r in rows if r.avg_processing_ms is not None
        },
        "bytes_served": sum(int(r.bytes_served or 0) for r in rows),
    }
