from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from pixelgate.models.api_key import ApiKey
from pixelgate.models.project import Project
from pixelgate.models.team import Team


@dataclass(frozen=True)
class ProjectConfig:
    id: uuid.UUID
    slug: str
    team_id: uuid.UUID
    allowed_source_domains: tuple[str, ...] | None
    allowed_referer_domains: tuple[str, ...] | None


@dataclass(frozen=True)
class ApiKeyConfig:
    id: uuid.UUID
    public_key: str
    key_prefix: str
    secret_key: str
    project_id: uuid.UUID
    rate_limit_per_minute: int | None
    rate_limit_per_day: int | None
    expires_at: datetime | None
    revoked_at: datetime | None

    def __repr__(self) -> str:
        # keep the secret out of logs and tracebacks
        return f"ApiKeyConfig(id={self.id!s}, key_prefix={self.key_prefix!r}, project_id={self.project_id!s})"


def _domains(value: list[str] | None) -> tuple[str, ...] | None:
    return tuple(value) if value is not None else None


def project_config_from_row(project: Project) -> ProjectConfig:
    return ProjectConfig(
        id=project.id,
        slug=project.slug,
        team_id=project.team_id,
        allowed_source_domains=_domains(project.allowed_source_domains),
        allowed_referer_domains=_domains(project.allowed_referer_domains),
    )


def api_key_config_from_row(api_key: ApiKey) -> ApiKeyConfig:
    return ApiKeyConfig(
        id=api_key.id,
        public_key=api_key.public_key,
        key_prefix=api_key.key_prefix,
        secret_key=api_key.secret_key,
        project_id=api_key.project_id,
        rate_limit_per_minute=api_key.rate_limit_per_minute,
        rate_limit_per_day=api_key.rate_limit_per_day,
        expires_at=api_key.expires_at,
        revoked_at=api_key.revoked_at,
    )


class SqlConfigStore:
    """Read side of project / API key policy, backed by the relational store."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def find_project_by_slug(self, slug: str) -> ProjectConfig | None:
        async with self._session_factory() as session:
            res = await session.execute(select(Project).where(Project.slug == slug).limit(1))
            project = res.scalar_one_or_none()
            return project_config_from_row(project) if project else None

    async def find_project_by_team(self, team_slug: str, project_slug: str) -> ProjectConfig | None:
        async with self._session_factory() as session:
            res = await session.execute(
                select(Project)
                .join(Team, Team.id == Project.team_id)
                .where(Team.slug == team_slug, Project.slug == project_slug)
            )
            project = res.scalar_one_or_none()
            return project_config_from_row(project) if project else None

    async def find_api_key(self, public_key: str) -> ApiKeyConfig | None:
        # revoked keys are returned on purpose so the gateway can reject them explicitly
        async with self._session_factory() as session:
            res = await session.execute(select(ApiKey).where(ApiKey.public_key == public_key))
            api_key = res.scalar_one_or_none()
            return api_key_config_from_row(api_key) if api_key else None
