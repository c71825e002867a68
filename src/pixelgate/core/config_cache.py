"""
Per-process TTL cache in front of the config store.

This is an optimization, not a source of truth: each gateway process may serve
a project's policy up to one TTL after it changed. Every miss goes to the
store; "not found" is never cached.
"""
from __future__ import annotations

import asyncio
import logging
import threading
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Generic, Protocol, TypeVar

from sqlalchemy.exc import SQLAlchemyError

from pixelgate.core.config_store import ApiKeyConfig, ProjectConfig
from pixelgate.core.errors import ConfigStoreUnavailable

logger = logging.getLogger("pixelgate.config_cache")

T = TypeVar("T")

DEFAULT_TTL_SECONDS = 60.0


@dataclass(frozen=True)
class CacheEntry(Generic[T]):
    value: T
    expires_at: float


class TTLCache(Generic[T]):
    def __init__(self, ttl_seconds: float, clock: Callable[[], float] = time.monotonic) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[str, CacheEntry[T]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> T | None:
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if now >= entry.expires_at:
                del self._entries[key]
                return None
            return entry.value

    def set(self, key: str, value: T) -> None:
        entry = CacheEntry(value=value, expires_at=self._clock() + self.ttl_seconds)
        with self._lock:
            self._entries[key] = entry

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def delete_where(self, predicate: Callable[[str], bool]) -> int:
        with self._lock:
            doomed = [k for k in self._entries if predicate(k)]
            for k in doomed:
                del self._entries[k]
            return len(doomed)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class ConfigStore(Protocol):
    async def find_project_by_slug(self, slug: str) -> ProjectConfig | None: ...

    async def find_project_by_team(self, team_slug: str, project_slug: str) -> ProjectConfig | None: ...

    async def find_api_key(self, public_key: str) -> ApiKeyConfig | None: ...


class ConfigCache:
    """
    Project and API key policy lookups with a bounded staleness window.

    Projects live under two independent key shapes, "slug" and
    "team_slug/project_slug", because they answer different queries.
    """

    def __init__(
        self,
        store: ConfigStore,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        timeout: float | None = None,
    ) -> None:
        self._store = store
        self._timeout = timeout
        self._projects: TTLCache[ProjectConfig] = TTLCache(ttl_seconds, clock)
        self._api_keys: TTLCache[ApiKeyConfig] = TTLCache(ttl_seconds, clock)

    async def _load(self, cache: TTLCache[T], key: str, fetch: Callable[[], Awaitable[T | None]]) -> T | None:
        cached = cache.get(key)
        if cached is not None:
            return cached

        try:
            value = await asyncio.wait_for(fetch(), timeout=self._timeout)
        except (asyncio.TimeoutError, SQLAlchemyError, OSError) as exc:
            logger.error("config_store_lookup_failed", exc_info=True, extra={"cache_key": key})
            raise ConfigStoreUnavailable("Configuration store unavailable") from exc

        if value is None:
            cache.delete(key)
            return None

        cache.set(key, value)
        return value

    async def get_project(self, slug: str) -> ProjectConfig | None:
        return await self._load(self._projects, slug, lambda: self._store.find_project_by_slug(slug))

    async def get_project_by_team(self, team_slug: str, project_slug: str) -> ProjectConfig | None:
        return await self._load(
            self._projects,
            f"{team_slug}/{project_slug}",
            lambda: self._store.find_project_by_team(team_slug, project_slug),
        )

    async def get_api_key(self, public_key: str) -> ApiKeyConfig | None:
        return await self._load(self._api_keys, public_key, lambda: self._store.find_api_key(public_key))

    def invalidate(self, slug: str) -> None:
        self._projects.delete(slug)
        swept = self._projects.delete_where(lambda k: k.endswith(f"/{slug}"))
        logger.info("project_cache_invalidated", extra={"slug": slug, "composite_keys": swept})

    def invalidate_api_key(self, public_key: str) -> None:
        self._api_keys.delete(public_key)

    def invalidate_all(self) -> None:
        self._projects.clear()
        self._api_keys.clear()
        logger.info("config_cache_cleared")
