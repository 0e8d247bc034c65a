from __future__ import annotations

import json
from typing import Any, Awaitable, Callable, Sequence

from loguru import logger
from redis.asyncio import Redis
from redis.exceptions import RedisError

from loyalty_api.core.settings import get_settings


class StatsCache:
    """Read-through Redis cache for aggregate statistics.

    Redis is an accelerator only: every failure falls back to the database
    path and is logged. When disabled no client is created and reads go
    straight to the fallback.
    """

    def __init__(
        self,
        redis_client: Redis | None = None,
        *,
        enabled: bool | None = None,
        keys: Sequence[str] | None = None,
    ) -> None:
        settings = get_settings()
        self._enabled = settings.stats_cache_enabled if enabled is None else enabled
        self._keys = list(settings.stats_cache_keys if keys is None else keys)
        self._redis = redis_client
        if self._redis is None and self._enabled:
            self._redis = Redis.from_url(
                settings.redis_url,
                encoding="utf-8",
                decode_responses=True,
            )

    @property
    def enabled(self) -> bool:
        return self._enabled and self._redis is not None

    @property
    def keys(self) -> list[str]:
        return list(self._keys)

    async def get_cached(
        self,
        key: str,
        ttl: int,
        fallback: Callable[[], Awaitable[Any]],
    ) -> Any:
        if not self.enabled:
            return await fallback()

        try:
            raw = await self._redis.get(key)
        except RedisError as exc:
            logger.warning("Stats cache read failed", key=key, error=str(exc))
            raw = None

        if raw:
            try:
                return json.loads(raw)
            except json.JSONDecodeError:
                logger.warning("Failed to decode cached stats payload", key=key)

        fresh = await fallback()
        try:
            await self._redis.set(key, json.dumps(fresh, default=str), ex=ttl)
        except RedisError as exc:
            logger.warning("Stats cache write failed", key=key, error=str(exc))
        return fresh

    async def invalidate(self, *keys: str) -> None:
        targets = list(keys) or self._keys
        if not self.enabled or not targets:
            return
        try:
            await self._redis.unlink(*targets)
        except RedisError as exc:
            logger.warning("Stats cache invalidation failed", keys=targets, error=str(exc))
            raise
        logger.debug("Invalidated stats cache", keys=targets)


__all__ = ["StatsCache"]
