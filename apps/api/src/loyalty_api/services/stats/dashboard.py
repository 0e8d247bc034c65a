"""Dashboard aggregates served through the stats cache."""

from __future__ import annotations

from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from loyalty_api.core.settings import get_settings
from loyalty_api.models.customer import Customer
from loyalty_api.models.ledger import LedgerEntryKind, PointsLedgerEntry

from .cache import StatsCache

DASHBOARD_CACHE_KEY = "stats:dashboard:main"


class DashboardStatsService:
    def __init__(self, db_session: AsyncSession, cache: StatsCache | None = None) -> None:
        self._db = db_session
        self._cache = cache or StatsCache()

    async def get_stats(self) -> dict[str, Any]:
        ttl = get_settings().stats_cache_ttl_seconds
        return await self._cache.get_cached(DASHBOARD_CACHE_KEY, ttl, self._load)

    async def _load(self) -> dict[str, Any]:
        customer_count = await self._db.scalar(select(func.count(Customer.id)))
        points_distributed = await self._db.scalar(
            select(func.coalesce(func.sum(PointsLedgerEntry.points), 0)).where(
                PointsLedgerEntry.kind == LedgerEntryKind.EARN
            )
        )
        return {
            "customer_count": int(customer_count or 0),
            "points_distributed": int(points_distributed or 0),
        }


__all__ = ["DASHBOARD_CACHE_KEY", "DashboardStatsService"]
