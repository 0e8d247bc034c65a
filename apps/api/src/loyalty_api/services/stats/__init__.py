"""Aggregate statistics and their cache."""

from .cache import StatsCache
from .dashboard import DASHBOARD_CACHE_KEY, DashboardStatsService

__all__ = ["DASHBOARD_CACHE_KEY", "DashboardStatsService", "StatsCache"]
