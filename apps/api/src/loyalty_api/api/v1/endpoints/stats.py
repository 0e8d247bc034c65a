from __future__ import annotations

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from loyalty_api.db.session import get_session
from loyalty_api.services.stats import DashboardStatsService


router = APIRouter(prefix="/stats", tags=["stats"])


class DashboardStatsResponse(BaseModel):
    customerCount: int
    pointsDistributed: int


@router.get("/dashboard", response_model=DashboardStatsResponse)
async def dashboard_stats(db: AsyncSession = Depends(get_session)) -> DashboardStatsResponse:
    stats = await DashboardStatsService(db).get_stats()
    return DashboardStatsResponse(
        customerCount=int(stats.get("customer_count", 0)),
        pointsDistributed=int(stats.get("points_distributed", 0)),
    )
