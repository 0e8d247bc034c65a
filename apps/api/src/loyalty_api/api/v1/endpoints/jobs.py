"""Manual and cron-triggered job endpoints."""

from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Depends

from loyalty_api.api.dependencies.security import require_cron_api_key
from loyalty_api.db.session import SessionFactory, get_session_factory
from loyalty_api.jobs.points_sweep import run_points_sweep


router = APIRouter(prefix="/jobs", tags=["jobs"], dependencies=[Depends(require_cron_api_key)])


@router.post("/points-sweep")
async def trigger_points_sweep(
    session_factory: SessionFactory = Depends(get_session_factory),
) -> Dict[str, Any]:
    summary = await run_points_sweep(session_factory)
    return {"success": True, "summary": summary}
