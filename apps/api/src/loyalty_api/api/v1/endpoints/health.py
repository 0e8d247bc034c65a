from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Request

from loyalty_api.observability.ledger import get_ledger_store


router = APIRouter()


@router.get("/healthz", summary="Service health check")
async def service_health() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/health/observability", summary="Ledger and scheduler counters")
async def service_observability(request: Request) -> Dict[str, Any]:
    scheduler = getattr(request.app.state, "ledger_job_scheduler", None)
    dispatcher = getattr(request.app.state, "ledger_event_dispatcher", None)
    return {
        "ledger": get_ledger_store().snapshot().as_dict(),
        "scheduler": scheduler.health() if scheduler is not None else {"running": False},
        "pending_events": dispatcher.pending if dispatcher is not None else 0,
    }
