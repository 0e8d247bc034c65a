"""Earn and redeem endpoints over the points ledger."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from loyalty_api.api.dependencies.ledger import get_event_dispatcher
from loyalty_api.api.errors import ledger_http_error
from loyalty_api.db.session import get_session
from loyalty_api.services.ledger import LedgerError, LedgerEventDispatcher, LedgerService


router = APIRouter(prefix="/transactions", tags=["transactions"])


class EarnRequest(BaseModel):
    customerId: str = Field(..., min_length=1)
    # Left untyped so malformed amounts surface as ledger validation errors.
    billAmount: Any = Field(..., description="Purchase amount")
    description: Optional[str] = None


class EarnResponse(BaseModel):
    customerId: str
    pointsEarned: int
    newBalance: int
    expiresAt: datetime
    entryId: int
    expiredPoints: int


class RedeemRequest(BaseModel):
    customerId: str = Field(..., min_length=1)
    pointsToRedeem: Any = Field(..., description="Positive whole number of points")
    description: Optional[str] = None


class RedeemResponse(BaseModel):
    customerId: str
    pointsRedeemed: int
    newBalance: int
    batchesConsumed: int
    entryId: int
    expiredPoints: int


@router.post("/earn", response_model=EarnResponse, status_code=status.HTTP_201_CREATED)
async def earn_points(
    payload: EarnRequest,
    db: AsyncSession = Depends(get_session),
    dispatcher: LedgerEventDispatcher = Depends(get_event_dispatcher),
) -> EarnResponse:
    try:
        service = LedgerService(db, dispatcher=dispatcher)
        result = await service.earn(payload.customerId, payload.billAmount, payload.description)
    except LedgerError as exc:
        raise ledger_http_error(exc) from exc
    return EarnResponse(
        customerId=result.customer_id,
        pointsEarned=result.points_earned,
        newBalance=result.new_balance,
        expiresAt=result.expires_at,
        entryId=result.entry_id,
        expiredPoints=result.expired_points,
    )


@router.post("/redeem", response_model=RedeemResponse)
async def redeem_points(
    payload: RedeemRequest,
    db: AsyncSession = Depends(get_session),
    dispatcher: LedgerEventDispatcher = Depends(get_event_dispatcher),
) -> RedeemResponse:
    try:
        service = LedgerService(db, dispatcher=dispatcher)
        result = await service.redeem(payload.customerId, payload.pointsToRedeem, payload.description)
    except LedgerError as exc:
        raise ledger_http_error(exc) from exc
    return RedeemResponse(
        customerId=result.customer_id,
        pointsRedeemed=result.points_redeemed,
        newBalance=result.new_balance,
        batchesConsumed=result.batches_consumed,
        entryId=result.entry_id,
        expiredPoints=result.expired_points,
    )
