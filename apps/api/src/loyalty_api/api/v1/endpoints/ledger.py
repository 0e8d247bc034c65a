"""Ledger listing with filters, sorting and summary."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from loyalty_api.api.errors import ledger_http_error
from loyalty_api.db.session import get_session
from loyalty_api.models.ledger import LedgerEntryKind, PointsLedgerEntry
from loyalty_api.services.ledger import (
    DatePreset,
    LedgerError,
    LedgerFilters,
    LedgerQueryService,
    LedgerSort,
    LedgerSortField,
    Pagination,
    SortOrder,
)
from loyalty_api.services.ledger.query import MAX_PAGE_SIZE


router = APIRouter(prefix="/transactions", tags=["ledger"])

_SORT_FIELDS = {
    "createdAt": LedgerSortField.CREATED_AT,
    "points": LedgerSortField.POINTS,
    "billAmount": LedgerSortField.PURCHASE_AMOUNT,
}


class LedgerEntryResponse(BaseModel):
    id: int
    customerId: str
    customerName: Optional[str]
    phoneNumber: Optional[str]
    transactionType: LedgerEntryKind
    points: int
    balanceAfter: int
    billAmount: Optional[float]
    description: Optional[str]
    createdAt: datetime


class LedgerSummaryResponse(BaseModel):
    totalEarned: int
    totalRedeemed: int
    totalExpired: int
    earnCount: int
    redeemCount: int
    expiryCount: int
    totalTransactions: int
    totalBillAmount: float


class LedgerPageResponse(BaseModel):
    transactions: List[LedgerEntryResponse]
    total: int
    hasMore: bool
    summary: LedgerSummaryResponse


def _parse_kinds(raw: str | None) -> list[LedgerEntryKind]:
    if not raw:
        return []
    kinds: list[LedgerEntryKind] = []
    for token in raw.split(","):
        token = token.strip().upper()
        if not token:
            continue
        try:
            kinds.append(LedgerEntryKind(token))
        except ValueError as exc:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Unknown transaction type: {token}",
            ) from exc
    return kinds


def _serialize_entry(entry: PointsLedgerEntry) -> LedgerEntryResponse:
    customer = entry.customer
    return LedgerEntryResponse(
        id=entry.id,
        customerId=entry.customer_id,
        customerName=customer.name if customer else None,
        phoneNumber=customer.phone_number if customer else None,
        transactionType=entry.kind,
        points=entry.points,
        balanceAfter=entry.balance_after,
        billAmount=float(entry.purchase_amount) if entry.purchase_amount is not None else None,
        description=entry.description,
        createdAt=entry.created_at,
    )


@router.get("/ledger", response_model=LedgerPageResponse)
async def list_ledger(
    customerId: Optional[str] = Query(None),
    type: Optional[str] = Query(None, description="EARN, REDEEM, EXPIRY or a comma-separated list"),
    datePreset: Optional[DatePreset] = Query(None),
    startDate: Optional[datetime] = Query(None),
    endDate: Optional[datetime] = Query(None),
    minPoints: Optional[int] = Query(None),
    maxPoints: Optional[int] = Query(None),
    minBillAmount: Optional[Decimal] = Query(None),
    maxBillAmount: Optional[Decimal] = Query(None),
    search: Optional[str] = Query(None),
    sortBy: Literal["createdAt", "points", "billAmount"] = Query("createdAt"),
    sortOrder: SortOrder = Query(SortOrder.DESC),
    limit: int = Query(50, ge=1, le=MAX_PAGE_SIZE),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_session),
) -> LedgerPageResponse:
    filters = LedgerFilters(
        customer_id=customerId,
        kinds=_parse_kinds(type),
        date_preset=datePreset,
        start=startDate,
        end=endDate,
        min_points=minPoints,
        max_points=maxPoints,
        min_purchase_amount=minBillAmount,
        max_purchase_amount=maxBillAmount,
        search=search,
    )
    try:
        page = await LedgerQueryService(db).list_entries(
            filters,
            LedgerSort(field=_SORT_FIELDS[sortBy], order=sortOrder),
            Pagination(limit=limit, offset=offset),
        )
    except LedgerError as exc:
        raise ledger_http_error(exc) from exc

    summary = page.summary
    return LedgerPageResponse(
        transactions=[_serialize_entry(entry) for entry in page.entries],
        total=page.total,
        hasMore=page.has_more,
        summary=LedgerSummaryResponse(
            totalEarned=summary.total_earned,
            totalRedeemed=summary.total_redeemed,
            totalExpired=summary.total_expired,
            earnCount=summary.earn_count,
            redeemCount=summary.redeem_count,
            expiryCount=summary.expiry_count,
            totalTransactions=summary.total_transactions,
            totalBillAmount=float(summary.total_purchase_amount),
        ),
    )
