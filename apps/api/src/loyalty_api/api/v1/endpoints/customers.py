"""Customer registration, search and balance lookup."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from loyalty_api.api.dependencies.ledger import get_event_dispatcher
from loyalty_api.api.errors import ledger_http_error
from loyalty_api.db.session import get_session
from loyalty_api.models.customer import Customer
from loyalty_api.services.customers import CustomerService
from loyalty_api.services.ledger import LedgerError, LedgerEventDispatcher, LedgerService


router = APIRouter(prefix="/customers", tags=["customers"])


class CustomerCreateRequest(BaseModel):
    name: str = Field(..., min_length=1)
    phoneNumber: str = Field(..., description="Exactly 10 digits")
    address: Optional[str] = None


class CustomerResponse(BaseModel):
    customerId: str
    name: str
    phoneNumber: str
    address: Optional[str]
    pointsBalance: int
    lifetimePoints: int
    isActive: bool
    createdAt: datetime


class UpcomingExpiryResponse(BaseModel):
    points: int
    expiresAt: datetime


class CustomerBalanceResponse(BaseModel):
    customerId: str
    name: str
    phoneNumber: str
    pointsBalance: int
    lifetimePoints: int
    expiredPoints: int
    upcomingExpiries: List[UpcomingExpiryResponse]


def _serialize_customer(customer: Customer) -> CustomerResponse:
    return CustomerResponse(
        customerId=customer.id,
        name=customer.name,
        phoneNumber=customer.phone_number,
        address=customer.address,
        pointsBalance=int(customer.points_balance or 0),
        lifetimePoints=int(customer.lifetime_points or 0),
        isActive=bool(customer.is_active),
        createdAt=customer.created_at,
    )


@router.post("", response_model=CustomerResponse, status_code=status.HTTP_201_CREATED)
async def register_customer(
    payload: CustomerCreateRequest,
    db: AsyncSession = Depends(get_session),
    dispatcher: LedgerEventDispatcher = Depends(get_event_dispatcher),
) -> CustomerResponse:
    service = CustomerService(db, dispatcher=dispatcher)
    try:
        customer = await service.register(payload.name, payload.phoneNumber, payload.address)
    except LedgerError as exc:
        raise ledger_http_error(exc) from exc
    return _serialize_customer(customer)


@router.get("", response_model=List[CustomerResponse])
async def search_customers(
    search: Optional[str] = Query(None, description="Phone, membership id or name fragment"),
    db: AsyncSession = Depends(get_session),
) -> List[CustomerResponse]:
    customers = await CustomerService(db).search(search)
    return [_serialize_customer(customer) for customer in customers]


@router.get("/{customer_id}", response_model=CustomerBalanceResponse)
async def get_customer_balance(
    customer_id: str,
    db: AsyncSession = Depends(get_session),
    dispatcher: LedgerEventDispatcher = Depends(get_event_dispatcher),
) -> CustomerBalanceResponse:
    try:
        snapshot = await LedgerService(db, dispatcher=dispatcher).get_balance(customer_id)
    except LedgerError as exc:
        raise ledger_http_error(exc) from exc
    return CustomerBalanceResponse(
        customerId=snapshot.customer_id,
        name=snapshot.name,
        phoneNumber=snapshot.phone_number,
        pointsBalance=snapshot.points_balance,
        lifetimePoints=snapshot.lifetime_points,
        expiredPoints=snapshot.expired_points,
        upcomingExpiries=[
            UpcomingExpiryResponse(points=item.points, expiresAt=item.expires_at)
            for item in snapshot.upcoming_expiries
        ],
    )
