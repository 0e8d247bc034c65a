"""Data access for customers, points batches and the ledger."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Sequence

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from loyalty_api.models.customer import Customer
from loyalty_api.models.ledger import LedgerEntryKind, PointsBatch, PointsLedgerEntry

from .errors import CustomerInactiveError, CustomerNotFoundError
from .periods import ensure_aware


@dataclass
class ExpiringPointsWindow:
    """Points a customer is about to lose, grouped per customer."""

    customer_id: str
    customer_name: str
    phone_number: str
    total_points: int
    batch_count: int
    earliest_expiry: datetime


class LedgerStore:
    """Thin persistence layer used inside a ledger unit of work.

    Nothing here commits; the caller owns the transaction.
    """

    def __init__(self, db_session: AsyncSession) -> None:
        self._db = db_session

    @property
    def session(self) -> AsyncSession:
        return self._db

    async def get_customer(self, customer_id: str, *, for_update: bool = False) -> Customer | None:
        stmt = select(Customer).where(Customer.id == customer_id)
        if for_update:
            # Row lock on PostgreSQL; also refresh any stale identity-map copy.
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        result = await self._db.execute(stmt)
        return result.scalar_one_or_none()

    async def require_customer(
        self,
        customer_id: str,
        *,
        for_update: bool = True,
        active_only: bool = False,
    ) -> Customer:
        customer = await self.get_customer(customer_id, for_update=for_update)
        if customer is None:
            raise CustomerNotFoundError(customer_id)
        # Deactivated members keep their history and balance but cannot transact.
        if active_only and not customer.is_active:
            raise CustomerInactiveError(customer_id)
        return customer

    async def list_expired_batches(self, customer_id: str, *, now: datetime) -> list[PointsBatch]:
        stmt = (
            select(PointsBatch)
            .where(
                PointsBatch.customer_id == customer_id,
                PointsBatch.expires_at <= now,
                PointsBatch.remaining_points > 0,
            )
            .order_by(PointsBatch.expires_at.asc())
        )
        result = await self._db.execute(stmt)
        return list(result.scalars().all())

    async def list_spendable_batches(self, customer_id: str) -> list[PointsBatch]:
        """Batches with points left, soonest expiry first."""

        stmt = (
            select(PointsBatch)
            .where(
                PointsBatch.customer_id == customer_id,
                PointsBatch.remaining_points > 0,
            )
            .order_by(
                PointsBatch.expires_at.asc(),
                PointsBatch.created_at.asc(),
                PointsBatch.id.asc(),
            )
        )
        result = await self._db.execute(stmt)
        return list(result.scalars().all())

    async def list_upcoming_batches(
        self,
        customer_id: str,
        *,
        now: datetime,
        limit: int = 5,
    ) -> list[PointsBatch]:
        stmt = (
            select(PointsBatch)
            .where(
                PointsBatch.customer_id == customer_id,
                PointsBatch.expires_at > now,
                PointsBatch.remaining_points > 0,
            )
            .order_by(PointsBatch.expires_at.asc())
            .limit(limit)
        )
        result = await self._db.execute(stmt)
        return list(result.scalars().all())

    async def sum_remaining_points(self, customer_id: str) -> int:
        stmt = select(func.coalesce(func.sum(PointsBatch.remaining_points), 0)).where(
            PointsBatch.customer_id == customer_id,
            PointsBatch.remaining_points > 0,
        )
        result = await self._db.execute(stmt)
        return int(result.scalar_one())

    def add_batch(
        self,
        customer: Customer,
        *,
        points: int,
        created_at: datetime,
        expires_at: datetime,
    ) -> PointsBatch:
        batch = PointsBatch(
            customer_id=customer.id,
            earned_points=points,
            remaining_points=points,
            created_at=created_at,
            expires_at=expires_at,
        )
        self._db.add(batch)
        return batch

    async def delete_batches(self, batches: Sequence[PointsBatch]) -> None:
        for batch in batches:
            await self._db.delete(batch)

    async def append_entry(
        self,
        customer: Customer,
        *,
        kind: LedgerEntryKind,
        points: int,
        description: str | None,
        created_at: datetime,
        purchase_amount: Decimal | None = None,
    ) -> PointsLedgerEntry:
        """Append an audit row snapshotting the customer's current balance."""

        entry = PointsLedgerEntry(
            customer_id=customer.id,
            kind=kind,
            points=points,
            balance_after=int(customer.points_balance),
            purchase_amount=purchase_amount,
            description=description,
            created_at=created_at,
        )
        self._db.add(entry)
        await self._db.flush()
        return entry

    async def find_customers_with_expired_batches(self, *, now: datetime) -> dict[str, int]:
        """Map customer id to overdue batch count across all customers."""

        stmt = (
            select(PointsBatch.customer_id, func.count(PointsBatch.id))
            .where(
                PointsBatch.expires_at <= now,
                PointsBatch.remaining_points > 0,
            )
            .group_by(PointsBatch.customer_id)
            .order_by(PointsBatch.customer_id.asc())
        )
        result = await self._db.execute(stmt)
        return {customer_id: int(count) for customer_id, count in result.all()}

    async def find_expiring_windows(
        self,
        *,
        now: datetime,
        horizon: datetime,
    ) -> list[ExpiringPointsWindow]:
        stmt = (
            select(
                Customer.id,
                Customer.name,
                Customer.phone_number,
                func.sum(PointsBatch.remaining_points),
                func.count(PointsBatch.id),
                func.min(PointsBatch.expires_at),
            )
            .join(Customer, Customer.id == PointsBatch.customer_id)
            .where(
                PointsBatch.expires_at > now,
                PointsBatch.expires_at <= horizon,
                PointsBatch.remaining_points > 0,
            )
            .group_by(Customer.id, Customer.name, Customer.phone_number)
            .order_by(Customer.id.asc())
        )
        result = await self._db.execute(stmt)
        windows: list[ExpiringPointsWindow] = []
        for customer_id, name, phone, total, count, earliest in result.all():
            if isinstance(earliest, str):
                # SQLite returns aggregate datetimes as text.
                earliest = datetime.fromisoformat(earliest)
            windows.append(
                ExpiringPointsWindow(
                    customer_id=customer_id,
                    customer_name=name,
                    phone_number=phone,
                    total_points=int(total or 0),
                    batch_count=int(count or 0),
                    earliest_expiry=ensure_aware(earliest),
                )
            )
        return windows


__all__ = ["ExpiringPointsWindow", "LedgerStore"]
