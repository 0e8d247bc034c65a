"""Convert purchases into expiring points batches."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_FLOOR, Decimal, InvalidOperation
from uuid import UUID

from loguru import logger

from loyalty_api.models.ledger import LedgerEntryKind

from .errors import InvalidAmountError, PurchaseTooSmallError
from .expiry import ExpiryReconciler
from .periods import add_months
from .store import LedgerStore


DEFAULT_EARN_DESCRIPTION = "Purchase"
# Purchase amounts are stored as NUMERIC(12, 2).
MAX_PURCHASE_AMOUNT = Decimal("10000000000")


@dataclass
class AccrualResult:
    customer_id: str
    points_earned: int
    new_balance: int
    expires_at: datetime
    batch_id: UUID
    entry_id: int
    purchase_amount: Decimal
    expired_points: int = 0


def parse_purchase_amount(value: object) -> Decimal:
    """Normalize a purchase amount, rejecting anything not finite and positive."""

    if isinstance(value, bool) or value is None:
        raise InvalidAmountError("Invalid bill amount")
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError) as exc:
        raise InvalidAmountError("Invalid bill amount") from exc
    if not amount.is_finite() or amount <= 0 or amount >= MAX_PURCHASE_AMOUNT:
        raise InvalidAmountError("Invalid bill amount")
    return amount


def calculate_points(purchase_amount: Decimal, rate: Decimal) -> int:
    return int((purchase_amount * rate).to_integral_value(rounding=ROUND_FLOOR))


class AccrualEngine:
    """Earn points against a purchase inside the caller's unit of work."""

    def __init__(
        self,
        store: LedgerStore,
        reconciler: ExpiryReconciler,
        *,
        earn_rate: Decimal,
        validity_months: int,
    ) -> None:
        self._store = store
        self._reconciler = reconciler
        self._earn_rate = earn_rate
        self._validity_months = validity_months

    def quote(self, purchase_amount: object) -> tuple[Decimal, int]:
        """Validate the purchase and return it with the points it earns."""

        amount = parse_purchase_amount(purchase_amount)
        points = calculate_points(amount, self._earn_rate)
        if points <= 0:
            raise PurchaseTooSmallError(amount)
        return amount, points

    async def earn(
        self,
        customer_id: str,
        purchase_amount: object,
        description: str | None,
        *,
        now: datetime,
    ) -> AccrualResult:
        amount, points = self.quote(purchase_amount)

        customer = await self._store.require_customer(customer_id, active_only=True)
        expiry = await self._reconciler.reconcile(customer, now=now)

        expires_at = add_months(now, self._validity_months)
        batch = self._store.add_batch(customer, points=points, created_at=now, expires_at=expires_at)

        customer.points_balance = int(customer.points_balance or 0) + points
        customer.lifetime_points = int(customer.lifetime_points or 0) + points

        entry = await self._store.append_entry(
            customer,
            kind=LedgerEntryKind.EARN,
            points=points,
            description=description or DEFAULT_EARN_DESCRIPTION,
            created_at=now,
            purchase_amount=amount,
        )
        logger.info(
            "Recorded points accrual",
            customer_id=customer.id,
            purchase_amount=str(amount),
            points=points,
            balance_after=customer.points_balance,
            expires_at=expires_at.isoformat(),
        )
        return AccrualResult(
            customer_id=customer.id,
            points_earned=points,
            new_balance=int(customer.points_balance),
            expires_at=expires_at,
            batch_id=batch.id,
            entry_id=entry.id,
            purchase_amount=amount,
            expired_points=expiry.expired_points,
        )


__all__ = ["AccrualEngine", "AccrualResult", "calculate_points", "parse_purchase_amount"]
