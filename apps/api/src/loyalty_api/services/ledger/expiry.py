"""Lazy per-customer expiry of overdue points batches."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Callable

from loguru import logger

from loyalty_api.models.customer import Customer
from loyalty_api.models.ledger import LedgerEntryKind, PointsLedgerEntry

from .errors import LedgerConsistencyError
from .store import LedgerStore


@dataclass
class ExpiryResult:
    expired_points: int = 0
    batch_count: int = 0
    entry: PointsLedgerEntry | None = None


def auto_expiry_description(batch_count: int) -> str:
    return f"Auto-expired {batch_count} bucket(s)"


class ExpiryReconciler:
    """Retire a customer's overdue batches within the caller's transaction.

    Every mutating ledger operation runs this first so expired points can
    never be spent and the balance matches the live batches afterwards.
    """

    def __init__(self, store: LedgerStore) -> None:
        self._store = store

    async def reconcile(
        self,
        customer: Customer,
        *,
        now: datetime,
        describe: Callable[[int], str] | None = None,
    ) -> ExpiryResult:
        """Expire overdue batches; ``describe`` builds the entry text from the expired batch count."""

        expired = await self._store.list_expired_batches(customer.id, now=now)
        if not expired:
            return ExpiryResult()

        total_expired = sum(int(batch.remaining_points) for batch in expired)
        balance = int(customer.points_balance or 0)
        if total_expired > balance:
            raise LedgerConsistencyError(
                f"Expiring {total_expired} points exceeds balance {balance}",
                customer_id=customer.id,
            )

        await self._store.delete_batches(expired)
        customer.points_balance = balance - total_expired

        entry = await self._store.append_entry(
            customer,
            kind=LedgerEntryKind.EXPIRY,
            points=-total_expired,
            description=(describe or auto_expiry_description)(len(expired)),
            created_at=now,
        )
        logger.info(
            "Expired loyalty points",
            customer_id=customer.id,
            points=total_expired,
            batches=len(expired),
            balance_after=customer.points_balance,
        )
        return ExpiryResult(expired_points=total_expired, batch_count=len(expired), entry=entry)


__all__ = ["ExpiryReconciler", "ExpiryResult", "auto_expiry_description"]
