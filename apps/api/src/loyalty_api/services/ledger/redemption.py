"""Redeem points by draining the soonest-expiring batches first."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from loguru import logger

from loyalty_api.models.ledger import LedgerEntryKind, PointsBatch

from .errors import InsufficientBalanceError, InvalidAmountError, LedgerConsistencyError
from .expiry import ExpiryReconciler
from .store import LedgerStore


DEFAULT_REDEEM_DESCRIPTION = "Redemption"
# Point columns are 32-bit INTEGERs.
MAX_REDEEM_POINTS = 2_147_483_647


@dataclass
class RedemptionResult:
    customer_id: str
    points_redeemed: int
    new_balance: int
    batches_consumed: int
    entry_id: int
    expired_points: int = 0


def parse_redeem_points(value: object) -> int:
    """Accept positive whole numbers only (ints or integral strings)."""

    if isinstance(value, bool) or value is None:
        raise InvalidAmountError("Invalid points amount")
    if isinstance(value, int):
        points = value
    elif isinstance(value, float) and value.is_integer():
        points = int(value)
    elif isinstance(value, str) and value.strip().lstrip("+").isdigit():
        points = int(value.strip())
    else:
        raise InvalidAmountError("Invalid points amount")
    if points <= 0 or points > MAX_REDEEM_POINTS:
        raise InvalidAmountError("Invalid points amount")
    return points


class RedemptionEngine:
    """Spend points inside the caller's unit of work."""

    def __init__(self, store: LedgerStore, reconciler: ExpiryReconciler) -> None:
        self._store = store
        self._reconciler = reconciler

    async def redeem(
        self,
        customer_id: str,
        requested_points: object,
        description: str | None,
        *,
        now: datetime,
    ) -> RedemptionResult:
        points = parse_redeem_points(requested_points)

        customer = await self._store.require_customer(customer_id, active_only=True)
        expiry = await self._reconciler.reconcile(customer, now=now)

        balance = int(customer.points_balance or 0)
        if balance < points:
            raise InsufficientBalanceError(balance, points)

        batches = await self._store.list_spendable_batches(customer.id)
        consumed, exhausted = self._allocate(batches, points, customer_id=customer.id)
        await self._store.delete_batches(exhausted)

        customer.points_balance = balance - points

        entry = await self._store.append_entry(
            customer,
            kind=LedgerEntryKind.REDEEM,
            points=-points,
            description=description or DEFAULT_REDEEM_DESCRIPTION,
            created_at=now,
        )
        logger.info(
            "Recorded points redemption",
            customer_id=customer.id,
            points=points,
            batches_consumed=consumed,
            balance_after=customer.points_balance,
        )
        return RedemptionResult(
            customer_id=customer.id,
            points_redeemed=points,
            new_balance=int(customer.points_balance),
            batches_consumed=consumed,
            entry_id=entry.id,
            expired_points=expiry.expired_points,
        )

    @staticmethod
    def _allocate(
        batches: list[PointsBatch],
        points: int,
        *,
        customer_id: str,
    ) -> tuple[int, list[PointsBatch]]:
        """Draw ``points`` from ordered batches; return (touched, emptied)."""

        still_needed = points
        touched = 0
        exhausted: list[PointsBatch] = []
        for batch in batches:
            if still_needed <= 0:
                break
            remaining = int(batch.remaining_points)
            take = min(remaining, still_needed)
            if take <= 0:
                continue
            batch.remaining_points = remaining - take
            still_needed -= take
            touched += 1
            if batch.remaining_points == 0:
                exhausted.append(batch)

        if still_needed > 0:
            raise LedgerConsistencyError(
                f"Batches exhausted with {still_needed} of {points} points unallocated",
                customer_id=customer_id,
            )
        return touched, exhausted


__all__ = ["RedemptionEngine", "RedemptionResult", "parse_redeem_points"]
