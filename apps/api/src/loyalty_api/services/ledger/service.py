"""Unit-of-work orchestration for points ledger operations."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Awaitable, Callable, TypeVar

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from loyalty_api.core.settings import Settings, get_settings
from loyalty_api.models.customer import Customer
from loyalty_api.models.ledger import LedgerEntryKind
from loyalty_api.models.notification import MessageTypeEnum
from loyalty_api.observability.ledger import get_ledger_store
from loyalty_api.observability.tracing import ledger_span
from loyalty_api.services.notifications.templates import (
    render_points_earned,
    render_points_redeemed,
)

from .accrual import AccrualEngine, AccrualResult
from .errors import (
    LedgerConsistencyError,
    LedgerRejection,
    LedgerStorageError,
    LedgerValidationError,
)
from .events import LedgerEvent, LedgerEventDispatcher, get_ledger_dispatcher
from .expiry import ExpiryReconciler
from .periods import ensure_aware, utcnow
from .redemption import RedemptionEngine, RedemptionResult
from .store import LedgerStore

T = TypeVar("T")


@dataclass
class UpcomingExpiry:
    points: int
    expires_at: datetime


@dataclass
class BalanceSnapshot:
    customer_id: str
    name: str
    phone_number: str
    points_balance: int
    lifetime_points: int
    expired_points: int = 0
    upcoming_expiries: list[UpcomingExpiry] = field(default_factory=list)


class LedgerService:
    """Apply earn and redeem operations as single atomic transactions.

    The service owns commit and rollback for the session it is given. Events
    for notifications and cache invalidation are published only after a
    successful commit.
    """

    def __init__(
        self,
        db_session: AsyncSession,
        *,
        dispatcher: LedgerEventDispatcher | None = None,
        settings: Settings | None = None,
    ) -> None:
        self._db = db_session
        self._settings = settings or get_settings()
        self._dispatcher = dispatcher or get_ledger_dispatcher()
        self._store = LedgerStore(db_session)
        self._reconciler = ExpiryReconciler(self._store)
        self._accrual = AccrualEngine(
            self._store,
            self._reconciler,
            earn_rate=self._settings.points_earn_rate,
            validity_months=self._settings.points_validity_months,
        )
        self._redemption = RedemptionEngine(self._store, self._reconciler)

    async def earn(
        self,
        customer_id: str,
        purchase_amount: object,
        description: str | None = None,
        *,
        now: datetime | None = None,
    ) -> AccrualResult:
        moment = ensure_aware(now) if now else utcnow()

        async def _earn() -> tuple[AccrualResult, str]:
            result = await self._accrual.earn(customer_id, purchase_amount, description, now=moment)
            return result, await self._phone_number(result.customer_id)

        result, phone_number = await self._run("earn", customer_id, _earn)

        observability = get_ledger_store()
        observability.record_operation(LedgerEntryKind.EARN.value, result.points_earned)
        if result.expired_points:
            observability.record_operation(LedgerEntryKind.EXPIRY.value, result.expired_points)

        self._dispatcher.publish(
            LedgerEvent(
                kind=LedgerEntryKind.EARN.value,
                customer_id=result.customer_id,
                phone_number=phone_number,
                message_type=MessageTypeEnum.TXN,
                message=render_points_earned(
                    purchase_amount=result.purchase_amount,
                    points_earned=result.points_earned,
                    balance=result.new_balance,
                    expires_at=result.expires_at,
                ),
                metadata={"entry_id": result.entry_id},
            )
        )
        return result

    async def redeem(
        self,
        customer_id: str,
        points: object,
        description: str | None = None,
        *,
        now: datetime | None = None,
    ) -> RedemptionResult:
        moment = ensure_aware(now) if now else utcnow()

        async def _redeem() -> tuple[RedemptionResult, str]:
            result = await self._redemption.redeem(customer_id, points, description, now=moment)
            return result, await self._phone_number(result.customer_id)

        result, phone_number = await self._run("redeem", customer_id, _redeem)

        observability = get_ledger_store()
        observability.record_operation(LedgerEntryKind.REDEEM.value, result.points_redeemed)
        if result.expired_points:
            observability.record_operation(LedgerEntryKind.EXPIRY.value, result.expired_points)

        self._dispatcher.publish(
            LedgerEvent(
                kind=LedgerEntryKind.REDEEM.value,
                customer_id=result.customer_id,
                phone_number=phone_number,
                message_type=MessageTypeEnum.TXN,
                message=render_points_redeemed(
                    points_redeemed=result.points_redeemed,
                    balance=result.new_balance,
                ),
                metadata={"entry_id": result.entry_id},
            )
        )
        return result

    async def get_balance(
        self,
        customer_id: str,
        *,
        now: datetime | None = None,
        upcoming_limit: int = 5,
    ) -> BalanceSnapshot:
        """Reconcile lazily, then report the balance and the next expiries."""

        moment = ensure_aware(now) if now else utcnow()

        async def _reconcile() -> tuple[Customer, int]:
            customer = await self._store.require_customer(customer_id)
            expiry = await self._reconciler.reconcile(customer, now=moment)
            return customer, expiry.expired_points

        customer, expired_points = await self._run("balance", customer_id, _reconcile)
        if expired_points:
            get_ledger_store().record_operation(LedgerEntryKind.EXPIRY.value, expired_points)
            self._dispatcher.publish(
                LedgerEvent(kind=LedgerEntryKind.EXPIRY.value, customer_id=customer.id)
            )

        upcoming = await self._store.list_upcoming_batches(customer.id, now=moment, limit=upcoming_limit)
        return BalanceSnapshot(
            customer_id=customer.id,
            name=customer.name,
            phone_number=customer.phone_number,
            points_balance=int(customer.points_balance),
            lifetime_points=int(customer.lifetime_points or 0),
            expired_points=expired_points,
            upcoming_expiries=[
                UpcomingExpiry(points=int(batch.remaining_points), expires_at=ensure_aware(batch.expires_at))
                for batch in upcoming
            ],
        )

    async def _phone_number(self, customer_id: str) -> str:
        customer = await self._db.get(Customer, customer_id)
        return customer.phone_number

    async def _run(
        self,
        operation: str,
        customer_id: str,
        work: Callable[[], Awaitable[T]],
    ) -> T:
        observability = get_ledger_store()
        with ledger_span(f"ledger.{operation}", customer_id=customer_id) as span:
            try:
                result = await work()
                await self._db.commit()
                return result
            except LedgerConsistencyError as exc:
                await self._db.rollback()
                observability.record_failure(exc.code)
                span.set_attribute("ledger.error_code", exc.code)
                logger.critical(
                    "Ledger consistency violation",
                    operation=operation,
                    customer_id=exc.customer_id,
                    detail=exc.message,
                )
                raise
            except (LedgerValidationError, LedgerRejection) as exc:
                await self._db.rollback()
                observability.record_rejection(exc.code)
                span.set_attribute("ledger.error_code", exc.code)
                logger.info(
                    "Ledger operation rejected",
                    operation=operation,
                    customer_id=customer_id,
                    code=exc.code,
                )
                raise
            except SQLAlchemyError as exc:
                await self._db.rollback()
                observability.record_failure(LedgerStorageError.code)
                span.set_attribute("ledger.error_code", LedgerStorageError.code)
                logger.exception("Ledger storage failure", operation=operation, customer_id=customer_id)
                raise LedgerStorageError("Ledger transaction could not be applied") from exc
            except BaseException:
                await self._db.rollback()
                raise


__all__ = ["BalanceSnapshot", "LedgerService", "UpcomingExpiry"]
