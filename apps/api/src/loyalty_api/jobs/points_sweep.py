"""Weekly points sweep: expire overdue batches and warn about upcoming expiries."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta
from typing import Any, Dict

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError

from loyalty_api.core.settings import get_settings
from loyalty_api.db.session import SessionFactory, open_session
from loyalty_api.models.ledger import LedgerEntryKind
from loyalty_api.models.notification import MessageTypeEnum
from loyalty_api.observability.ledger import get_ledger_store
from loyalty_api.services.ledger.errors import LedgerConsistencyError, LedgerError
from loyalty_api.services.ledger.expiry import ExpiryReconciler
from loyalty_api.services.ledger.periods import ensure_aware, utcnow
from loyalty_api.services.ledger.store import ExpiringPointsWindow, LedgerStore
from loyalty_api.services.notifications import NotificationService
from loyalty_api.services.notifications.templates import render_points_expiring
from loyalty_api.services.stats import StatsCache


# meta: job: points-sweep


def sweep_description(batch_count: int) -> str:
    return f"Weekly cleanup: {batch_count} bucket(s) expired"


async def run_points_sweep(
    session_factory: SessionFactory,
    now: datetime | None = None,
    notification_service: NotificationService | None = None,
    *,
    stats_cache: StatsCache | None = None,
) -> Dict[str, Any]:
    """Expire every overdue batch, then notify customers with points about to lapse.

    Expiry runs in one transaction per customer so a failing customer never
    blocks the rest. The notification phase is read-only and tolerates
    individual delivery failures.
    """

    settings = get_settings()
    moment = ensure_aware(now) if now else utcnow()
    observability = get_ledger_store()

    expired = await _expire_overdue_batches(session_factory, now=moment)

    if expired["expired_batch_count"]:
        cache = stats_cache or StatsCache()
        try:
            await cache.invalidate()
        except Exception:
            observability.record_failure("cache_invalidation")
            logger.exception("Stats cache invalidation failed after points sweep")

    horizon = moment + timedelta(days=settings.expiring_soon_window_days)
    session = await open_session(session_factory)
    async with session as managed_session:
        windows = await LedgerStore(managed_session).find_expiring_windows(now=moment, horizon=horizon)

    notifications = notification_service or NotificationService(session_factory)
    sent, failed = await _notify_expiring(
        notifications,
        windows,
        chunk_size=max(settings.sweep_notification_batch_size, 1),
    )

    summary = {
        **expired,
        "expiring_soon_customers": len(windows),
        "notifications_sent": sent,
        "notifications_failed": failed,
        "ran_at": moment.isoformat(),
    }
    observability.record_sweep(
        expired_batches=expired["expired_batch_count"],
        customers_affected=expired["customers_affected"],
        customers_failed=expired["customers_failed"],
    )
    logger.bind(summary=summary).info("Points sweep completed")
    return summary


async def _expire_overdue_batches(session_factory: SessionFactory, *, now: datetime) -> Dict[str, int]:
    session = await open_session(session_factory)
    async with session as managed_session:
        overdue = await LedgerStore(managed_session).find_customers_with_expired_batches(now=now)

    if not overdue:
        logger.info("No expired points batches to sweep")

    expired_batches = 0
    expired_points = 0
    customers_affected = 0
    customers_failed = 0
    observability = get_ledger_store()

    for customer_id in overdue:
        session = await open_session(session_factory)
        async with session as managed_session:
            store = LedgerStore(managed_session)
            try:
                customer = await store.require_customer(customer_id)
                result = await ExpiryReconciler(store).reconcile(
                    customer,
                    now=now,
                    describe=sweep_description,
                )
                await managed_session.commit()
            except LedgerConsistencyError as exc:
                await managed_session.rollback()
                customers_failed += 1
                observability.record_failure(exc.code)
                logger.critical(
                    "Ledger consistency violation during points sweep",
                    customer_id=customer_id,
                    detail=exc.message,
                )
                continue
            except (LedgerError, SQLAlchemyError):
                await managed_session.rollback()
                customers_failed += 1
                observability.record_failure("sweep_customer_failed")
                logger.exception("Points sweep failed for customer", customer_id=customer_id)
                continue

        if result.batch_count:
            customers_affected += 1
            expired_batches += result.batch_count
            expired_points += result.expired_points
            observability.record_operation(LedgerEntryKind.EXPIRY.value, result.expired_points)

    return {
        "expired_batch_count": expired_batches,
        "expired_points": expired_points,
        "customers_affected": customers_affected,
        "customers_failed": customers_failed,
    }


async def _notify_expiring(
    notifications: NotificationService,
    windows: list[ExpiringPointsWindow],
    *,
    chunk_size: int,
) -> tuple[int, int]:
    sent = 0
    failed = 0
    for offset in range(0, len(windows), chunk_size):
        chunk = windows[offset : offset + chunk_size]
        outcomes = await asyncio.gather(
            *(
                notifications.send(
                    window.customer_id,
                    window.phone_number,
                    MessageTypeEnum.EXPIRY,
                    render_points_expiring(
                        name=window.customer_name,
                        points=window.total_points,
                        earliest_expiry=window.earliest_expiry,
                    ),
                )
                for window in chunk
            ),
            return_exceptions=True,
        )
        for window, outcome in zip(chunk, outcomes):
            if outcome is True:
                sent += 1
                continue
            failed += 1
            if isinstance(outcome, BaseException):
                logger.opt(exception=outcome).warning(
                    "Expiring points notification crashed",
                    customer_id=window.customer_id,
                )
    return sent, failed


__all__ = ["run_points_sweep", "sweep_description"]
