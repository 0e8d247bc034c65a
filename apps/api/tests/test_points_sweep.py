import asyncio
import datetime as dt

import pytest
from sqlalchemy import select, update

from loyalty_api.core.settings import get_settings
from loyalty_api.jobs.points_sweep import run_points_sweep, sweep_description
from loyalty_api.models.customer import Customer
from loyalty_api.models.ledger import LedgerEntryKind
from loyalty_api.models.notification import MessageLog, MessageStatusEnum, MessageTypeEnum
from loyalty_api.observability.ledger import get_ledger_store
from loyalty_api.services.ledger import LedgerService, LedgerStore
from loyalty_api.services.notifications import NotificationService
from loyalty_api.services.stats import StatsCache

T0 = dt.datetime(2026, 1, 15, 12, 0, tzinfo=dt.timezone.utc)
SWEEP_AT = dt.datetime(2026, 7, 20, 0, 0, tzinfo=dt.timezone.utc)


async def _earn(session_factory, dispatcher, customer_id: str, amount: int, when: dt.datetime) -> None:
    async with session_factory() as session:
        await LedgerService(session, dispatcher=dispatcher).earn(customer_id, amount, now=when)
    await dispatcher.drain()


@pytest.mark.asyncio
async def test_sweep_expires_overdue_batches_and_notifies_expiring_customers(
    session_factory, dispatcher, make_customer, load_ledger_state, message_backend
) -> None:
    lapsed = await make_customer(name="Ravi")
    safe = await make_customer(name="Meera")
    expiring = await make_customer(name="Kiran", phone_number="9000000001")

    await _earn(session_factory, dispatcher, lapsed, 500, T0)
    await _earn(session_factory, dispatcher, lapsed, 300, T0 + dt.timedelta(days=1))
    await _earn(session_factory, dispatcher, safe, 200, T0 + dt.timedelta(days=170))
    await _earn(session_factory, dispatcher, expiring, 1000, T0 + dt.timedelta(days=7))
    message_backend.sent_messages.clear()

    notifications = NotificationService(session_factory, backend=message_backend)
    summary = await run_points_sweep(
        session_factory,
        now=SWEEP_AT,
        notification_service=notifications,
        stats_cache=StatsCache(enabled=False),
    )

    assert summary["expired_batch_count"] == 2
    assert summary["expired_points"] == 80
    assert summary["customers_affected"] == 1
    assert summary["customers_failed"] == 0
    assert summary["expiring_soon_customers"] == 1
    assert summary["notifications_sent"] == 1
    assert summary["notifications_failed"] == 0
    assert summary["ran_at"] == SWEEP_AT.isoformat()

    async with session_factory() as session:
        balance, batches, entries = await load_ledger_state(session, lapsed)
        assert balance == 0
        assert batches == []
        assert entries[-1].kind == LedgerEntryKind.EXPIRY
        assert entries[-1].points == -80
        assert entries[-1].balance_after == 0
        assert entries[-1].description == sweep_description(2)

        safe_balance, safe_batches, safe_entries = await load_ledger_state(session, safe)
        assert safe_balance == 20
        assert len(safe_entries) == 1

        logs = (
            await session.execute(select(MessageLog).where(MessageLog.message_type == MessageTypeEnum.EXPIRY))
        ).scalars().all()

    assert [log.customer_id for log in logs] == [expiring]
    assert logs[0].status == MessageStatusEnum.SENT
    assert message_backend.sent_messages[0][0] == "9000000001"
    assert message_backend.sent_messages[0][1].startswith("Points Expiry Reminder")
    assert "100 of your points will expire on 22 Jul 2026" in message_backend.sent_messages[0][1]

    sweeps = get_ledger_store().snapshot().sweeps
    assert sweeps["runs"] == 1
    assert sweeps["expired_batches"] == 2


@pytest.mark.asyncio
async def test_second_sweep_finds_nothing_to_expire(session_factory, dispatcher, make_customer, load_ledger_state) -> None:
    customer_id = await make_customer()
    await _earn(session_factory, dispatcher, customer_id, 500, T0)

    notifications = NotificationService(session_factory)
    cache = StatsCache(enabled=False)
    first = await run_points_sweep(session_factory, now=SWEEP_AT, notification_service=notifications, stats_cache=cache)
    second = await run_points_sweep(session_factory, now=SWEEP_AT, notification_service=notifications, stats_cache=cache)

    assert first["expired_batch_count"] == 1
    assert second["expired_batch_count"] == 0
    assert second["expired_points"] == 0
    assert second["customers_affected"] == 0

    async with session_factory() as session:
        _, _, entries = await load_ledger_state(session, customer_id)

    assert [entry.kind for entry in entries] == [LedgerEntryKind.EARN, LedgerEntryKind.EXPIRY]


@pytest.mark.asyncio
async def test_sweep_isolates_customers_that_fail(session_factory, dispatcher, make_customer, load_ledger_state) -> None:
    broken = await make_customer()
    healthy = await make_customer()
    await _earn(session_factory, dispatcher, broken, 500, T0)
    await _earn(session_factory, dispatcher, healthy, 300, T0)

    async with session_factory() as session:
        await session.execute(update(Customer).where(Customer.id == broken).values(points_balance=1))
        await session.commit()

    summary = await run_points_sweep(
        session_factory,
        now=SWEEP_AT,
        notification_service=NotificationService(session_factory),
        stats_cache=StatsCache(enabled=False),
    )

    assert summary["customers_failed"] == 1
    assert summary["customers_affected"] == 1
    assert summary["expired_points"] == 30

    async with session_factory() as session:
        broken_balance, broken_batches, _ = await load_ledger_state(session, broken)
        healthy_balance, healthy_batches, _ = await load_ledger_state(session, healthy)

    assert broken_balance == 1
    assert [batch.remaining_points for batch in broken_batches] == [50]
    assert healthy_balance == 0
    assert healthy_batches == []
    assert get_ledger_store().snapshot().failures["consistency_violation"] == 1


class RecordingNotifications:
    def __init__(self, *, refuse: set[str], crash: set[str]) -> None:
        self.refuse = refuse
        self.crash = crash
        self.in_flight = 0
        self.max_in_flight = 0
        self.calls: list[str] = []

    async def send(self, customer_id, phone_number, message_type, body) -> bool:
        self.calls.append(customer_id)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(0)
            if customer_id in self.crash:
                raise RuntimeError("provider exploded")
            return customer_id not in self.refuse
        finally:
            self.in_flight -= 1


@pytest.mark.asyncio
async def test_expiring_notifications_are_sent_in_bounded_chunks(
    session_factory, dispatcher, make_customer, monkeypatch
) -> None:
    monkeypatch.setattr(get_settings(), "sweep_notification_batch_size", 2)

    customer_ids = [await make_customer() for _ in range(5)]
    for customer_id in customer_ids:
        await _earn(session_factory, dispatcher, customer_id, 100, T0 + dt.timedelta(days=7))

    notifications = RecordingNotifications(refuse={customer_ids[1]}, crash={customer_ids[3]})
    summary = await run_points_sweep(
        session_factory,
        now=SWEEP_AT,
        notification_service=notifications,
        stats_cache=StatsCache(enabled=False),
    )

    assert summary["expiring_soon_customers"] == 5
    assert summary["notifications_sent"] == 3
    assert summary["notifications_failed"] == 2
    assert sorted(notifications.calls) == sorted(customer_ids)
    assert notifications.max_in_flight == 2


@pytest.mark.asyncio
async def test_sweep_with_empty_ledger_reports_zero(session_factory) -> None:
    summary = await run_points_sweep(
        session_factory,
        now=SWEEP_AT,
        notification_service=NotificationService(session_factory),
        stats_cache=StatsCache(enabled=False),
    )

    assert summary["expired_batch_count"] == 0
    assert summary["expiring_soon_customers"] == 0
    assert summary["notifications_sent"] == 0


@pytest.mark.asyncio
async def test_sweep_description_counts_batches_actually_expired(
    session_factory, dispatcher, make_customer, load_ledger_state, monkeypatch
) -> None:
    lapsed = await make_customer(name="Ravi")
    await _earn(session_factory, dispatcher, lapsed, 500, T0)
    await _earn(session_factory, dispatcher, lapsed, 300, T0 + dt.timedelta(days=1))

    async def stale_scan(self, *, now):
        return {lapsed: 5}

    monkeypatch.setattr(LedgerStore, "find_customers_with_expired_batches", stale_scan)

    summary = await run_points_sweep(
        session_factory,
        now=SWEEP_AT,
        notification_service=NotificationService(session_factory),
        stats_cache=StatsCache(enabled=False),
    )

    assert summary["expired_batch_count"] == 2
    async with session_factory() as session:
        _, _, entries = await load_ledger_state(session, lapsed)
    assert entries[-1].description == sweep_description(2)
