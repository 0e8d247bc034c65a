import sys
from datetime import datetime
from pathlib import Path

import pytest
import pytest_asyncio
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine


def _configure_path() -> None:
    src_path = Path(__file__).resolve().parents[1] / "src"
    if src_path.exists():
        sys.path.insert(0, str(src_path))


_configure_path()

from loyalty_api.api.dependencies.ledger import get_event_dispatcher  # noqa: E402
from loyalty_api.app import create_app  # noqa: E402
from loyalty_api.db.base import Base  # noqa: E402
from loyalty_api.db.session import get_session, get_session_factory  # noqa: E402
from loyalty_api.models.customer import Customer  # noqa: E402
from loyalty_api.models.ledger import PointsBatch, PointsLedgerEntry  # noqa: E402
from loyalty_api.observability.ledger import get_ledger_store  # noqa: E402
from loyalty_api.observability.scheduler import get_scheduler_store  # noqa: E402
from loyalty_api.services.ledger import LedgerEventDispatcher  # noqa: E402
from loyalty_api.services.notifications import NotificationService, SimulatorBackend  # noqa: E402
from loyalty_api.services.stats import StatsCache  # noqa: E402


@pytest.fixture(autouse=True)
def reset_observability():
    get_ledger_store().reset()
    get_scheduler_store().reset()
    yield


@pytest_asyncio.fixture
async def session_factory():
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", future=True)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)

    try:
        yield factory
    finally:
        await engine.dispose()


@pytest.fixture
def message_backend() -> SimulatorBackend:
    return SimulatorBackend()


@pytest_asyncio.fixture
async def dispatcher(session_factory, message_backend):
    instance = LedgerEventDispatcher(
        notification_service=NotificationService(session_factory, backend=message_backend),
        stats_cache=StatsCache(enabled=False),
    )
    try:
        yield instance
    finally:
        await instance.drain()


@pytest_asyncio.fixture
async def app_with_db(session_factory, dispatcher):
    app = create_app()

    async def override_get_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_event_dispatcher] = lambda: dispatcher

    try:
        yield app, session_factory
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def make_customer(session_factory):
    counter = {"value": 0}

    async def _make(*, customer_id: str | None = None, name: str = "Asha", phone_number: str | None = None) -> str:
        counter["value"] += 1
        index = counter["value"]
        customer_id = customer_id or f"{10000000 + index}"
        async with session_factory() as session:
            session.add(
                Customer(
                    id=customer_id,
                    name=name,
                    phone_number=phone_number or f"98765{index:05d}",
                    points_balance=0,
                    lifetime_points=0,
                    is_active=True,
                    created_at=datetime(2026, 1, 1),
                    updated_at=datetime(2026, 1, 1),
                )
            )
            await session.commit()
        return customer_id

    return _make


async def ledger_state(session: AsyncSession, customer_id: str) -> tuple[int, list[PointsBatch], list[PointsLedgerEntry]]:
    """Fresh balance, live batches and entries (append order) for assertions."""

    customer = (
        await session.execute(
            select(Customer).where(Customer.id == customer_id).execution_options(populate_existing=True)
        )
    ).scalar_one()
    batches = (
        await session.execute(
            select(PointsBatch)
            .where(PointsBatch.customer_id == customer_id)
            .order_by(PointsBatch.expires_at.asc())
            .execution_options(populate_existing=True)
        )
    ).scalars().all()
    entries = (
        await session.execute(
            select(PointsLedgerEntry)
            .where(PointsLedgerEntry.customer_id == customer_id)
            .order_by(PointsLedgerEntry.id.asc())
        )
    ).scalars().all()
    return int(customer.points_balance), list(batches), list(entries)


@pytest.fixture
def load_ledger_state():
    return ledger_state
