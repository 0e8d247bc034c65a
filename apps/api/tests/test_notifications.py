import json

import httpx
import pytest
from sqlalchemy import select

from loyalty_api.core.settings import get_settings
from loyalty_api.models.notification import MessageLog, MessageStatusEnum, MessageTypeEnum
from loyalty_api.observability.ledger import get_ledger_store
from loyalty_api.services.ledger import LedgerEventDispatcher, LedgerService
from loyalty_api.services.notifications import (
    NotificationDeliveryError,
    NotificationService,
    SimulatorBackend,
    WhatsAppCloudBackend,
)
from loyalty_api.services.stats import StatsCache


def _whatsapp_backend(handler) -> WhatsAppCloudBackend:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return WhatsAppCloudBackend(
        api_token="test-token",
        phone_number_id="1234567890",
        api_version="v21.0",
        http_client=client,
    )


@pytest.mark.asyncio
async def test_whatsapp_backend_posts_text_message() -> None:
    captured: dict = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["url"] = str(request.url)
        captured["auth"] = request.headers["Authorization"]
        captured["payload"] = json.loads(request.content)
        return httpx.Response(200, json={"messages": [{"id": "wamid.ABC"}]})

    backend = _whatsapp_backend(handler)
    message_id = await backend.send_text("919876543210", "Hello")

    assert message_id == "wamid.ABC"
    assert captured["url"] == "https://graph.facebook.com/v21.0/1234567890/messages"
    assert captured["auth"] == "Bearer test-token"
    assert captured["payload"] == {
        "messaging_product": "whatsapp",
        "recipient_type": "individual",
        "to": "919876543210",
        "type": "text",
        "text": {"preview_url": False, "body": "Hello"},
    }


@pytest.mark.asyncio
async def test_whatsapp_backend_surfaces_provider_errors() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(400, json={"error": {"message": "Recipient not on WhatsApp"}})

    with pytest.raises(NotificationDeliveryError, match="Recipient not on WhatsApp"):
        await _whatsapp_backend(handler).send_text("9876543210", "Hello")


@pytest.mark.asyncio
async def test_failed_delivery_is_logged_and_returns_false(session_factory) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    service = NotificationService(session_factory, backend=_whatsapp_backend(handler))
    delivered = await service.send("10000001", "9876543210", MessageTypeEnum.TXN, "Points earned: 5")

    assert delivered is False
    assert service.sent_events[0].delivered is False
    assert "connection refused" in service.sent_events[0].error

    async with session_factory() as session:
        logs = (await session.execute(select(MessageLog))).scalars().all()

    assert len(logs) == 1
    assert logs[0].status == MessageStatusEnum.FAILED
    assert logs[0].content == "Points earned: 5"
    assert get_ledger_store().snapshot().notifications["TXN:failed"] == 1


@pytest.mark.asyncio
async def test_successful_delivery_records_provider_id(session_factory) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"messages": [{"id": "wamid.XYZ"}]})

    service = NotificationService(session_factory, backend=_whatsapp_backend(handler))
    assert await service.send("10000001", "9876543210", "EXPIRY", "Reminder") is True

    async with session_factory() as session:
        log = (await session.execute(select(MessageLog))).scalar_one()

    assert log.status == MessageStatusEnum.SENT
    assert log.message_type == MessageTypeEnum.EXPIRY
    assert log.provider_message_id == "wamid.XYZ"


def test_default_backend_follows_credentials(monkeypatch) -> None:
    settings = get_settings()
    monkeypatch.setattr(settings, "whatsapp_api_token", None)
    assert isinstance(NotificationService().backend, SimulatorBackend)

    monkeypatch.setattr(settings, "whatsapp_api_token", "token")
    monkeypatch.setattr(settings, "whatsapp_phone_number_id", "555")
    backend = NotificationService().backend
    assert isinstance(backend, WhatsAppCloudBackend)
    assert backend.endpoint.endswith("/555/messages")


@pytest.mark.asyncio
async def test_notification_failure_never_fails_the_ledger_operation(
    session_factory, make_customer, load_ledger_state
) -> None:
    class ExplodingBackend:
        async def send_text(self, phone_number: str, body: str) -> str | None:
            raise RuntimeError("provider SDK bug")

    dispatcher = LedgerEventDispatcher(
        notification_service=NotificationService(session_factory, backend=ExplodingBackend()),
        stats_cache=StatsCache(enabled=False),
    )
    customer_id = await make_customer()

    async with session_factory() as session:
        result = await LedgerService(session, dispatcher=dispatcher).earn(customer_id, 300)
    await dispatcher.drain()

    assert result.points_earned == 30
    async with session_factory() as session:
        balance, _, entries = await load_ledger_state(session, customer_id)

    assert balance == 30
    assert len(entries) == 1
    assert get_ledger_store().snapshot().notifications["TXN:failed"] == 1
