"""Customer notification delivery with a persisted message log."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError

from loyalty_api.core.settings import get_settings
from loyalty_api.db.session import SessionFactory, open_session
from loyalty_api.models.notification import MessageLog, MessageStatusEnum, MessageTypeEnum
from loyalty_api.observability.ledger import get_ledger_store

from .backend import MessageBackend, NotificationDeliveryError, SimulatorBackend, WhatsAppCloudBackend


@dataclass
class NotificationEvent:
    """Representation of a notification attempt."""

    customer_id: str
    recipient: str
    message_type: MessageTypeEnum
    body: str
    delivered: bool
    error: str | None = None


class NotificationService:
    """Send customer messages through the configured backend.

    Each attempt is written to ``message_logs`` in its own short transaction
    when a session factory is supplied. Delivery failures return ``False``;
    they never propagate to the ledger operation that triggered them.
    """

    def __init__(
        self,
        session_factory: SessionFactory | None = None,
        backend: Optional[MessageBackend] = None,
    ) -> None:
        self._session_factory = session_factory
        self._backend = backend or self._build_default_backend()
        self._events: list[NotificationEvent] = []

    @property
    def backend(self) -> MessageBackend:
        return self._backend

    @property
    def sent_events(self) -> list[NotificationEvent]:
        """Expose attempts (useful for tests when using the simulator backend)."""
        return self._events

    async def send(
        self,
        customer_id: str,
        phone_number: str,
        message_type: MessageTypeEnum | str,
        body: str,
    ) -> bool:
        kind = MessageTypeEnum(message_type)
        provider_message_id: str | None = None
        error: str | None = None

        try:
            provider_message_id = await self._backend.send_text(phone_number, body)
        except NotificationDeliveryError as exc:
            error = str(exc) or exc.__class__.__name__
            logger.warning(
                "Customer notification failed",
                customer_id=customer_id,
                message_type=kind.value,
                error=error,
            )

        delivered = error is None
        self._events.append(
            NotificationEvent(
                customer_id=customer_id,
                recipient=phone_number,
                message_type=kind,
                body=body,
                delivered=delivered,
                error=error,
            )
        )
        get_ledger_store().record_notification(kind.value, delivered=delivered)
        await self._record(
            customer_id=customer_id,
            message_type=kind,
            body=body,
            status=MessageStatusEnum.SENT if delivered else MessageStatusEnum.FAILED,
            error=error,
            provider_message_id=provider_message_id,
        )
        if delivered:
            logger.info("Customer notification sent", customer_id=customer_id, message_type=kind.value)
        return delivered

    async def _record(
        self,
        *,
        customer_id: str,
        message_type: MessageTypeEnum,
        body: str,
        status: MessageStatusEnum,
        error: str | None,
        provider_message_id: str | None,
    ) -> None:
        if self._session_factory is None:
            return

        session = await open_session(self._session_factory)
        async with session as db:
            db.add(
                MessageLog(
                    customer_id=customer_id,
                    message_type=message_type,
                    content=body,
                    status=status,
                    error=error,
                    provider_message_id=provider_message_id,
                )
            )
            try:
                await db.commit()
            except SQLAlchemyError:
                await db.rollback()
                logger.exception("Failed to persist message log", customer_id=customer_id)

    @staticmethod
    def _build_default_backend() -> MessageBackend:
        settings = get_settings()
        if settings.whatsapp_api_token and settings.whatsapp_phone_number_id:
            return WhatsAppCloudBackend(
                api_token=settings.whatsapp_api_token,
                phone_number_id=settings.whatsapp_phone_number_id,
                api_version=settings.whatsapp_api_version,
                base_url=settings.whatsapp_api_base_url,
                timeout_seconds=settings.whatsapp_timeout_seconds,
            )
        logger.info("WhatsApp credentials not configured; using simulator backend")
        return SimulatorBackend()


__all__ = ["NotificationEvent", "NotificationService"]
