"""Post-commit fan-out of ledger events to notifications and the stats cache."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any

from loguru import logger

from loyalty_api.db.session import async_session
from loyalty_api.models.notification import MessageTypeEnum
from loyalty_api.observability.ledger import get_ledger_store
from loyalty_api.services.notifications import NotificationService
from loyalty_api.services.stats import StatsCache


@dataclass
class LedgerEvent:
    """Something that already happened and was committed."""

    kind: str
    customer_id: str
    phone_number: str | None = None
    message_type: MessageTypeEnum | None = None
    message: str | None = None
    invalidate_stats: bool = True
    metadata: dict[str, Any] = field(default_factory=dict)


class LedgerEventDispatcher:
    """Run side effects of committed ledger changes as background tasks.

    Side effects never feed back into the ledger: failures are logged and
    counted, and ``publish`` returns immediately.
    """

    def __init__(
        self,
        notification_service: NotificationService | None = None,
        stats_cache: StatsCache | None = None,
    ) -> None:
        self._notifications = notification_service
        self._stats_cache = stats_cache
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def notification_service(self) -> NotificationService:
        if self._notifications is None:
            self._notifications = NotificationService(async_session)
        return self._notifications

    @property
    def stats_cache(self) -> StatsCache:
        if self._stats_cache is None:
            self._stats_cache = StatsCache()
        return self._stats_cache

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def publish(self, event: LedgerEvent) -> None:
        task = asyncio.create_task(self._handle(event))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def drain(self) -> None:
        """Wait for every outstanding side effect to finish."""

        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def _handle(self, event: LedgerEvent) -> None:
        if event.message and event.phone_number and event.message_type is not None:
            try:
                await self.notification_service.send(
                    event.customer_id,
                    event.phone_number,
                    event.message_type,
                    event.message,
                )
            except Exception:
                get_ledger_store().record_notification(event.message_type.value, delivered=False)
                logger.exception(
                    "Ledger event notification crashed",
                    kind=event.kind,
                    customer_id=event.customer_id,
                )

        if event.invalidate_stats:
            try:
                await self.stats_cache.invalidate()
            except Exception:
                get_ledger_store().record_failure("cache_invalidation")
                logger.exception(
                    "Stats cache invalidation failed after ledger event",
                    kind=event.kind,
                    customer_id=event.customer_id,
                )


_DISPATCHER: LedgerEventDispatcher | None = None


def get_ledger_dispatcher() -> LedgerEventDispatcher:
    global _DISPATCHER
    if _DISPATCHER is None:
        _DISPATCHER = LedgerEventDispatcher()
    return _DISPATCHER


__all__ = ["LedgerEvent", "LedgerEventDispatcher", "get_ledger_dispatcher"]
