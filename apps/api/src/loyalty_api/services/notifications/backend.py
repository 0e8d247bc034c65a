"""Message backends for customer notifications."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, List, Protocol

import httpx
from loguru import logger


class NotificationDeliveryError(Exception):
    """Raised when a backend could not hand a message to the provider."""


class MessageBackend(Protocol):
    """Minimal protocol for sending a text message to a phone number."""

    async def send_text(self, phone_number: str, body: str) -> str | None:
        ...


class WhatsAppCloudBackend:
    """Meta WhatsApp Cloud API backend."""

    def __init__(
        self,
        *,
        api_token: str,
        phone_number_id: str,
        api_version: str = "v21.0",
        base_url: str = "https://graph.facebook.com",
        timeout_seconds: float = 10.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._api_token = api_token
        self._endpoint = f"{base_url.rstrip('/')}/{api_version}/{phone_number_id}/messages"
        self._timeout_seconds = timeout_seconds
        self._http_client = http_client

    @property
    def endpoint(self) -> str:
        return self._endpoint

    async def send_text(self, phone_number: str, body: str) -> str | None:
        payload = {
            "messaging_product": "whatsapp",
            "recipient_type": "individual",
            "to": phone_number,
            "type": "text",
            "text": {"preview_url": False, "body": body},
        }
        headers = {
            "Authorization": f"Bearer {self._api_token}",
            "Content-Type": "application/json",
        }

        close_client = False
        client = self._http_client
        if client is None:
            client = httpx.AsyncClient(timeout=self._timeout_seconds)
            close_client = True

        try:
            response = await client.post(self._endpoint, json=payload, headers=headers)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            detail = _extract_error(exc.response)
            logger.warning(
                "WhatsApp API returned HTTP error",
                status=exc.response.status_code,
                detail=detail,
            )
            raise NotificationDeliveryError(detail or f"HTTP {exc.response.status_code}") from exc
        except httpx.HTTPError as exc:
            logger.warning("WhatsApp API request failed", error=str(exc))
            raise NotificationDeliveryError(str(exc)) from exc
        finally:
            if close_client:
                await client.aclose()

        try:
            data: Any = response.json()
        except ValueError:
            return None
        messages = data.get("messages") if isinstance(data, dict) else None
        if isinstance(messages, list) and messages and isinstance(messages[0], dict):
            return messages[0].get("id")
        return None


@dataclass
class SimulatorBackend:
    """Logs messages instead of sending them; used when WhatsApp is unconfigured."""

    sent_messages: List[tuple[str, str]]

    def __init__(self) -> None:
        self.sent_messages = []

    async def send_text(self, phone_number: str, body: str) -> str | None:
        self.sent_messages.append((phone_number, body))
        logger.info("WhatsApp simulator message", recipient=phone_number, body=body)
        return None


def _extract_error(response: httpx.Response) -> str | None:
    try:
        data = response.json()
    except ValueError:
        return response.text[:256] or None
    if isinstance(data, dict):
        error = data.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
    return None


__all__ = [
    "MessageBackend",
    "NotificationDeliveryError",
    "SimulatorBackend",
    "WhatsAppCloudBackend",
]
