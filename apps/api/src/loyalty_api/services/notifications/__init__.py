"""Notification service package."""

from .backend import (
    MessageBackend,
    NotificationDeliveryError,
    SimulatorBackend,
    WhatsAppCloudBackend,
)
from .service import NotificationEvent, NotificationService

__all__ = [
    "MessageBackend",
    "NotificationDeliveryError",
    "SimulatorBackend",
    "WhatsAppCloudBackend",
    "NotificationService",
    "NotificationEvent",
]
