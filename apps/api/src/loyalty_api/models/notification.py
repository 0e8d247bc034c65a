"""Outbound customer message log."""

from __future__ import annotations

from enum import Enum
from uuid import uuid4

from sqlalchemy import Column, DateTime, Enum as SqlEnum, String, Text, func
from sqlalchemy.dialects.postgresql import UUID

from loyalty_api.db.base import Base


class MessageTypeEnum(str, Enum):
    WELCOME = "WELCOME"
    TXN = "TXN"
    EXPIRY = "EXPIRY"
    PROMO = "PROMO"


class MessageStatusEnum(str, Enum):
    SENT = "SENT"
    FAILED = "FAILED"


class MessageLog(Base):
    """One row per notification attempt, whatever the outcome."""

    __tablename__ = "message_logs"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    customer_id = Column(String(16), nullable=False, index=True)
    message_type = Column(SqlEnum(MessageTypeEnum, name="message_type"), nullable=False)
    content = Column(Text, nullable=False)
    status = Column(SqlEnum(MessageStatusEnum, name="message_status"), nullable=False)
    error = Column(Text, nullable=True)
    provider_message_id = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
