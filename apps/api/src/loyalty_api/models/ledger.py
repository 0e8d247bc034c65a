"""Points batches and the append-only points ledger."""

from __future__ import annotations

from enum import Enum
from uuid import uuid4

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    Enum as SqlEnum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    func,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from loyalty_api.db.base import Base


class LedgerEntryKind(str, Enum):
    """Balance-affecting events recorded in the ledger."""

    EARN = "EARN"
    REDEEM = "REDEEM"
    EXPIRY = "EXPIRY"


class PointsBatch(Base):
    """Spendable remainder of a single accrual, expiring as a unit."""

    __tablename__ = "points_batches"
    __table_args__ = (
        CheckConstraint("remaining_points >= 0", name="ck_points_batches_remaining_non_negative"),
        CheckConstraint("remaining_points <= earned_points", name="ck_points_batches_remaining_le_earned"),
        Index("ix_points_batches_customer_expiry", "customer_id", "expires_at"),
        Index("ix_points_batches_expiry", "expires_at"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    customer_id = Column(String(16), ForeignKey("customers.id", ondelete="CASCADE"), nullable=False)
    earned_points = Column(Integer, nullable=False)
    remaining_points = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    expires_at = Column(DateTime(timezone=True), nullable=False)

    customer = relationship("Customer", back_populates="batches")


class PointsLedgerEntry(Base):
    """Immutable audit record; ``id`` order is append order."""

    __tablename__ = "points_ledger_entries"
    __table_args__ = (
        Index("ix_points_ledger_entries_customer_created", "customer_id", "created_at"),
        Index("ix_points_ledger_entries_kind_created", "kind", "created_at"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    customer_id = Column(String(16), ForeignKey("customers.id", ondelete="RESTRICT"), nullable=False)
    kind = Column(SqlEnum(LedgerEntryKind, name="points_ledger_entry_kind"), nullable=False)
    points = Column(Integer, nullable=False)
    balance_after = Column(Integer, nullable=False)
    purchase_amount = Column(Numeric(12, 2), nullable=True)
    description = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    customer = relationship("Customer", back_populates="ledger_entries")
