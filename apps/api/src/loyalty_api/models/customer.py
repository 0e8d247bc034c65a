"""Loyalty customer model."""

from __future__ import annotations

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, Integer, String, Text, func
from sqlalchemy.orm import relationship

from loyalty_api.db.base import Base


class Customer(Base):
    """Loyalty program member keyed by membership number."""

    __tablename__ = "customers"
    __table_args__ = (
        CheckConstraint("points_balance >= 0", name="ck_customers_points_balance_non_negative"),
    )

    id = Column(String(16), primary_key=True)
    name = Column(String, nullable=False)
    phone_number = Column(String(10), nullable=False, unique=True, index=True)
    address = Column(Text, nullable=True)
    points_balance = Column(Integer, nullable=False, default=0, server_default="0")
    lifetime_points = Column(Integer, nullable=False, default=0, server_default="0")
    is_active = Column(Boolean, nullable=False, default=True, server_default="true")
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    batches = relationship("PointsBatch", back_populates="customer", cascade="all, delete-orphan")
    ledger_entries = relationship("PointsLedgerEntry", back_populates="customer")
