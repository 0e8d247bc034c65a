"""Customer registration and lookup."""

from __future__ import annotations

import re
import secrets
from typing import Callable

from loguru import logger
from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from loyalty_api.models.customer import Customer
from loyalty_api.models.notification import MessageTypeEnum
from loyalty_api.services.ledger.errors import (
    CustomerAlreadyExistsError,
    CustomerNotFoundError,
    LedgerStorageError,
    LedgerValidationError,
)
from loyalty_api.services.ledger.events import LedgerEvent, LedgerEventDispatcher, get_ledger_dispatcher
from loyalty_api.services.ledger.periods import utcnow
from loyalty_api.services.ledger.query import LIKE_ESCAPE, contains_pattern
from loyalty_api.services.notifications.templates import render_welcome

_PHONE_PATTERN = re.compile(r"^\d{10}$")
MEMBERSHIP_ID_ATTEMPTS = 5
SEARCH_LIMIT = 20


def generate_membership_id() -> str:
    """Random 8-digit membership number."""
    return str(10_000_000 + secrets.randbelow(90_000_000))


class CustomerService:
    def __init__(
        self,
        db_session: AsyncSession,
        *,
        dispatcher: LedgerEventDispatcher | None = None,
        id_generator: Callable[[], str] = generate_membership_id,
    ) -> None:
        self._db = db_session
        self._dispatcher = dispatcher or get_ledger_dispatcher()
        self._id_generator = id_generator

    async def register(self, name: str, phone_number: str, address: str | None = None) -> Customer:
        name = (name or "").strip()
        phone_number = (phone_number or "").strip()
        if not name or not phone_number:
            raise LedgerValidationError("Name and phone number are required")
        if not _PHONE_PATTERN.match(phone_number):
            raise LedgerValidationError("Phone number must be exactly 10 digits")

        existing = await self._db.scalar(select(Customer).where(Customer.phone_number == phone_number))
        if existing is not None:
            raise CustomerAlreadyExistsError(phone_number, existing.id)

        customer_id = await self._allocate_id()
        now = utcnow()
        customer = Customer(
            id=customer_id,
            name=name,
            phone_number=phone_number,
            address=(address or "").strip() or None,
            points_balance=0,
            lifetime_points=0,
            is_active=True,
            created_at=now,
            updated_at=now,
        )
        self._db.add(customer)
        try:
            await self._db.commit()
        except IntegrityError as exc:
            await self._db.rollback()
            raced = await self._db.scalar(select(Customer).where(Customer.phone_number == phone_number))
            if raced is not None:
                raise CustomerAlreadyExistsError(phone_number, raced.id) from exc
            raise LedgerStorageError("Customer could not be created") from exc
        except SQLAlchemyError as exc:
            await self._db.rollback()
            logger.exception("Customer registration failed", phone_number=phone_number)
            raise LedgerStorageError("Customer could not be created") from exc

        logger.info("Registered loyalty customer", customer_id=customer_id)
        self._dispatcher.publish(
            LedgerEvent(
                kind="CUSTOMER_REGISTERED",
                customer_id=customer_id,
                phone_number=phone_number,
                message_type=MessageTypeEnum.WELCOME,
                message=render_welcome(name=name, customer_id=customer_id),
            )
        )
        return customer

    async def search(self, term: str | None = None, *, limit: int = SEARCH_LIMIT) -> list[Customer]:
        """Substring match on phone, membership id or name; newest first without a term."""

        stmt = select(Customer)
        term = (term or "").strip()
        if term:
            pattern = contains_pattern(term)
            stmt = stmt.where(
                or_(
                    Customer.phone_number.like(pattern, escape=LIKE_ESCAPE),
                    Customer.id.like(pattern, escape=LIKE_ESCAPE),
                    Customer.name.ilike(pattern, escape=LIKE_ESCAPE),
                )
            ).order_by(Customer.name.asc())
        else:
            stmt = stmt.order_by(Customer.created_at.desc())
        result = await self._db.execute(stmt.limit(limit))
        return list(result.scalars().all())

    async def get(self, customer_id: str) -> Customer:
        customer = await self._db.get(Customer, customer_id)
        if customer is None:
            raise CustomerNotFoundError(customer_id)
        return customer

    async def _allocate_id(self) -> str:
        for _ in range(MEMBERSHIP_ID_ATTEMPTS):
            candidate = self._id_generator()
            if await self._db.get(Customer, candidate) is None:
                return candidate
        logger.error("Exhausted membership id attempts", attempts=MEMBERSHIP_ID_ATTEMPTS)
        raise LedgerStorageError("Failed to generate unique membership id")


__all__ = ["CustomerService", "generate_membership_id"]
