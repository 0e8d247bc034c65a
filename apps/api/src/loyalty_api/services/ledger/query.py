"""Filtered, paginated reads over the points ledger."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Sequence

from sqlalchemy import Select, case, func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from loyalty_api.models.ledger import LedgerEntryKind, PointsLedgerEntry

from .errors import LedgerValidationError
from .periods import DatePreset, resolve_date_range

MAX_PAGE_SIZE = 200
DEFAULT_PAGE_SIZE = 50
LIKE_ESCAPE = "\\"


def contains_pattern(term: str) -> str:
    """Wrap ``term`` for a substring LIKE, matching its wildcards literally."""

    escaped = term.replace(LIKE_ESCAPE, LIKE_ESCAPE * 2).replace("%", r"\%").replace("_", r"\_")
    return f"%{escaped}%"


class LedgerSortField(str, Enum):
    CREATED_AT = "created_at"
    POINTS = "points"
    PURCHASE_AMOUNT = "purchase_amount"


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"


@dataclass
class LedgerFilters:
    customer_id: str | None = None
    kinds: Sequence[LedgerEntryKind] = ()
    date_preset: DatePreset | None = None
    start: datetime | None = None
    end: datetime | None = None
    min_points: int | None = None
    max_points: int | None = None
    min_purchase_amount: Decimal | None = None
    max_purchase_amount: Decimal | None = None
    search: str | None = None


@dataclass
class LedgerSort:
    field: LedgerSortField = LedgerSortField.CREATED_AT
    order: SortOrder = SortOrder.DESC


@dataclass
class Pagination:
    limit: int = DEFAULT_PAGE_SIZE
    offset: int = 0

    def __post_init__(self) -> None:
        if not 1 <= self.limit <= MAX_PAGE_SIZE:
            raise LedgerValidationError(f"limit must be between 1 and {MAX_PAGE_SIZE}")
        if self.offset < 0:
            raise LedgerValidationError("offset must be non-negative")


@dataclass
class LedgerSummary:
    total_earned: int = 0
    total_redeemed: int = 0
    total_expired: int = 0
    earn_count: int = 0
    redeem_count: int = 0
    expiry_count: int = 0
    total_transactions: int = 0
    total_purchase_amount: Decimal = Decimal("0")

    def as_dict(self) -> dict[str, Any]:
        return {
            "total_earned": self.total_earned,
            "total_redeemed": self.total_redeemed,
            "total_expired": self.total_expired,
            "earn_count": self.earn_count,
            "redeem_count": self.redeem_count,
            "expiry_count": self.expiry_count,
            "total_transactions": self.total_transactions,
            "total_purchase_amount": float(self.total_purchase_amount),
        }


@dataclass
class LedgerPage:
    entries: list[PointsLedgerEntry]
    total: int
    has_more: bool
    summary: LedgerSummary = field(default_factory=LedgerSummary)


class LedgerQueryService:
    """Read-only listing of ledger entries with an aggregate summary."""

    def __init__(self, db_session: AsyncSession) -> None:
        self._db = db_session

    async def list_entries(
        self,
        filters: LedgerFilters | None = None,
        sort: LedgerSort | None = None,
        pagination: Pagination | None = None,
        *,
        now: datetime | None = None,
    ) -> LedgerPage:
        filters = filters or LedgerFilters()
        sort = sort or LedgerSort()
        pagination = pagination or Pagination()

        conditions = self._build_conditions(filters, now=now)

        stmt = (
            select(PointsLedgerEntry)
            .options(selectinload(PointsLedgerEntry.customer))
            .where(*conditions)
            .order_by(*self._order_by(sort))
            .limit(pagination.limit)
            .offset(pagination.offset)
        )
        entries = list((await self._db.execute(stmt)).scalars().all())

        total = int(
            await self._db.scalar(select(func.count(PointsLedgerEntry.id)).where(*conditions)) or 0
        )
        summary = await self._summarize(conditions, total)
        return LedgerPage(
            entries=entries,
            total=total,
            has_more=pagination.offset + len(entries) < total,
            summary=summary,
        )

    @staticmethod
    def _build_conditions(filters: LedgerFilters, *, now: datetime | None) -> list[Any]:
        conditions: list[Any] = []
        if filters.customer_id:
            conditions.append(PointsLedgerEntry.customer_id == filters.customer_id)
        if filters.kinds:
            conditions.append(PointsLedgerEntry.kind.in_([LedgerEntryKind(kind) for kind in filters.kinds]))

        start, end = resolve_date_range(filters.date_preset, filters.start, filters.end, now=now)
        if start is not None:
            conditions.append(PointsLedgerEntry.created_at >= start)
        if end is not None:
            conditions.append(PointsLedgerEntry.created_at <= end)

        if filters.min_points is not None:
            conditions.append(PointsLedgerEntry.points >= filters.min_points)
        if filters.max_points is not None:
            conditions.append(PointsLedgerEntry.points <= filters.max_points)
        if filters.min_purchase_amount is not None:
            conditions.append(PointsLedgerEntry.purchase_amount >= filters.min_purchase_amount)
        if filters.max_purchase_amount is not None:
            conditions.append(PointsLedgerEntry.purchase_amount <= filters.max_purchase_amount)
        if filters.search:
            pattern = contains_pattern(filters.search.strip())
            conditions.append(PointsLedgerEntry.description.ilike(pattern, escape=LIKE_ESCAPE))
        return conditions

    @staticmethod
    def _order_by(sort: LedgerSort) -> list[Any]:
        column = {
            LedgerSortField.CREATED_AT: PointsLedgerEntry.created_at,
            LedgerSortField.POINTS: PointsLedgerEntry.points,
            LedgerSortField.PURCHASE_AMOUNT: PointsLedgerEntry.purchase_amount,
        }[LedgerSortField(sort.field)]
        descending = SortOrder(sort.order) is SortOrder.DESC
        tiebreak = PointsLedgerEntry.id.desc() if descending else PointsLedgerEntry.id.asc()
        return [column.desc() if descending else column.asc(), tiebreak]

    async def _summarize(self, conditions: list[Any], total: int) -> LedgerSummary:
        grouped: Select = (
            select(
                PointsLedgerEntry.kind,
                func.coalesce(func.sum(PointsLedgerEntry.points), 0),
                func.count(PointsLedgerEntry.id),
                func.coalesce(
                    func.sum(
                        case(
                            (PointsLedgerEntry.kind == LedgerEntryKind.EARN, PointsLedgerEntry.purchase_amount),
                            else_=None,
                        )
                    ),
                    0,
                ),
            )
            .where(*conditions)
            .group_by(PointsLedgerEntry.kind)
        )
        summary = LedgerSummary(total_transactions=total)
        for kind, points_sum, count, purchase_sum in (await self._db.execute(grouped)).all():
            kind = LedgerEntryKind(kind)
            points_sum = int(points_sum or 0)
            if kind is LedgerEntryKind.EARN:
                summary.total_earned = points_sum
                summary.earn_count = int(count)
                summary.total_purchase_amount = Decimal(str(purchase_sum or 0))
            elif kind is LedgerEntryKind.REDEEM:
                summary.total_redeemed = abs(points_sum)
                summary.redeem_count = int(count)
            else:
                summary.total_expired = abs(points_sum)
                summary.expiry_count = int(count)
        return summary


__all__ = [
    "LIKE_ESCAPE",
    "LedgerFilters",
    "LedgerPage",
    "LedgerQueryService",
    "LedgerSort",
    "LedgerSortField",
    "LedgerSummary",
    "Pagination",
    "SortOrder",
    "contains_pattern",
]
