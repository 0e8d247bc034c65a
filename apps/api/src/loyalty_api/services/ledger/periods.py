"""Time helpers for batch validity windows and ledger date filters."""

from __future__ import annotations

import calendar
from datetime import datetime, time, timedelta, timezone
from enum import Enum


class DatePreset(str, Enum):
    TODAY = "today"
    YESTERDAY = "yesterday"
    LAST_7_DAYS = "last7days"
    LAST_30_DAYS = "last30days"
    LAST_90_DAYS = "last90days"
    THIS_MONTH = "thisMonth"
    LAST_MONTH = "lastMonth"
    THIS_YEAR = "thisYear"
    LAST_YEAR = "lastYear"
    CUSTOM = "custom"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_aware(value: datetime) -> datetime:
    """Treat naive values (SQLite round-trips) as UTC."""

    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def add_months(value: datetime, months: int) -> datetime:
    """Shift by calendar months, clamping the day to the target month's end."""

    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def _day_start(value: datetime) -> datetime:
    return datetime.combine(value.date(), time.min, tzinfo=timezone.utc)


def _day_end(value: datetime) -> datetime:
    return datetime.combine(value.date(), time.max, tzinfo=timezone.utc)


def resolve_date_range(
    preset: DatePreset | str | None,
    start: datetime | None = None,
    end: datetime | None = None,
    *,
    now: datetime | None = None,
) -> tuple[datetime | None, datetime | None]:
    """Turn a preset (or explicit bounds) into inclusive UTC bounds.

    Explicit ``start``/``end`` only apply for ``custom`` or when no preset is
    given.
    """

    moment = ensure_aware(now) if now else utcnow()
    explicit = (
        ensure_aware(start) if start else None,
        ensure_aware(end) if end else None,
    )
    if preset is None:
        return explicit

    preset = DatePreset(preset)
    if preset is DatePreset.CUSTOM:
        return explicit
    if preset is DatePreset.TODAY:
        return _day_start(moment), _day_end(moment)
    if preset is DatePreset.YESTERDAY:
        yesterday = moment - timedelta(days=1)
        return _day_start(yesterday), _day_end(yesterday)
    if preset is DatePreset.LAST_7_DAYS:
        return moment - timedelta(days=7), moment
    if preset is DatePreset.LAST_30_DAYS:
        return moment - timedelta(days=30), moment
    if preset is DatePreset.LAST_90_DAYS:
        return moment - timedelta(days=90), moment

    first_of_month = _day_start(moment.replace(day=1))
    if preset is DatePreset.THIS_MONTH:
        last_day = calendar.monthrange(moment.year, moment.month)[1]
        return first_of_month, _day_end(moment.replace(day=last_day))
    if preset is DatePreset.LAST_MONTH:
        previous = first_of_month - timedelta(days=1)
        return _day_start(previous.replace(day=1)), _day_end(previous)
    if preset is DatePreset.THIS_YEAR:
        return (
            _day_start(moment.replace(month=1, day=1)),
            _day_end(moment.replace(month=12, day=31)),
        )
    # DatePreset.LAST_YEAR
    return (
        _day_start(moment.replace(year=moment.year - 1, month=1, day=1)),
        _day_end(moment.replace(year=moment.year - 1, month=12, day=31)),
    )


__all__ = ["DatePreset", "add_months", "ensure_aware", "resolve_date_range", "utcnow"]
