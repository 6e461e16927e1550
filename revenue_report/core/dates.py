"""Resolve report request parameters into a concrete UTC interval."""
from __future__ import annotations

import calendar
from datetime import datetime, timedelta, timezone
from typing import Any, Mapping, Optional

from revenue_report.core.models import DateRange
from revenue_report.core.settings import STATUS_SCOPES
from revenue_report.core.utils import is_date_only, parse_datetime, to_int

_END_OF_DAY = timedelta(days=1) - timedelta(milliseconds=1)


def month_range(month: Optional[int] = None, year: Optional[int] = None, now: Optional[datetime] = None) -> DateRange:
    """Return the first and last instant of a calendar month in UTC."""

    now = now or datetime.now(timezone.utc)
    target_year = year if year is not None else now.year
    target_month = month if month is not None else now.month
    last_day = calendar.monthrange(target_year, target_month)[1]
    start = datetime(target_year, target_month, 1, tzinfo=timezone.utc)
    end = datetime(target_year, target_month, last_day, tzinfo=timezone.utc) + _END_OF_DAY
    return DateRange(start, end)


def _parse_bound(value: Any, end_of_day: bool) -> Optional[datetime]:
    parsed = parse_datetime(value)
    if parsed is None:
        return None
    if end_of_day and is_date_only(value):
        return parsed + _END_OF_DAY
    return parsed


def _valid_month(value: Any) -> Optional[int]:
    month = to_int(value)
    return month if month is not None and 1 <= month <= 12 else None


def _valid_year(value: Any) -> Optional[int]:
    year = to_int(value)
    return year if year is not None and 1 <= year <= 9999 else None


def resolve_date_range(request: Optional[Mapping[str, Any]] = None, now: Optional[datetime] = None) -> DateRange:
    """Turn ``dateFrom``/``dateTo`` or ``month``/``year`` into a ``DateRange``.

    Explicit bounds win when both parse; a date-only ``dateTo`` covers the
    whole day. Otherwise month/year are used, each defaulting to the current
    value, and with nothing usable the current calendar month is returned.
    Never raises.
    """

    request = request or {}
    date_from = _parse_bound(request.get("dateFrom"), end_of_day=False)
    date_to = _parse_bound(request.get("dateTo"), end_of_day=True)
    if date_from and date_to:
        return DateRange(date_from, date_to)

    month = _valid_month(request.get("month"))
    year = _valid_year(request.get("year"))
    return month_range(month, year, now=now)


def normalize_status_scope(raw: Any, default: str = "approved") -> str:
    if not isinstance(raw, str):
        return default
    normalized = raw.strip().lower()
    return normalized if normalized in STATUS_SCOPES else default
