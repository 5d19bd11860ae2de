"""Time and calendar utilities."""

import calendar
from datetime import date, datetime, timezone
from typing import Optional


def now_utc_naive() -> datetime:
    """
    Current time in UTC, returned as naive datetime for DB storage.
    """
    return datetime.now(timezone.utc).replace(tzinfo=None)


def today_utc() -> date:
    return now_utc_naive().date()


def add_months(start: date, months: int) -> date:
    """
    Shift a date by whole months, clamping to the last day of the target month
    (Jan 31 + 1 month -> Feb 28/29).
    """
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(start.day, last_day))


def add_years(start: date, years: int) -> date:
    """Shift a date by whole years (Feb 29 -> Feb 28 on non-leap years)."""
    return add_months(start, years * 12)


def to_iso(value) -> Optional[str]:
    return value.isoformat() if value is not None else None
