"""
Calendar month helpers.

Months are handled as zero-padded "YYYY-MM" strings throughout the engine.
Because both year and month are zero-padded, lexicographic order on these
strings equals chronological order.
"""

import re
from datetime import date, datetime, timezone
from typing import Optional

_MONTH_RE = re.compile(r"^(\d{4})-(0[1-9]|1[0-2])$")


def parse_month(year_month: str) -> tuple[int, int]:
    """Split 'YYYY-MM' into (year, month). Raises ValueError if malformed."""
    match = _MONTH_RE.match(year_month or "")
    if not match:
        raise ValueError(f"Month must be formatted YYYY-MM, got {year_month!r}")
    return int(match.group(1)), int(match.group(2))


def format_month(year: int, month: int) -> str:
    return f"{year:04d}-{month:02d}"


def month_key(day: date) -> str:
    """The 'YYYY-MM' month a date falls in."""
    return format_month(day.year, day.month)


def previous_month(year_month: str) -> str:
    """Month immediately before year_month; 2026-01 -> 2025-12."""
    year, month = parse_month(year_month)
    if month == 1:
        return format_month(year - 1, 12)
    return format_month(year, month - 1)


def next_month(year_month: str) -> str:
    year, month = parse_month(year_month)
    if month == 12:
        return format_month(year + 1, 1)
    return format_month(year, month + 1)


def month_range(year_month: str) -> tuple[date, date]:
    """
    Half-open date range covering the month.

    Returns (first day of the month, first day of the next month).
    """
    year, month = parse_month(year_month)
    next_year, next_mon = parse_month(next_month(year_month))
    return date(year, month, 1), date(next_year, next_mon, 1)


def current_month(now: Optional[datetime] = None) -> str:
    """Current calendar month in UTC."""
    now = now or datetime.now(timezone.utc)
    return format_month(now.year, now.month)
