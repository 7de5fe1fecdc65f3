"""
Month arithmetic for plan windows.

Months are handled as "YYYY-MM" keys throughout; a (year, month) pair
is only used internally for arithmetic.
"""

import re
from datetime import date
from typing import Optional

from budget_planner.models.entities import MONTH_KEY_PATTERN, MonthRecord


PLAN_WINDOW_MONTHS = 24

_MONTH_KEY_RE = re.compile(MONTH_KEY_PATTERN)


def parse_month_key(month_key: str) -> tuple[int, int]:
    """Split "YYYY-MM" into (year, month); raises ValueError on bad input."""
    if not _MONTH_KEY_RE.match(month_key or ""):
        raise ValueError(f"Invalid month key: {month_key!r}")
    year, month = month_key.split("-")
    return int(year), int(month)


def format_month_key(year: int, month: int) -> str:
    return f"{year:04d}-{month:02d}"


def add_months(month_key: str, count: int) -> str:
    """Month key `count` months after (or before, if negative) month_key."""
    year, month = parse_month_key(month_key)
    ordinal = year * 12 + (month - 1) + count
    return format_month_key(ordinal // 12, ordinal % 12 + 1)


def months_between(start_key: str, end_key: str) -> int:
    """Whole months from start_key to end_key; negative if end is earlier."""
    start_year, start_month = parse_month_key(start_key)
    end_year, end_month = parse_month_key(end_key)
    return (end_year - start_year) * 12 + (end_month - start_month)


def next_month_key(today: date) -> str:
    """The month after today's calendar month."""
    return add_months(format_month_key(today.year, today.month), 1)


def build_months(
    start_key: str,
    count: int,
    net_worth: float,
    budget_id: Optional[str] = None,
) -> list[MonthRecord]:
    """Fresh, transaction-free month records starting at start_key."""
    return [
        MonthRecord(
            month=add_months(start_key, offset),
            budget_id=budget_id,
            net_worth=net_worth,
            transactions=[],
        )
        for offset in range(count)
    ]
