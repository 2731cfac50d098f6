"""Anchor-day monthly quota cycle.

Each credential rolls over on the day of month it was created rather than on
the calendar month boundary, so credentials added at different times do not
all reset together. Anchors on the 29th or later always land on the last day
of the month, which keeps February and 30-day months valid.
"""

from __future__ import annotations

import calendar
from datetime import date, datetime

# Anchors at or past this day reset on the last day of the month
LAST_DAY_ANCHOR = 29


def _next_month(year: int, month: int) -> tuple[int, int]:
    if month == 12:
        return year + 1, 1
    return year, month + 1


def reset_date_in_month(anchor_day: int, year: int, month: int) -> date:
    """The reset date for *anchor_day* within the given month."""
    last_day = calendar.monthrange(year, month)[1]
    if anchor_day >= LAST_DAY_ANCHOR:
        return date(year, month, last_day)
    return date(year, month, min(anchor_day, last_day))


def initial_reset_date(created_at: date | datetime) -> date:
    """First rollover: the anchor date in the month after creation."""
    year, month = _next_month(created_at.year, created_at.month)
    return reset_date_in_month(created_at.day, year, month)


def advance_reset_date(anchor_day: int, previous_reset: date, today: date) -> date:
    """Next rollover after *previous_reset*, skipping periods already in the past.

    The result is always strictly after *today*, so a sweep run twice on the
    same day finds nothing left to reset.
    """
    year, month = _next_month(previous_reset.year, previous_reset.month)
    candidate = reset_date_in_month(anchor_day, year, month)
    while candidate <= today:
        year, month = _next_month(year, month)
        candidate = reset_date_in_month(anchor_day, year, month)
    return candidate
