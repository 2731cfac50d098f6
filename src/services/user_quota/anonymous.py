"""
Anonymous caller limit.

Callers without a user key get a small number of generations per client IP
per calendar month, counted from the usage log.
"""

from __future__ import annotations

from datetime import date, datetime, timezone

from src.models.user import AnonymousAllowance
from src.services.usage.recorder import UsageRecorder


def month_bounds(now: datetime) -> tuple[datetime, datetime]:
    """Start of *now*'s calendar month and start of the next one (UTC)."""
    start = datetime(now.year, now.month, 1, tzinfo=timezone.utc)
    if now.month == 12:
        end = datetime(now.year + 1, 1, 1, tzinfo=timezone.utc)
    else:
        end = datetime(now.year, now.month + 1, 1, tzinfo=timezone.utc)
    return start, end


class AnonymousRateLimiter:
    def __init__(self, recorder: UsageRecorder, monthly_limit: int) -> None:
        self.recorder = recorder
        self.monthly_limit = monthly_limit

    async def check(self, client_ip: str | None, now: datetime | None = None) -> AnonymousAllowance:
        now = now or datetime.now(timezone.utc)
        start, end = month_bounds(now)
        used = await self.recorder.anonymous_usage(client_ip or "unknown", start, end)
        remaining = max(self.monthly_limit - used, 0)
        return AnonymousAllowance(
            allowed=remaining > 0,
            remaining=remaining,
            limit=self.monthly_limit,
            reset_date=date(end.year, end.month, end.day),
        )
