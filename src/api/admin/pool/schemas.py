"""Request bodies for the pool admin API."""

from __future__ import annotations

from pydantic import BaseModel, Field


class PauseRequest(BaseModel):
    reason: str | None = Field(default=None, max_length=500)


class SweepRequest(BaseModel):
    """Optional override of "today", for replaying a missed rollover."""

    today: str | None = Field(default=None, description="ISO date, defaults to the current UTC day")
