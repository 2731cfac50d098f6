"""
Caller-side value types: accounts, supporter codes and anonymous allowances.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import Any

from pydantic import BaseModel, Field, field_validator

from src.core.enums import CallerTier

# free_speeches_remaining value for tiers without a cap
UNLIMITED_SPEECHES = -1


@dataclass(frozen=True, slots=True)
class UserAccount:
    id: str
    user_key: str
    tier: str
    free_speeches_remaining: int
    total_speeches_generated: int
    created_at: datetime | None = None
    last_used_at: datetime | None = None

    @property
    def caller_tier(self) -> CallerTier:
        return CallerTier.parse(self.tier)

    @property
    def is_unlimited(self) -> bool:
        return self.free_speeches_remaining == UNLIMITED_SPEECHES

    @classmethod
    def from_row(cls, row: Any) -> UserAccount:
        return cls(
            id=row.id,
            user_key=row.user_key,
            tier=row.tier,
            free_speeches_remaining=row.free_speeches_remaining,
            total_speeches_generated=row.total_speeches_generated or 0,
            created_at=row.created_at,
            last_used_at=row.last_used_at,
        )

    def to_status_dict(self) -> dict[str, Any]:
        return {
            "tier": self.tier,
            "free_speeches_remaining": self.free_speeches_remaining,
            "total_speeches_generated": self.total_speeches_generated,
            "created_at": _iso(self.created_at),
            "last_used_at": _iso(self.last_used_at),
        }


@dataclass(frozen=True, slots=True)
class IssuedCode:
    code: str
    tier: str
    created_at: datetime | None = None


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


@dataclass(frozen=True, slots=True)
class SupporterCodeRecord:
    """Issued code as listed on the admin dashboard."""

    code: str
    tier: str
    created_by: str | None = None
    used_by: str | None = None
    created_at: datetime | None = None
    redeemed_at: datetime | None = None

    @classmethod
    def from_row(cls, row: Any) -> SupporterCodeRecord:
        return cls(
            code=row.code,
            tier=row.tier,
            created_by=row.created_by,
            used_by=row.used_by,
            created_at=row.created_at,
            redeemed_at=row.redeemed_at,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "tier": self.tier,
            "created_by": self.created_by,
            "used_by": self.used_by,
            "created_at": _iso(self.created_at),
            "redeemed_at": _iso(self.redeemed_at),
        }


@dataclass(frozen=True, slots=True)
class UsageEntry:
    """Usage row joined to the caller's tier and the credential's name."""

    id: str
    credential_id: str | None
    key_name: str | None
    user_id: str | None
    user_tier: str | None
    client_ip: str | None
    voice_id: str | None
    model_used: str | None
    speech_text: str | None
    units_consumed: int
    success: bool
    created_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "credential_id": self.credential_id,
            "key_name": self.key_name,
            "user_id": self.user_id,
            "user_tier": self.user_tier,
            "client_ip": self.client_ip,
            "voice_id": self.voice_id,
            "model_used": self.model_used,
            "speech_text": self.speech_text,
            "units_consumed": self.units_consumed,
            "success": self.success,
            "created_at": _iso(self.created_at),
        }


@dataclass(frozen=True, slots=True)
class AnonymousAllowance:
    """Monthly allowance of one anonymous client IP."""

    allowed: bool
    remaining: int
    limit: int
    reset_date: date

    def to_dict(self) -> dict[str, Any]:
        return {
            "allowed": self.allowed,
            "remaining": self.remaining,
            "limit": self.limit,
            "reset_date": self.reset_date.isoformat(),
        }


@dataclass(frozen=True, slots=True)
class UserStats:
    total_users: int
    free_users: int
    supporter_users: int
    premium_users: int
    total_speeches: int
    free_speeches: int
    paid_speeches: int

    def to_dict(self) -> dict[str, int]:
        return {
            "total_users": self.total_users,
            "free_users": self.free_users,
            "supporter_users": self.supporter_users,
            "premium_users": self.premium_users,
            "total_speeches": self.total_speeches,
            "free_speeches": self.free_speeches,
            "paid_speeches": self.paid_speeches,
        }


class CodeGenerationRequest(BaseModel):
    count: int = Field(1, ge=1, le=100)
    tier: str = Field(CallerTier.SUPPORTER.value)
    created_by: str = Field("admin", max_length=100)

    @field_validator("tier")
    @classmethod
    def validate_tier(cls, v: str) -> str:
        v = v.strip().lower()
        if v not in (CallerTier.SUPPORTER.value, CallerTier.PREMIUM.value):
            raise ValueError("tier must be supporter or premium")
        return v
