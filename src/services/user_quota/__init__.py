"""Caller-side quota gate: registered users and anonymous clients."""

from src.services.user_quota.anonymous import AnonymousRateLimiter
from src.services.user_quota.service import UserQuotaService

__all__ = ["AnonymousRateLimiter", "UserQuotaService"]
