"""
Shared enum definitions.
"""

from enum import Enum


class ResourceStatus(str, Enum):
    """Selectability of a pooled resource (credential or proxy)."""

    ACTIVE = "active"
    PAUSED = "paused"


class PauseCause(str, Enum):
    """Why a resource was paused; drives automatic reinstatement."""

    AUTO_HEALTH = "auto_health"  # health below threshold or too many consecutive failures
    AUTO_QUOTA = "auto_quota"  # upstream reported its quota exhausted
    MANUAL = "manual"  # operator; only an explicit resume lifts it

    @property
    def is_automatic(self) -> bool:
        return self is not PauseCause.MANUAL


class CallerTier(str, Enum):
    """Caller classification used to bias credential selection."""

    FREE = "free"
    SUPPORTER = "supporter"
    PREMIUM = "premium"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value: "str | CallerTier | None") -> "CallerTier":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value or "").strip().lower())
        except ValueError:
            return cls.UNKNOWN


class ProxyType(str, Enum):
    HTTP = "http"
    HTTPS = "https"
    SOCKS5 = "socks5"
