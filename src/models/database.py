"""
Database model definitions.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import declarative_base

from ..core.enums import PauseCause, ResourceStatus

Base = declarative_base()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _uuid() -> str:
    return str(uuid.uuid4())


class ScoredResourceMixin:
    """Health/status columns shared by every pooled resource table.

    Mutated only through ``ScoredResourceRepository`` atomic updates.
    """

    status = Column(
        Enum(
            ResourceStatus,
            name="resourcestatus",
            values_callable=lambda x: [e.value for e in x],
            validate_strings=True,
        ),
        default=ResourceStatus.ACTIVE,
        nullable=False,
    )
    # NULL while active; set by whichever code path paused the resource
    pause_cause = Column(
        Enum(
            PauseCause,
            name="pausecause",
            values_callable=lambda x: [e.value for e in x],
            validate_strings=True,
        ),
        nullable=True,
    )
    health_score = Column(Float, default=100.0, nullable=False)  # clamped to [0, 100]
    consecutive_failures = Column(Integer, default=0, nullable=False)

    total_requests = Column(Integer, default=0, nullable=False)
    successful_requests = Column(Integer, default=0, nullable=False)
    last_success_at = Column(DateTime(timezone=True), nullable=True)
    last_failure_at = Column(DateTime(timezone=True), nullable=True)
    last_failure_reason = Column(Text, nullable=True)

    # Free-form operator/audit notes; pause reasons are prepended
    notes = Column(Text, nullable=True)


class PoolCredential(ScoredResourceMixin, Base):
    """Upstream speech-synthesis credential (one row per upstream account)"""

    __tablename__ = "pool_credentials"

    id = Column(String(36), primary_key=True, default=_uuid, index=True)
    name = Column(String(100), unique=True, nullable=False)
    secret = Column(String(500), unique=True, nullable=False)  # never logged in full

    # Upstream plan label; drives default cost/quota at creation time only
    tier = Column(String(50), nullable=False, default="promo_starter")
    cost_per_unit = Column(Float, nullable=False, default=0.00015)

    # -1 = unlimited
    monthly_quota = Column(Integer, nullable=False, default=30000)
    quota_used_this_period = Column(Integer, nullable=False, default=0)
    # Next rollover, anchored to created_at's day of month; advanced only by the sweep
    quota_reset_at = Column(Date, nullable=False)

    # 1 = best, 10 = worst
    priority = Column(Integer, nullable=False, default=5)

    region_code = Column(String(8), nullable=True)  # egress region hint for the proxy layer
    promo_type = Column(String(50), nullable=True)
    promo_expires_at = Column(DateTime(timezone=True), nullable=True)

    # created_at anchors the quota cycle and never changes
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)

    __table_args__ = (
        Index("idx_pool_credentials_selectable", "status", "health_score", "priority"),
        Index("idx_pool_credentials_reset", "quota_reset_at"),
    )


class PoolProxy(ScoredResourceMixin, Base):
    """Outbound proxy used to reach upstream providers"""

    __tablename__ = "pool_proxies"

    id = Column(String(36), primary_key=True, default=_uuid, index=True)
    name = Column(String(100), unique=True, nullable=False)
    url = Column(String(500), nullable=False)  # may embed credentials; never logged in full
    proxy_type = Column(String(20), nullable=False, default="http")
    priority = Column(Integer, nullable=False, default=5)

    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)


class User(Base):
    """Caller account holding a speech allowance"""

    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=_uuid, index=True)
    user_key = Column(String(64), unique=True, index=True, nullable=False)
    hardware_id = Column(String(255), nullable=True, index=True)

    tier = Column(String(20), nullable=False, default="free")  # free/supporter/premium
    # -1 = unlimited (supporters)
    free_speeches_remaining = Column(Integer, nullable=False, default=0)
    total_speeches_generated = Column(Integer, nullable=False, default=0)
    supporter_code_used = Column(String(64), nullable=True)

    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    last_used_at = Column(DateTime(timezone=True), nullable=True)


class SupporterCode(Base):
    """Single-use code upgrading a caller's tier"""

    __tablename__ = "supporter_codes"

    id = Column(String(36), primary_key=True, default=_uuid, index=True)
    code = Column(String(64), unique=True, index=True, nullable=False)
    tier = Column(String(20), nullable=False, default="supporter")
    created_by = Column(String(100), nullable=True)
    used_by = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    redeemed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)


class UsageLog(Base):
    """One row per completed generation; read by reporting and the anonymous limiter"""

    __tablename__ = "usage_logs"

    id = Column(String(36), primary_key=True, default=_uuid)
    # NULL = anonymous caller
    user_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    credential_id = Column(
        String(36), ForeignKey("pool_credentials.id", ondelete="SET NULL"), nullable=True
    )
    client_ip = Column(String(64), nullable=True)
    voice_id = Column(String(100), nullable=True)
    model_used = Column(String(100), nullable=True)
    speech_text = Column(Text, nullable=True)
    units_consumed = Column(Integer, nullable=False, default=0)
    success = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    __table_args__ = (
        Index("idx_usage_logs_anonymous_ip", "user_id", "client_ip", "created_at"),
        Index("idx_usage_logs_credential", "credential_id", "created_at"),
    )
