"""Baseline migration - credential pool, proxies, users, codes, usage

Revision ID: 20261001_baseline
Revises:
Create Date: 2026-10-01

Creates all tables from scratch.
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers
revision = "20261001_baseline"
down_revision = None
branch_labels = None
depends_on = None


def _scored_resource_columns() -> list[sa.Column]:
    """Health/status columns shared by pool_credentials and pool_proxies."""
    return [
        sa.Column(
            "status",
            postgresql.ENUM("active", "paused", name="resourcestatus", create_type=False),
            nullable=False,
            server_default="active",
        ),
        sa.Column(
            "pause_cause",
            postgresql.ENUM(
                "auto_health", "auto_quota", "manual", name="pausecause", create_type=False
            ),
            nullable=True,
        ),
        sa.Column("health_score", sa.Float, nullable=False, server_default="100"),
        sa.Column("consecutive_failures", sa.Integer, nullable=False, server_default="0"),
        sa.Column("total_requests", sa.Integer, nullable=False, server_default="0"),
        sa.Column("successful_requests", sa.Integer, nullable=False, server_default="0"),
        sa.Column("last_success_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_failure_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_failure_reason", sa.Text, nullable=True),
        sa.Column("notes", sa.Text, nullable=True),
    ]


def upgrade() -> None:
    # Create ENUM types (with IF NOT EXISTS for idempotency)
    op.execute(
        "DO $$ BEGIN CREATE TYPE resourcestatus AS ENUM ('active', 'paused'); "
        "EXCEPTION WHEN duplicate_object THEN NULL; END $$"
    )
    op.execute(
        "DO $$ BEGIN CREATE TYPE pausecause AS ENUM ('auto_health', 'auto_quota', 'manual'); "
        "EXCEPTION WHEN duplicate_object THEN NULL; END $$"
    )

    # ==================== pool_credentials ====================
    op.create_table(
        "pool_credentials",
        sa.Column("id", sa.String(36), primary_key=True, index=True),
        sa.Column("name", sa.String(100), unique=True, nullable=False),
        sa.Column("secret", sa.String(500), unique=True, nullable=False),
        sa.Column("tier", sa.String(50), nullable=False, server_default="promo_starter"),
        sa.Column("cost_per_unit", sa.Float, nullable=False, server_default="0.00015"),
        sa.Column("monthly_quota", sa.Integer, nullable=False, server_default="30000"),
        sa.Column("quota_used_this_period", sa.Integer, nullable=False, server_default="0"),
        sa.Column("quota_reset_at", sa.Date, nullable=False),
        sa.Column("priority", sa.Integer, nullable=False, server_default="5"),
        sa.Column("region_code", sa.String(8), nullable=True),
        sa.Column("promo_type", sa.String(50), nullable=True),
        sa.Column("promo_expires_at", sa.DateTime(timezone=True), nullable=True),
        *_scored_resource_columns(),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
        sa.Column(
            "updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
    )
    op.create_index(
        "idx_pool_credentials_selectable",
        "pool_credentials",
        ["status", "health_score", "priority"],
    )
    op.create_index("idx_pool_credentials_reset", "pool_credentials", ["quota_reset_at"])

    # ==================== pool_proxies ====================
    op.create_table(
        "pool_proxies",
        sa.Column("id", sa.String(36), primary_key=True, index=True),
        sa.Column("name", sa.String(100), unique=True, nullable=False),
        sa.Column("url", sa.String(500), nullable=False),
        sa.Column("proxy_type", sa.String(20), nullable=False, server_default="http"),
        sa.Column("priority", sa.Integer, nullable=False, server_default="5"),
        *_scored_resource_columns(),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
        sa.Column(
            "updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
    )

    # ==================== users ====================
    op.create_table(
        "users",
        sa.Column("id", sa.String(36), primary_key=True, index=True),
        sa.Column("user_key", sa.String(64), unique=True, index=True, nullable=False),
        sa.Column("hardware_id", sa.String(255), nullable=True, index=True),
        sa.Column("tier", sa.String(20), nullable=False, server_default="free"),
        sa.Column("free_speeches_remaining", sa.Integer, nullable=False, server_default="0"),
        sa.Column("total_speeches_generated", sa.Integer, nullable=False, server_default="0"),
        sa.Column("supporter_code_used", sa.String(64), nullable=True),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
        sa.Column("last_used_at", sa.DateTime(timezone=True), nullable=True),
    )

    # ==================== supporter_codes ====================
    op.create_table(
        "supporter_codes",
        sa.Column("id", sa.String(36), primary_key=True, index=True),
        sa.Column("code", sa.String(64), unique=True, index=True, nullable=False),
        sa.Column("tier", sa.String(20), nullable=False, server_default="supporter"),
        sa.Column("created_by", sa.String(100), nullable=True),
        sa.Column(
            "used_by",
            sa.String(36),
            sa.ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("redeemed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
    )

    # ==================== usage_logs ====================
    op.create_table(
        "usage_logs",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "user_id",
            sa.String(36),
            sa.ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column(
            "credential_id",
            sa.String(36),
            sa.ForeignKey("pool_credentials.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("client_ip", sa.String(64), nullable=True),
        sa.Column("voice_id", sa.String(100), nullable=True),
        sa.Column("model_used", sa.String(100), nullable=True),
        sa.Column("speech_text", sa.Text, nullable=True),
        sa.Column("units_consumed", sa.Integer, nullable=False, server_default="0"),
        sa.Column("success", sa.Boolean, nullable=False, server_default="true"),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
    )
    op.create_index(
        "idx_usage_logs_anonymous_ip", "usage_logs", ["user_id", "client_ip", "created_at"]
    )
    op.create_index("idx_usage_logs_credential", "usage_logs", ["credential_id", "created_at"])


def downgrade() -> None:
    op.drop_table("usage_logs")
    op.drop_table("supporter_codes")
    op.drop_table("users")
    op.drop_table("pool_proxies")
    op.drop_table("pool_credentials")
    op.execute("DROP TYPE IF EXISTS pausecause")
    op.execute("DROP TYPE IF EXISTS resourcestatus")
