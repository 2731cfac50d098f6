"""Value builders shared by tests."""

from __future__ import annotations

from datetime import date
from typing import Any

from src.core.enums import ResourceStatus
from src.models.pool import Credential


def make_credential(credential_id: str = "cred-1", **overrides: Any) -> Credential:
    """Build a selectable credential value; override any field."""
    values: dict[str, Any] = {
        "id": credential_id,
        "name": f"name-{credential_id}",
        "secret": f"sk_{credential_id}_secret",
        "tier": "promo_starter",
        "cost_per_unit": 0.00015,
        "monthly_quota": 30000,
        "quota_used_this_period": 0,
        "quota_reset_at": date(2026, 11, 15),
        "priority": 5,
        "status": ResourceStatus.ACTIVE,
        "health_score": 100.0,
        "consecutive_failures": 0,
    }
    values.update(overrides)
    return Credential(**values)
