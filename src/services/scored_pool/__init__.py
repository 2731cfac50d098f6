"""Health-scored resource pools shared by credentials and proxies."""

from src.services.scored_pool.policy import (
    CREDENTIAL_HEALTH_POLICY,
    PROXY_HEALTH_POLICY,
    HealthPolicy,
    PauseDecision,
    decide_pause,
    is_auto_resumable,
)
from src.services.scored_pool.repository import FailureOutcome, ScoredResourceRepository

__all__ = [
    "CREDENTIAL_HEALTH_POLICY",
    "FailureOutcome",
    "HealthPolicy",
    "PROXY_HEALTH_POLICY",
    "PauseDecision",
    "ScoredResourceRepository",
    "decide_pause",
    "is_auto_resumable",
]
