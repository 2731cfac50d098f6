"""Health policy for scored resource pools.

Every pooled resource (upstream credential, outbound proxy) carries a
``health_score`` in [0, 100] and a ``consecutive_failures`` counter. Success
raises the score, failure lowers it; crossing the pause threshold or the
consecutive-failure limit takes the resource out of rotation.

The functions here are pure: repositories use the policy numbers to build
their atomic UPDATE statements and call :func:`decide_pause` on the returned
row.
"""

from __future__ import annotations

from dataclasses import dataclass

from src.core.enums import PauseCause

MAX_HEALTH = 100.0
MIN_HEALTH = 0.0

# Note fragments written by older deployments before pause_cause existed.
# Only consulted for rows whose pause_cause is NULL.
LEGACY_AUTO_PAUSE_PATTERNS = ("Auto-paused: Health score", "quota")


@dataclass(frozen=True, slots=True)
class HealthPolicy:
    """Named health constants for one pool."""

    success_increment: float
    failure_decrement: float
    # Auto-pause when health drops strictly below this
    pause_threshold: float
    # Minimum health to be returned by selection
    selectable_threshold: float
    # None disables the consecutive-failure trigger
    max_consecutive_failures: int | None = None


@dataclass(frozen=True, slots=True)
class PauseDecision:
    cause: PauseCause
    reason: str


CREDENTIAL_HEALTH_POLICY = HealthPolicy(
    success_increment=2.0,
    failure_decrement=10.0,
    pause_threshold=80.0,
    selectable_threshold=80.0,
    max_consecutive_failures=5,
)

PROXY_HEALTH_POLICY = HealthPolicy(
    success_increment=5.0,
    failure_decrement=10.0,
    pause_threshold=30.0,
    selectable_threshold=30.0,
    max_consecutive_failures=None,
)


def clamp_health(value: float) -> float:
    return max(MIN_HEALTH, min(MAX_HEALTH, value))


def health_after_success(policy: HealthPolicy, health_score: float) -> float:
    return clamp_health(health_score + policy.success_increment)


def health_after_failure(policy: HealthPolicy, health_score: float) -> float:
    return clamp_health(health_score - policy.failure_decrement)


def decide_pause(
    policy: HealthPolicy, health_score: float, consecutive_failures: int
) -> PauseDecision | None:
    """Return why a resource in this state must be paused, or ``None``.

    The health reason takes precedence when both triggers fire.
    """
    if health_score < policy.pause_threshold:
        return PauseDecision(
            cause=PauseCause.AUTO_HEALTH,
            reason=(
                f"Health score dropped below {policy.pause_threshold:g}% "
                f"({health_score:g}%)"
            ),
        )
    limit = policy.max_consecutive_failures
    if limit is not None and consecutive_failures >= limit:
        return PauseDecision(
            cause=PauseCause.AUTO_HEALTH,
            reason=f"{limit} consecutive failures",
        )
    return None


def is_auto_resumable(pause_cause: PauseCause | None, notes: str | None) -> bool:
    """Whether a paused resource may be reinstated by the scheduled sweep.

    Tagged rows use their cause; untagged legacy rows fall back to the note
    patterns older deployments wrote.
    """
    if pause_cause is not None:
        return pause_cause.is_automatic
    if not notes:
        return False
    return any(pattern in notes for pattern in LEGACY_AUTO_PAUSE_PATTERNS)


def pause_note(reason: str, cause: PauseCause, at_iso: str) -> str:
    """Prefix prepended to a resource's notes when it is paused."""
    prefix = "Auto-paused" if cause.is_automatic else "Paused"
    return f"{prefix}: {reason} at {at_iso}. "
