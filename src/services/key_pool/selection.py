"""
Credential selection.

Given the cached selectable set and a caller tier, pick one credential:

1. Re-check status, health and quota (the cached snapshot may be stale).
2. Narrow to the caller tier's preferred credentials; if none qualify, keep
   the whole selectable set (tier is a bias, never a block).
3. Order by priority asc, cost asc, health desc.
4. Choose uniformly at random among the credentials sharing the best priority.
"""

from __future__ import annotations

import random
from typing import Callable, Iterable, Sequence

from src.core.enums import CallerTier, ResourceStatus
from src.core.exceptions import NoHealthyCredentialException
from src.models.pool import Credential
from src.services.scored_pool.policy import CREDENTIAL_HEALTH_POLICY, HealthPolicy

TierFilter = Callable[[Credential], bool]

# Free traffic spends down cheap and promotional capacity first
FREE_MIN_PRIORITY = 5
SUPPORTER_MAX_PRIORITY = 7
SUPPORTER_MIN_HEALTH = 80.0
PREMIUM_MAX_PRIORITY = 3
PREMIUM_MIN_HEALTH = 90.0

TIER_FILTERS: dict[CallerTier, TierFilter] = {
    CallerTier.FREE: lambda c: c.priority >= FREE_MIN_PRIORITY or c.promo_expires_at is not None,
    CallerTier.SUPPORTER: lambda c: (
        c.priority <= SUPPORTER_MAX_PRIORITY and c.health_score >= SUPPORTER_MIN_HEALTH
    ),
    CallerTier.PREMIUM: lambda c: (
        c.priority <= PREMIUM_MAX_PRIORITY and c.health_score >= PREMIUM_MIN_HEALTH
    ),
}


def is_selectable(credential: Credential, policy: HealthPolicy = CREDENTIAL_HEALTH_POLICY) -> bool:
    return (
        credential.status == ResourceStatus.ACTIVE
        and credential.health_score >= policy.selectable_threshold
        and credential.has_quota
    )


def sort_key(credential: Credential) -> tuple[int, float, float]:
    return (credential.priority, credential.cost_per_unit, -credential.health_score)


def tier_candidates(
    selectable: Sequence[Credential], tier: CallerTier
) -> tuple[list[Credential], bool]:
    """Apply the tier preference.

    Returns the candidates and whether the tier filter had to be dropped.
    """
    tier_filter = TIER_FILTERS.get(tier)
    if tier_filter is None:
        return list(selectable), False
    preferred = [c for c in selectable if tier_filter(c)]
    if not preferred:
        return list(selectable), True
    return preferred, False


def rank_candidates(
    credentials: Iterable[Credential],
    tier: CallerTier | str,
    policy: HealthPolicy = CREDENTIAL_HEALTH_POLICY,
) -> tuple[list[Credential], bool]:
    """Selectable candidates for *tier* in preference order, plus the fallback flag."""
    tier = CallerTier.parse(tier)
    selectable = [c for c in credentials if is_selectable(c, policy)]
    if not selectable:
        return [], False
    candidates, fell_back = tier_candidates(selectable, tier)
    return sorted(candidates, key=sort_key), fell_back


def select_credential(
    credentials: Iterable[Credential],
    tier: CallerTier | str,
    rng: random.Random | None = None,
    policy: HealthPolicy = CREDENTIAL_HEALTH_POLICY,
) -> Credential:
    """Pick one credential for a caller of *tier*.

    Raises:
        NoHealthyCredentialException: nothing is active, healthy and within quota
    """
    tier = CallerTier.parse(tier)
    ranked, _ = rank_candidates(credentials, tier, policy)
    if not ranked:
        raise NoHealthyCredentialException(tier=tier.value)
    return choose_among_best(ranked, rng)


def choose_among_best(ranked: Sequence[Credential], rng: random.Random | None = None) -> Credential:
    """Uniform random pick among the candidates sharing the best priority."""
    best_priority = ranked[0].priority
    tied = [c for c in ranked if c.priority == best_priority]
    return (rng or random).choice(tied)
