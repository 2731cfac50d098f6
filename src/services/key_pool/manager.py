"""Credential Pool Manager.

Async facade over the credential store. Decides which upstream credential
serves each request and feeds request outcomes back into credential health
and quota.

Usage::

    manager = PoolManager(CredentialRepository(session_factory), PoolConfig())
    credential = await manager.select_key("supporter")
    # ... call upstream with credential.secret ...
    await manager.record_success(credential.id, units=len(text))

All authoritative state lives in the store; the manager only owns a
short-lived snapshot of the selectable set, invalidated by every mutation.
Store calls run in a worker thread under ``PoolConfig.store_timeout_seconds``.
"""

from __future__ import annotations

import asyncio
import random
from datetime import date, datetime, timezone
from typing import Any

from pydantic import ValidationError

from src.core.enums import CallerTier, PauseCause
from src.core.exceptions import (
    InvalidRequestException,
    NoHealthyCredentialException,
    PoolServiceException,
    StoreUnavailableException,
)
from src.core.logger import logger
from src.core.metrics import (
    pool_credentials,
    pool_outcome_total,
    pool_pause_total,
    pool_quota_resets_total,
    pool_selection_total,
    pool_tier_fallback_total,
)
from src.models.pool import Credential, CredentialCreate, PoolStats
from src.services.key_pool.cache import SelectionCache
from src.services.key_pool.config import PoolConfig
from src.services.key_pool.repository import CredentialRepository, QuotaReset
from src.services.key_pool.selection import choose_among_best, rank_candidates
from src.services.scored_pool.service import StoreBoundService


class PoolManager(StoreBoundService):
    """Select credentials and keep their health and quota current."""

    store_label = "Pool"

    def __init__(
        self,
        repository: CredentialRepository,
        config: PoolConfig | None = None,
        *,
        cache: SelectionCache | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self.repository = repository
        self.config = config or PoolConfig()
        super().__init__(self.config.store_timeout_seconds)
        self.cache = cache or SelectionCache(self.config.cache_ttl_seconds)
        self._rng = rng
        self._initial_sweep_done = False
        self._sweep_lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------

    async def select_key(self, tier: CallerTier | str = CallerTier.UNKNOWN) -> Credential:
        """Pick a credential for a caller of *tier*.

        Raises:
            NoHealthyCredentialException: nothing active, healthy and within quota
            StoreUnavailableException: the snapshot could not be refreshed in time
        """
        tier = CallerTier.parse(tier)

        if not self._initial_sweep_done:
            await self._catch_up_quota_resets()

        candidates = self.cache.get()
        if candidates is None:
            generation = self.cache.generation
            try:
                rows = await self._store("select_key", self.repository.list_selectable)
            except StoreUnavailableException:
                pool_selection_total.labels(tier=tier.value, outcome="store_unavailable").inc()
                raise
            candidates = self.cache.put(rows, generation)

        ranked, fell_back = rank_candidates(candidates, tier, self.repository.policy)
        if fell_back:
            pool_tier_fallback_total.labels(tier=tier.value).inc()
            logger.debug("Pool: no {} credential available, using full selectable set", tier.value)

        if not ranked:
            pool_selection_total.labels(tier=tier.value, outcome="exhausted").inc()
            logger.warning("Pool: no healthy credential available for tier {}", tier.value)
            raise NoHealthyCredentialException(tier=tier.value)

        chosen = choose_among_best(ranked, self._rng)
        pool_selection_total.labels(tier=tier.value, outcome="selected").inc()
        logger.debug(
            "Pool: selected credential {} ({}) for tier {}",
            chosen.id[:8],
            chosen.name,
            tier.value,
        )
        return chosen

    async def _catch_up_quota_resets(self) -> None:
        """Run the quota sweep once per process before the first selection.

        A failure is logged and retried on the next selection; it never blocks
        selection itself.
        """
        async with self._sweep_lock:
            if self._initial_sweep_done:
                return
            try:
                await self.run_quota_reset_sweep()
            except PoolServiceException as exc:
                logger.warning("Pool: initial quota sweep failed, will retry: {}", exc)

    # ------------------------------------------------------------------
    # Outcome feedback (best-effort, never raises)
    # ------------------------------------------------------------------

    async def record_success(self, credential_id: str, units: int = 0) -> Credential | None:
        """Apply success bookkeeping and consume *units* of quota.

        Bookkeeping failures are logged and swallowed so they never replace
        the caller's real result. Returns the new state, or ``None`` on failure.
        """
        units = max(int(units), 0)
        try:
            credential = await self._store(
                "record_success", self.repository.record_success, credential_id, units
            )
        except PoolServiceException as exc:
            logger.warning(
                "Pool: failed to record success for credential {}: {}", credential_id[:8], exc
            )
            return None
        finally:
            self.cache.invalidate()

        pool_outcome_total.labels(pool="credential", outcome="success").inc()
        return credential

    async def record_failure(self, credential_id: str, reason: str) -> Credential | None:
        """Apply failure bookkeeping, auto-pausing the credential when due.

        Like ``record_success`` this never raises: the upstream error being
        reported is what the caller must see.
        """
        try:
            outcome = await self._store(
                "record_failure", self.repository.record_failure, credential_id, reason
            )
        except PoolServiceException as exc:
            logger.warning(
                "Pool: failed to record failure for credential {}: {}", credential_id[:8], exc
            )
            return None
        finally:
            self.cache.invalidate()

        pool_outcome_total.labels(pool="credential", outcome="failure").inc()
        credential = outcome.value
        if outcome.paused is not None:
            pool_pause_total.labels(pool="credential", cause=outcome.paused.cause.value).inc()
            logger.warning(
                "Pool: credential {} ({}) auto-paused: {}",
                credential.id[:8],
                credential.name,
                outcome.paused.reason,
            )
        return credential

    # ------------------------------------------------------------------
    # Administration
    # ------------------------------------------------------------------

    async def pause(
        self, credential_id: str, reason: str, cause: PauseCause = PauseCause.MANUAL
    ) -> Credential:
        try:
            credential = await self._store(
                "pause", self.repository.pause, credential_id, reason, cause
            )
        finally:
            self.cache.invalidate()
        pool_pause_total.labels(pool="credential", cause=cause.value).inc()
        logger.info(
            "Pool: credential {} ({}) paused [{}]: {}",
            credential.id[:8],
            credential.name,
            cause.value,
            reason,
        )
        return credential

    async def resume(self, credential_id: str) -> Credential:
        try:
            credential = await self._store("resume", self.repository.resume, credential_id)
        finally:
            self.cache.invalidate()
        logger.info("Pool: credential {} ({}) resumed", credential.id[:8], credential.name)
        return credential

    async def reset_health(self, credential_id: str) -> Credential:
        try:
            credential = await self._store(
                "reset_health", self.repository.reset_health, credential_id
            )
        finally:
            self.cache.invalidate()
        logger.info("Pool: credential {} health reset", credential.id[:8])
        return credential

    async def add(self, spec: CredentialCreate | dict[str, Any]) -> Credential:
        """Validate and insert a credential; returns it with its first reset date.

        Raises:
            InvalidRequestException: missing name/secret or out-of-range values
            DuplicateCredentialException: the secret or name is already pooled
        """
        if not isinstance(spec, CredentialCreate):
            try:
                spec = CredentialCreate.model_validate(spec)
            except ValidationError as exc:
                raise InvalidRequestException(
                    "Invalid credential definition",
                    details={
                        "errors": exc.errors(
                            include_url=False, include_context=False, include_input=False
                        )
                    },
                ) from exc

        try:
            credential = await self._store("add", self.repository.insert, spec)
        finally:
            self.cache.invalidate()
        logger.info(
            "Pool: added credential {} ({}, {}) resets {}",
            credential.name,
            credential.masked_secret,
            credential.tier,
            credential.quota_reset_at.isoformat(),
        )
        return credential

    async def delete(self, credential_id: str) -> None:
        try:
            await self._store("delete", self.repository.delete, credential_id)
        finally:
            self.cache.invalidate()
        logger.info("Pool: credential {} deleted", credential_id[:8])

    # ------------------------------------------------------------------
    # Reads (cache-independent)
    # ------------------------------------------------------------------

    async def get(self, credential_id: str) -> Credential:
        return await self._store("get", self.repository.get, credential_id)

    async def list_credentials(self) -> list[Credential]:
        return await self._store("list", self.repository.list_all)

    async def stats(self) -> PoolStats:
        stats = await self._store("stats", self.repository.stats)
        pool_credentials.labels(status="active").set(stats.active)
        pool_credentials.labels(status="paused").set(stats.paused)
        return stats

    async def expiring_promos(self, window_days: int | None = None) -> list[Credential]:
        window = self.config.promo_window_days if window_days is None else window_days
        return await self._store("expiring_promos", self.repository.expiring_promos, window)

    # ------------------------------------------------------------------
    # Background sweeps
    # ------------------------------------------------------------------

    async def run_quota_reset_sweep(self, today: date | None = None) -> list[QuotaReset]:
        """Roll over due quotas and reinstate auto-paused credentials."""
        today = today or datetime.now(timezone.utc).date()
        results = await self._store("quota_sweep", self.repository.reset_due_quotas, today)
        self._initial_sweep_done = True

        if not results:
            return results

        self.cache.invalidate()
        pool_quota_resets_total.inc(len(results))
        logger.info("Pool: reset quotas for {} credential(s)", len(results))
        for reset in results:
            credential = reset.credential
            logger.info(
                "  - {} (status: {}{}, next reset: {})",
                credential.name,
                credential.status.value,
                ", resumed" if reset.resumed else "",
                credential.quota_reset_at.isoformat(),
            )
        return results

    async def check_expiring_promos(self) -> list[Credential]:
        """Log every active credential whose promotion ends within the window."""
        expiring = await self.expiring_promos()
        if expiring:
            logger.warning(
                "Pool: {} credential(s) with promotions expiring within {} days",
                len(expiring),
                self.config.promo_window_days,
            )
            for credential in expiring:
                logger.warning(
                    "  - {} ({}) expires {}",
                    credential.name,
                    credential.masked_secret,
                    credential.promo_expires_at.isoformat() if credential.promo_expires_at else "?",
                )
        return expiring
