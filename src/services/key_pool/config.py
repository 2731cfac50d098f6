"""Credential pool runtime configuration."""

from __future__ import annotations

from dataclasses import dataclass

from src.config import Config
from src.config.constants import CacheTTL


@dataclass(frozen=True, slots=True)
class PoolConfig:
    """Timing knobs for the pool manager and its background sweeps.

    Health numbers are not here; they live in ``HealthPolicy``.
    """

    # -- Selection cache ------------------------------------------------------
    cache_ttl_seconds: float = float(CacheTTL.POOL_SELECTION)

    # -- Store ----------------------------------------------------------------
    store_timeout_seconds: float = 5.0

    # -- Background sweeps ----------------------------------------------------
    quota_sweep_interval_minutes: int = 60
    promo_check_interval_hours: int = 24
    promo_window_days: int = 7

    @classmethod
    def from_config(cls, cfg: Config) -> PoolConfig:
        return cls(
            cache_ttl_seconds=cfg.pool_cache_ttl_seconds,
            store_timeout_seconds=cfg.pool_store_timeout_seconds,
            quota_sweep_interval_minutes=cfg.pool_quota_sweep_interval_minutes,
            promo_check_interval_hours=cfg.pool_promo_check_interval_hours,
            promo_window_days=cfg.pool_promo_window_days,
        )
