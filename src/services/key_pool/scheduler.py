"""
Credential pool maintenance jobs.

- Quota-reset sweep: rolls over credentials whose reset date arrived and
  reinstates auto-paused ones (every ``quota_sweep_interval_minutes``).
- Promo expiry check: logs credentials whose promotion ends soon
  (every ``promo_check_interval_hours``).

Each tick catches and logs its own errors; a failed tick is simply retried on
the next one and never affects request handling.
"""

from __future__ import annotations

from typing import Any

from src.core.logger import logger
from src.core.metrics import pool_sweep_runs_total
from src.services.key_pool.manager import PoolManager
from src.services.system.scheduler import TaskScheduler, get_scheduler


class PoolMaintenanceScheduler:
    """Registers the pool's periodic jobs on the shared task scheduler"""

    QUOTA_SWEEP_JOB_ID = "pool_quota_reset_sweep"
    PROMO_CHECK_JOB_ID = "pool_promo_expiry_check"

    def __init__(self, manager: PoolManager, scheduler: TaskScheduler | None = None) -> None:
        self.manager = manager
        self.scheduler = scheduler or get_scheduler()
        self.running = False

    async def start(self) -> Any:
        if self.running:
            logger.warning("PoolMaintenanceScheduler already running")
            return

        self.running = True
        cfg = self.manager.config
        self.scheduler.add_interval_job(
            self.quota_sweep_tick,
            minutes=cfg.quota_sweep_interval_minutes,
            job_id=self.QUOTA_SWEEP_JOB_ID,
            name="Credential quota reset sweep",
        )
        self.scheduler.add_interval_job(
            self.promo_check_tick,
            hours=cfg.promo_check_interval_hours,
            job_id=self.PROMO_CHECK_JOB_ID,
            name="Credential promo expiry check",
        )
        logger.info("PoolMaintenanceScheduler started")

        # Catch up immediately on startup instead of waiting a full interval
        await self.quota_sweep_tick()

    async def stop(self) -> Any:
        if not self.running:
            return
        self.scheduler.remove_job(self.QUOTA_SWEEP_JOB_ID)
        self.scheduler.remove_job(self.PROMO_CHECK_JOB_ID)
        self.running = False
        logger.info("PoolMaintenanceScheduler stopped")

    async def quota_sweep_tick(self) -> None:
        try:
            await self.manager.run_quota_reset_sweep()
        except Exception as e:
            pool_sweep_runs_total.labels(job="quota_reset", status="error").inc()
            logger.opt(exception=e).error("Quota reset sweep failed: {}", e)
            return
        pool_sweep_runs_total.labels(job="quota_reset", status="ok").inc()

    async def promo_check_tick(self) -> None:
        try:
            await self.manager.check_expiring_promos()
        except Exception as e:
            pool_sweep_runs_total.labels(job="promo_check", status="error").inc()
            logger.opt(exception=e).error("Promo expiry check failed: {}", e)
            return
        pool_sweep_runs_total.labels(job="promo_check", status="ok").inc()
