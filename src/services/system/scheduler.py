"""
Interval job runner for pool maintenance.

APScheduler wrapper holding the quota-reset sweep and the promo expiry check.
Triggers run in APP_TIMEZONE; stored timestamps stay in UTC.
"""

from __future__ import annotations

import os
from datetime import datetime
from typing import Any, Callable

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from src.core.logger import logger

APP_TIMEZONE = os.getenv("APP_TIMEZONE", "UTC")


class TaskScheduler:
    """Process-wide APScheduler holding the pool interval jobs"""

    _instance: TaskScheduler | None = None

    def __init__(self, timezone: str | None = None) -> None:
        self.timezone = timezone or APP_TIMEZONE
        self.scheduler = AsyncIOScheduler(timezone=self.timezone)
        self._started = False

    @classmethod
    def get_instance(cls) -> TaskScheduler:
        if cls._instance is None:
            cls._instance = TaskScheduler()
        return cls._instance

    def add_interval_job(
        self,
        func: Callable[..., Any],
        seconds: int | None = None,
        minutes: int | None = None,
        hours: int | None = None,
        job_id: str | None = None,
        name: str | None = None,
        **kwargs: Any,
    ) -> None:
        """Run *func* every fixed interval; re-using *job_id* replaces the job."""
        trigger_kwargs: dict[str, int] = {}
        if seconds is not None:
            trigger_kwargs["seconds"] = seconds
        if minutes is not None:
            trigger_kwargs["minutes"] = minutes
        if hours is not None:
            trigger_kwargs["hours"] = hours
        if not trigger_kwargs:
            raise ValueError("add_interval_job requires seconds, minutes or hours")

        trigger = IntervalTrigger(timezone=self.timezone, **trigger_kwargs)

        job_id = job_id or func.__name__
        display_name = name or job_id

        interval_parts = []
        if hours:
            interval_parts.append(f"{hours}h")
        if minutes:
            interval_parts.append(f"{minutes}m")
        if seconds:
            interval_parts.append(f"{seconds}s")
        interval_desc = "".join(interval_parts)

        self.scheduler.add_job(
            func,
            trigger,
            id=job_id,
            name=display_name,
            replace_existing=True,
            # A missed tick is simply picked up by the next one
            coalesce=True,
            max_instances=1,
            kwargs=kwargs,
        )

        logger.info("Registered interval job: {} (every {})", display_name, interval_desc)

    def start(self) -> None:
        if self._started:
            logger.warning("Scheduler is already running")
            return

        self.scheduler.start()
        self._started = True
        logger.info("Task scheduler started (timezone: {})", self.timezone)
        self._log_next_run_times()

    def stop(self) -> None:
        if not self._started:
            return

        self.scheduler.shutdown(wait=False)
        self._started = False
        logger.info("Task scheduler stopped")

    def _log_next_run_times(self) -> None:
        for job in self.scheduler.get_jobs():
            next_run = getattr(job, "next_run_time", None)
            if not next_run:
                continue
            delta = next_run - datetime.now(next_run.tzinfo)
            minutes = max(int(delta.total_seconds()) // 60, 0)
            logger.info(
                "  - {}: next run {} (in {} min)",
                job.name,
                next_run.strftime("%Y-%m-%d %H:%M"),
                minutes,
            )

    def remove_job(self, job_id: str) -> None:
        try:
            self.scheduler.remove_job(job_id)
        except JobLookupError:
            logger.warning("No scheduled job {} to remove", job_id)
            return
        logger.info("Removed job: {}", job_id)

    def get_job_info(self, job_id: str) -> dict | None:
        job = self.scheduler.get_job(job_id)
        if not job:
            return None

        next_run = getattr(job, "next_run_time", None)
        return {
            "id": job.id,
            "name": job.name,
            "next_run_time": next_run.isoformat() if next_run else None,
        }


def get_scheduler() -> TaskScheduler:
    """Return the process-wide scheduler."""
    return TaskScheduler.get_instance()
