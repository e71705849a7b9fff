"""SchedulerEngine: APScheduler lifecycle and the periodic expiration sweep."""

from __future__ import annotations

import logging
from typing import Any

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from deadlines.config import settings

logger = logging.getLogger(__name__)

SWEEP_JOB_ID = "ExpirationSweep"
SWEEP_TARGET = "deadlines.scheduling.callbacks:run_sweep"


class SchedulerEngine:
    """Owns the AsyncIOScheduler that fires reminder and expiration jobs.

    Per-task one-shot jobs are added through ScheduleStore; the engine only
    adds the recurring sweep. When ``jobstore_url`` is set, jobs are kept in
    a SQLAlchemy job store so they survive restarts.

    Args:
        timezone: IANA timezone string (default from settings).
        jobstore_url: SQLAlchemy URL for persistent jobs (default from settings).
        sweep_interval_minutes: Sweep period; 0 disables the sweep.
    """

    def __init__(
        self,
        timezone: str | None = None,
        jobstore_url: str | None = None,
        sweep_interval_minutes: int | None = None,
    ) -> None:
        self._timezone = timezone or settings.deadline_timezone
        jobstore_url = settings.schedule_jobstore_url if jobstore_url is None else jobstore_url
        self._sweep_interval = (
            settings.sweep_interval_minutes
            if sweep_interval_minutes is None
            else sweep_interval_minutes
        )

        options: dict[str, Any] = {"timezone": self._timezone}
        if jobstore_url:
            from apscheduler.jobstores.sqlalchemy import SQLAlchemyJobStore

            options["jobstores"] = {"default": SQLAlchemyJobStore(url=jobstore_url)}
        self._scheduler = AsyncIOScheduler(**options)
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    @property
    def scheduler(self) -> AsyncIOScheduler:
        return self._scheduler

    # -- Lifecycle -------------------------------------------------------------

    async def start(self) -> None:
        """Start the scheduler and register the sweep job."""
        self._scheduler.start()
        self._running = True
        self._add_sweep_job()
        logger.info(
            "Scheduler started with %d job(s) (tz=%s)",
            len(self._scheduler.get_jobs()),
            self._timezone,
        )

    async def stop(self) -> None:
        """Shut down the scheduler."""
        if self._running:
            self._scheduler.shutdown(wait=False)
            self._running = False
            logger.info("Scheduler stopped")

    # -- Internal --------------------------------------------------------------

    def _add_sweep_job(self):
        if self._sweep_interval <= 0:
            logger.info("Expiration sweep disabled")
            return None
        return self._scheduler.add_job(
            SWEEP_TARGET,
            trigger=IntervalTrigger(minutes=self._sweep_interval, timezone=self._timezone),
            id=SWEEP_JOB_ID,
            name=SWEEP_JOB_ID,
            coalesce=True,
            max_instances=1,
            replace_existing=True,
        )
