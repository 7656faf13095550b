"""Recurring sync timer using APScheduler.

Wraps an AsyncIOScheduler so the connector can register one interval job
per purpose without knowing about triggers or scheduler lifecycle.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

logger = logging.getLogger(__name__)


TickFunc = Callable[[], Awaitable[Any]]


class SyncTimer:
    """Interval jobs on an asyncio scheduler.

    The scheduler is started lazily on the first ``schedule()`` call, which
    must happen on the running event loop.

    Usage:
        timer = SyncTimer()
        timer.schedule("junction_sync", tick, interval_seconds=3600)
        # ... app runs ...
        timer.shutdown()
    """

    def __init__(self, scheduler: Optional[AsyncIOScheduler] = None):
        self.scheduler = scheduler or AsyncIOScheduler(timezone=timezone.utc)

    @property
    def is_running(self) -> bool:
        return self.scheduler.running

    def schedule(
        self,
        job_id: str,
        func: TickFunc,
        interval_seconds: float,
        run_immediately: bool = True,
    ) -> None:
        """Register ``func`` to run every ``interval_seconds``.

        Args:
            job_id: Stable id; an existing job with the same id is replaced.
            func: Coroutine function run on each tick.
            interval_seconds: Seconds between ticks.
            run_immediately: Fire the first tick now instead of after one interval.
        """
        if interval_seconds <= 0:
            raise ValueError(f"interval_seconds must be positive, got {interval_seconds}")

        kwargs = {}
        if run_immediately:
            kwargs["next_run_time"] = datetime.now(timezone.utc)

        self.scheduler.add_job(
            func,
            IntervalTrigger(seconds=interval_seconds),
            id=job_id,
            name=job_id.replace("_", " ").title(),
            replace_existing=True,
            coalesce=True,
            **kwargs,
        )
        if not self.scheduler.running:
            self.scheduler.start()
        logger.info(f"Scheduled {job_id} every {interval_seconds:g}s (immediate={run_immediately})")

    def cancel(self, job_id: str) -> None:
        """Remove the job if present."""
        try:
            self.scheduler.remove_job(job_id)
            logger.info(f"Cancelled {job_id}")
        except JobLookupError:
            pass

    def is_scheduled(self, job_id: str) -> bool:
        return self.scheduler.get_job(job_id) is not None

    def next_run_time(self, job_id: str) -> Optional[datetime]:
        """Next tick time, or None if the job is not scheduled."""
        job = self.scheduler.get_job(job_id)
        if job and job.next_run_time:
            return job.next_run_time
        return None

    def get_status(self) -> dict:
        """Scheduler status for diagnostics."""
        status = {"is_running": self.is_running, "jobs": []}
        for job in self.scheduler.get_jobs():
            status["jobs"].append({
                "id": job.id,
                "name": job.name,
                "next_run_time": job.next_run_time.isoformat() if job.next_run_time else None,
            })
        return status

    def shutdown(self) -> None:
        """Stop the scheduler. Jobs are dropped; running tasks are not cancelled."""
        if not self.scheduler.running:
            return
        logger.info("Shutting down sync timer...")
        self.scheduler.shutdown(wait=False)
