"""
Pipeline Scheduler — APScheduler-backed periodic jobs and one-shot timers.

Periodic jobs (registered by the pipeline):
1. Collection cycle (every collection interval) — pull points and run a cycle
2. Batch flush (every flush interval) — persist buffered cycles
3. Notification drain (every few seconds) — send queued notifications
4. Alert expiry (every N minutes) — expire stale active alerts

One-shot escalation deadlines use DateTrigger jobs keyed by alert id.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Optional

import structlog
from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.date import DateTrigger
from apscheduler.triggers.interval import IntervalTrigger

logger = structlog.get_logger(__name__)


class SchedulerTimers:
    """TimerService on top of an AsyncIOScheduler."""

    def __init__(self, scheduler: AsyncIOScheduler):
        self.scheduler = scheduler

    def schedule(
        self,
        key: str,
        delay_seconds: float,
        callback: Callable[[], Awaitable[Any]],
    ) -> None:
        run_date = datetime.now(timezone.utc) + timedelta(seconds=delay_seconds)
        self.scheduler.add_job(
            callback,
            DateTrigger(run_date=run_date),
            id=key,
            replace_existing=True,
            misfire_grace_time=None,
        )

    def cancel(self, key: str) -> bool:
        try:
            self.scheduler.remove_job(key)
        except JobLookupError:
            return False
        return True


class PipelineScheduler:
    """Owns the AsyncIOScheduler shared by periodic jobs and escalation timers."""

    def __init__(self, scheduler: Optional[AsyncIOScheduler] = None):
        self.scheduler = scheduler or AsyncIOScheduler(timezone=timezone.utc)
        self.timers = SchedulerTimers(self.scheduler)

    @property
    def running(self) -> bool:
        return self.scheduler.running

    def add_interval_job(
        self,
        func: Callable[[], Awaitable[Any]],
        seconds: float,
        job_id: str,
    ) -> None:
        self.scheduler.add_job(
            func,
            IntervalTrigger(seconds=seconds),
            id=job_id,
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )

    def remove_job(self, job_id: str) -> None:
        try:
            self.scheduler.remove_job(job_id)
        except JobLookupError:
            pass

    def start(self) -> None:
        if not self.scheduler.running:
            self.scheduler.start()
            logger.info("pipeline_scheduler_started", jobs=len(self.scheduler.get_jobs()))

    async def stop(self) -> None:
        """Stop the scheduler without waiting on in-flight jobs."""
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            # AsyncIOScheduler runs the shutdown on the next loop iteration
            await asyncio.sleep(0)
            logger.info("pipeline_scheduler_stopped")
