"""
Session Monitor Scheduler

Fires the session monitor job on a cron cadence inside the API process.
Only one run is ever in flight: triggers that arrive while a run is active
are dropped, not queued.
"""

import asyncio
import logging
from datetime import datetime
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from .config import PRACTICE_TIMEZONE, RUN_JOB_ON_START, SESSION_MONITOR_CRON
from .shared.validators import utcnow

logger = logging.getLogger(__name__)

JOB_ID = "session_monitor"


class SessionMonitorScheduler:
    def __init__(
        self,
        job,
        cron_expression: str = SESSION_MONITOR_CRON,
        run_on_start: bool = RUN_JOB_ON_START,
        timezone: str = PRACTICE_TIMEZONE,
    ):
        self.job = job
        self.cron_expression = cron_expression
        self.run_on_start = run_on_start
        self.timezone = timezone
        self._scheduler: Optional[AsyncIOScheduler] = None
        self._running = False
        self._current: Optional[asyncio.Task] = None
        self.last_run_at: Optional[datetime] = None
        self.last_summary: Optional[dict] = None

    @property
    def is_active(self) -> bool:
        return self._scheduler is not None

    @property
    def is_running(self) -> bool:
        return self._running

    def start(self) -> None:
        """
        Schedule the job. Must be called with a running event loop.

        Raises ValueError for an invalid cron expression.
        """
        if self._scheduler is not None:
            logger.warning("⚠️ Session monitor scheduler already started")
            return

        trigger = CronTrigger.from_crontab(self.cron_expression, timezone=self.timezone)

        scheduler = AsyncIOScheduler(timezone=self.timezone)
        scheduler.add_job(
            self._execute,
            trigger=trigger,
            id=JOB_ID,
            name="Session Monitor",
            coalesce=True,  # Combine missed runs
            max_instances=1,
            misfire_grace_time=300,
        )

        if self.run_on_start:
            logger.info("ℹ️ Running session monitor immediately on start")
            scheduler.add_job(self._execute, trigger="date", id=f"{JOB_ID}_startup", name="Session Monitor (Startup)")

        scheduler.start()
        self._scheduler = scheduler
        logger.info(f"✅ Session monitor scheduler started ({self.cron_expression}, {self.timezone})")

    def stop(self) -> None:
        """
        Stop future triggers; an in-flight run is left to finish.

        Shutting down the executor cancels its pending futures, but the run
        itself is a separate shielded task and keeps going.
        """
        if self._scheduler is None:
            return
        self._scheduler.shutdown(wait=False)
        self._scheduler = None
        logger.info("ℹ️ Session monitor scheduler stopped")

    async def wait_until_idle(self) -> None:
        """Wait for the in-flight run, if any, without cancelling it"""
        current = self._current
        if current is not None and not current.done():
            logger.info("ℹ️ Waiting for in-flight session monitor run to finish")
            await asyncio.shield(current)

    async def run_now(self) -> bool:
        """Force a run under the same guard; False when one was already in flight"""
        return await self._execute()

    async def _execute(self) -> bool:
        # Test-and-set with no await in between: one run per event loop
        if self._running:
            logger.warning("⚠️ Session monitor already running, skipping this trigger")
            return False
        self._running = True

        self._current = asyncio.ensure_future(self._run_job())
        await asyncio.shield(self._current)
        return True

    async def _run_job(self) -> None:
        try:
            self.last_summary = await self.job.run()
            self.last_run_at = utcnow()
        except Exception as e:
            logger.error(f"❌ Session monitor run failed: {e}", exc_info=True)
        finally:
            self._running = False

    def status(self) -> dict:
        next_run = None
        if self._scheduler is not None:
            scheduled = self._scheduler.get_job(JOB_ID)
            if scheduled and scheduled.next_run_time:
                next_run = scheduled.next_run_time.isoformat()
        return {
            "active": self.is_active,
            "running": self.is_running,
            "cron": self.cron_expression,
            "timezone": self.timezone,
            "next_run_at": next_run,
            "last_run_at": self.last_run_at.isoformat() if self.last_run_at else None,
            "last_summary": self.last_summary,
        }
