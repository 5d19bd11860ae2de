"""
SCHEDULER BOOTSTRAP

Owns the APScheduler instance. Orchestration only, no business logic.
"""

import logging

import pytz
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from roi_ledger.config import settings
from roi_ledger.scheduler.jobs import payout_tick_job

logger = logging.getLogger(__name__)


class LedgerScheduler:
    """Daily payout tick"""

    def __init__(self):
        self.timezone = pytz.timezone(settings.TIMEZONE)
        self.scheduler = AsyncIOScheduler(timezone=self.timezone)

    def start(self):
        logger.info("🚀 Starting payout scheduler...")

        self.scheduler.add_job(
            payout_tick_job,
            CronTrigger(
                hour=settings.SCHEDULER_TICK_HOUR,
                minute=settings.SCHEDULER_TICK_MINUTE,
                timezone=self.timezone,
            ),
            id="payout_tick",
            name="Daily Payout Tick",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )

        self.scheduler.start()
        for job in self.scheduler.get_jobs():
            logger.info(f"   • {job.name}: next run {job.next_run_time}")

    @property
    def running(self) -> bool:
        return bool(self.scheduler.running)

    def stop(self):
        logger.info("🛑 Stopping scheduler...")
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
        logger.info("✅ Scheduler stopped")
