"""
SCHEDULER BOOTSTRAP

Daily score decay: re-scores active recommendations so silence and
not-opened penalties keep growing without any other trigger.
Scheduler is orchestration-only and contains no business logic.
"""

import logging
from typing import Optional

import pytz
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from dealscore.config import settings
from dealscore.services.recalculation_service import RecalculationService

logger = logging.getLogger(__name__)


class PipelineScheduler:
    """Runs the daily stale-score recalculation inside the app's event loop"""

    def __init__(self, recalculator: RecalculationService, hour: Optional[int] = None, minute: Optional[int] = None):
        self.recalculator = recalculator
        self.hour = settings.DAILY_RECALC_HOUR if hour is None else hour
        self.minute = settings.DAILY_RECALC_MINUTE if minute is None else minute
        self.scheduler = AsyncIOScheduler(timezone=pytz.timezone(settings.TIMEZONE))

    async def daily_decay_job(self):
        """Recalculate every stale sent / declined recommendation"""
        logger.info("Starting daily score decay job...")
        try:
            result = await self.recalculator.recalculate_stale()
        except Exception:
            logger.exception("Daily score decay job failed")
            return
        logger.info(
            "Daily score decay job finished: processed=%d succeeded=%d skipped=%d failed=%d (%dms)",
            result.processed, result.succeeded, result.skipped, result.failed, result.duration_ms,
        )

    def start(self):
        self.scheduler.add_job(
            self.daily_decay_job,
            CronTrigger(hour=self.hour, minute=self.minute),
            id="daily_score_decay",
            name="Daily Score Decay",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        self.scheduler.start()
        logger.info(
            "Scheduler started (daily score decay at %02d:%02d %s)",
            self.hour, self.minute, settings.TIMEZONE,
        )

    def stop(self):
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Scheduler stopped")
