"""
Alert Scheduler

Hourly scheduled pass of the alert pipeline. Each run gets its own database
session and a freshly built processor; a failed run is logged and recorded but
never stops the scheduler.
"""

from datetime import datetime, timezone
from typing import Callable, Optional

import structlog
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from costguard.modules.budgets.domain.processor import AlertProcessor

logger = structlog.get_logger()

JOB_ID = "budget_alert_check"

ProcessorFactory = Callable[[AsyncSession], AlertProcessor]


class AlertScheduler:
    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        processor_factory: ProcessorFactory,
        minute: int = 0,
    ):
        self.scheduler = AsyncIOScheduler()
        self.session_maker = session_maker
        self.processor_factory = processor_factory
        self.minute = minute
        self._last_run_success: Optional[bool] = None
        self._last_run_time: Optional[str] = None
        self._last_summary: Optional[dict] = None

    async def budget_alert_job(self) -> None:
        self._last_run_time = datetime.now(timezone.utc).isoformat()
        try:
            async with self.session_maker() as db:
                summary = await self.processor_factory(db).run_scheduled()
        except Exception as e:
            self._last_run_success = False
            logger.error("scheduled_alert_run_failed", error=str(e))
            return

        self._last_run_success = True
        self._last_summary = {
            "budgets_processed": summary.budgets_processed,
            "alerts_triggered": summary.alerts_triggered,
            "notifications_sent": summary.notifications_sent,
            "notifications_failed": summary.notifications_failed,
        }

    def start(self) -> None:
        self.scheduler.add_job(
            self.budget_alert_job,
            trigger=CronTrigger(minute=self.minute, timezone="UTC"),
            id=JOB_ID,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        self.scheduler.start()
        logger.info("alert_scheduler_started", minute=self.minute)

    def stop(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=True)

    def get_status(self) -> dict:
        return {
            "running": self.scheduler.running,
            "last_run_success": self._last_run_success,
            "last_run_time": self._last_run_time,
            "last_summary": self._last_summary,
            "jobs": [job.id for job in self.scheduler.get_jobs()],
        }
