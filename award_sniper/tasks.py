"""tasks.py – harmonogram z APScheduler.

• ``CronScheduler`` – rejestracja zadań cron (alerty i cron joby użytkowników)
• ``build_scheduler`` – BlockingScheduler dla ``award-sniper serve``
"""

from __future__ import annotations

import logging
from typing import Callable, Optional

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.schedulers.base import BaseScheduler
from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.cron import CronTrigger

logger = logging.getLogger(__name__)


class CronScheduler:
    """Register callbacks on crontab expressions; handles are job ids."""

    def __init__(self, scheduler: Optional[BaseScheduler] = None, timezone: str = "UTC") -> None:
        self.scheduler = scheduler or BackgroundScheduler(timezone=timezone)

    @staticmethod
    def validate(expression: str) -> None:
        """Raise ``ValueError`` unless *expression* is a valid crontab."""
        CronTrigger.from_crontab(expression)

    def register(self, expression: str, callback: Callable[[], object], job_id: str) -> str:
        """Schedule *callback*; raises ``ValueError`` for a malformed expression."""
        trigger = CronTrigger.from_crontab(expression, timezone=self.scheduler.timezone)
        job = self.scheduler.add_job(
            callback,
            trigger,
            id=job_id,
            name=job_id,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        logger.info("Scheduled %s with '%s'", job_id, expression)
        return job.id

    def cancel(self, handle: str) -> None:
        try:
            self.scheduler.remove_job(handle)
        except JobLookupError:
            logger.debug("Job %s was not scheduled", handle)

    def start(self) -> None:
        self.scheduler.start()

    def shutdown(self, wait: bool = False) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=wait)


def build_scheduler(timezone: str = "UTC") -> BlockingScheduler:
    return BlockingScheduler(timezone=timezone)


__all__ = ["CronScheduler", "build_scheduler"]
