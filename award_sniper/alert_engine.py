"""Recurring alerts and cron jobs over saved searches.

An alert re-runs its search on a crontab schedule, keeps the rendered result
and tells the user only when the cheapest price went down.  A cron job re-runs
its search and always pushes the fresh result.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from typing import Callable, Dict, Optional

from . import db
from .models import Alert, CronJob
from .notifier import Notifier
from .query import parse_query
from .tasks import CronScheduler

logger = logging.getLogger(__name__)

PRICE_SPAN_RE = re.compile(r"\*([^*]+)\*")
LEADING_NUMBER_RE = re.compile(r"(\d+)(K?)")

SearchFn = Callable[[str, Optional[str]], str]


# ────────────────────────────────────────────────────────────────
# Price diffing
# ────────────────────────────────────────────────────────────────


def parse_price(line: str) -> Optional[int]:
    """Price in the first ``*...*`` span of *line*; ``12K`` means 12000."""
    span = PRICE_SPAN_RE.search(line)
    if not span:
        return None
    number = LEADING_NUMBER_RE.search(span.group(1))
    if not number:
        return None
    value = int(number.group(1))
    return value * 1000 if number.group(2) else value


def extract_min_price(text: Optional[str]) -> Optional[int]:
    """Cheapest price in a rendered result; single-line texts have none."""
    if not text or "\n" not in text:
        return None
    prices = [
        price
        for price in (parse_price(line) for line in text.split("\n") if line.strip())
        if price is not None
    ]
    return min(prices) if prices else None


def should_notify(previous_text: Optional[str], new_text: Optional[str]) -> bool:
    new_price = extract_min_price(new_text)
    if new_price is None:
        return False
    previous_price = extract_min_price(previous_text)
    if previous_price is None:
        # first ever run seeds the baseline silently
        return previous_text is not None
    return new_price < previous_price


# ────────────────────────────────────────────────────────────────
# Engine
# ────────────────────────────────────────────────────────────────


class AlertEngine:
    def __init__(
        self,
        search: SearchFn,
        notifier: Notifier,
        scheduler: CronScheduler,
        db_path: str = db.DB_FILE,
    ) -> None:
        self.search = search
        self.notifier = notifier
        self.scheduler = scheduler
        self.db_path = db_path
        self.registry: Dict[str, str] = {}
        self.expressions: Dict[str, str] = {}

    # ── lifecycle ────────────────────────────────────────────

    def load_all(self) -> int:
        """Rebuild every schedule from the store; return how many were registered."""
        for handle in list(self.registry.values()):
            self.scheduler.cancel(handle)
        self.registry.clear()
        self.expressions.clear()
        count = self.sync()
        logger.info("Loaded %d schedules", count)
        return count

    def sync(self) -> int:
        """Bring the schedules in line with the store.

        Rows added or re-timed by another process get (re)registered and
        deleted rows get cancelled.  Unchanged schedules keep their handle.
        """
        try:
            alerts = db.find_alerts(db_path=self.db_path)
            jobs = db.find_cron_jobs(db_path=self.db_path)
        except db.StoreError:
            logger.exception("Could not load schedules from %s", self.db_path)
            return len(self.registry)

        wanted: Dict[str, tuple] = {}
        for alert in alerts:
            wanted[f"alert:{alert.id}"] = (
                alert.cron, lambda alert_id=alert.id: self.run_alert(alert_id)
            )
        for job in jobs:
            wanted[f"cron:{job.id}"] = (
                job.cron, lambda job_id=job.id: self.run_cron_job(job_id)
            )

        for key in list(self.expressions):
            if key not in wanted or wanted[key][0] != self.expressions[key]:
                self._forget(key)
        for key, (expression, callback) in wanted.items():
            if key not in self.expressions:
                self._register(key, expression, callback)
        return len(self.registry)

    def watch(self, scheduler, seconds: float) -> None:
        """Re-sync with the store every *seconds* on an APScheduler instance."""
        scheduler.add_job(
            self.sync,
            "interval",
            seconds=seconds,
            id="store-sync",
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )

    def _register(self, key: str, expression: str, callback: Callable[[], object]) -> bool:
        # expressions also holds keys whose expression failed to register
        self.expressions[key] = expression
        try:
            self.registry[key] = self.scheduler.register(expression, callback, key)
        except ValueError as exc:
            logger.error("Could not schedule %s with '%s': %s", key, expression, exc)
            return False
        return True

    def _forget(self, key: str) -> None:
        self.expressions.pop(key, None)
        handle = self.registry.pop(key, None)
        if handle is not None:
            self.scheduler.cancel(handle)

    def _register_alert(self, alert: Alert) -> bool:
        return self._register(
            f"alert:{alert.id}", alert.cron, lambda alert_id=alert.id: self.run_alert(alert_id)
        )

    def _register_cron_job(self, job: CronJob) -> bool:
        return self._register(
            f"cron:{job.id}", job.cron, lambda job_id=job.id: self.run_cron_job(job_id)
        )

    # ── alerts ───────────────────────────────────────────────

    def create_alert(self, requester: str, search: str, cron: str, chat_id) -> Alert:
        """Save an alert, seed its baseline with one run and schedule it."""
        parse_query(search)
        CronScheduler.validate(cron)
        baseline = self.search(search, requester)
        alert = Alert(
            requester=requester,
            search=search,
            cron=cron,
            chat_id=chat_id,
            previous_result=baseline,
            updated_at=datetime.now(timezone.utc),
        )
        alert.id = db.insert_alert(alert, db_path=self.db_path)
        self._register_alert(alert)
        return alert

    def delete_alert(self, requester: str, search: str) -> bool:
        removed = db.delete_alert(requester, search, db_path=self.db_path)
        self.load_all()
        return bool(removed)

    def run_alert(self, alert_id: int) -> bool:
        """Scheduled run of one alert; returns whether the user was notified."""
        try:
            alert = db.find_alert(alert_id, db_path=self.db_path)
        except db.StoreError:
            logger.exception("Could not read alert %s", alert_id)
            return False
        if alert is None:
            logger.warning("Alert %s no longer exists", alert_id)
            self.expressions.pop(f"alert:{alert_id}", None)
            self.scheduler.cancel(self.registry.pop(f"alert:{alert_id}", f"alert:{alert_id}"))
            return False

        logger.info("alert %s %s", alert.requester, alert.search)
        try:
            new_result = self.search(alert.search, alert.requester)
        except Exception:
            logger.exception("Alert %s search failed", alert_id)
            return False

        notify = should_notify(alert.previous_result, new_result)
        logger.info(
            "alert %s previous=%s new=%s notify=%s",
            alert_id,
            extract_min_price(alert.previous_result),
            extract_min_price(new_result),
            notify,
        )
        try:
            db.update_alert_result(alert_id, new_result, db_path=self.db_path)
        except db.StoreError:
            logger.exception("Could not store result of alert %s", alert_id)

        if notify:
            logger.info("sending alert %s to %s", alert.search, alert.requester)
            try:
                self.notifier.send(
                    alert.chat_id, f"alert: {alert.search} podría haber bajado de precio"
                )
                self.notifier.send(alert.chat_id, new_result)
            except Exception:
                logger.exception("Could not deliver alert %s", alert_id)
        return notify

    # ── cron jobs ────────────────────────────────────────────

    def create_cron_job(self, requester: str, search: str, cron: str, chat_id) -> CronJob:
        parse_query(search)
        CronScheduler.validate(cron)
        job = CronJob(requester=requester, search=search, cron=cron, chat_id=chat_id)
        job.id = db.insert_cron_job(job, db_path=self.db_path)
        self._register_cron_job(job)
        return job

    def delete_cron_job(self, requester: str, search: str) -> bool:
        removed = db.delete_cron_job(requester, search, db_path=self.db_path)
        self.load_all()
        return bool(removed)

    def run_cron_job(self, job_id: int) -> None:
        try:
            job = next(
                (j for j in db.find_cron_jobs(db_path=self.db_path) if j.id == job_id), None
            )
        except db.StoreError:
            logger.exception("Could not read cron job %s", job_id)
            return
        if job is None:
            logger.warning("Cron job %s no longer exists", job_id)
            self.expressions.pop(f"cron:{job_id}", None)
            self.scheduler.cancel(self.registry.pop(f"cron:{job_id}", f"cron:{job_id}"))
            return

        logger.info("cron %s %s", job.requester, job.search)
        try:
            result = self.search(job.search, job.requester)
            self.notifier.send(job.chat_id, result)
            db.touch_cron_job(job_id, db_path=self.db_path)
        except Exception:
            logger.exception("Cron job %s failed", job_id)

    # ── users ────────────────────────────────────────────────

    def reset_user(self, requester: str) -> None:
        """Forget preferences and every schedule of *requester*."""
        db.reset_user(requester, db_path=self.db_path)
        self.load_all()


__all__ = [
    "AlertEngine",
    "extract_min_price",
    "parse_price",
    "should_notify",
]
