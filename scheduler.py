"""
scheduler.py

Process-level owner of the sweep cadence. Wraps an APScheduler
BackgroundScheduler with one cron job that fires the sweep coordinator at
SWEEP_CRON_HOURS in SWEEP_TIMEZONE. Started and stopped by the FastAPI
lifespan; nothing runs at import time.
"""

import logging
from datetime import datetime
from typing import List, Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

from config import SWEEP_CRON_HOURS, SWEEP_TIMEZONE
from schemas.sweep import SweepRunSummary
from services.errors import SweepInProgress
from services.sweep_service import SweepCoordinator

logger = logging.getLogger(__name__)

SWEEP_JOB_ID = "watch_sweep"


class SweepScheduler:
    def __init__(
        self,
        coordinator: SweepCoordinator,
        hours: Optional[List[int]] = None,
        timezone: str = SWEEP_TIMEZONE,
        scheduler: Optional[BackgroundScheduler] = None,
    ):
        self.coordinator = coordinator
        self.hours = list(hours if hours is not None else SWEEP_CRON_HOURS)
        self.timezone = timezone
        self._scheduler = scheduler or BackgroundScheduler(timezone=timezone)

    @property
    def running(self) -> bool:
        return bool(self._scheduler.running)

    def describe(self) -> str:
        hours = ", ".join(f"{h:02d}:00" for h in self.hours) or "never"
        return f"Sweeps all active watches daily at {hours} ({self.timezone})"

    def start(self) -> None:
        if self.running:
            return
        if not self.hours:
            logger.warning("[scheduler] no sweep hours configured, scheduler not started")
            return

        trigger = CronTrigger(hour=",".join(str(h) for h in self.hours), minute=0, timezone=self.timezone)
        self._scheduler.add_job(
            self._fire,
            trigger,
            id=SWEEP_JOB_ID,
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        self._scheduler.start()
        logger.info(f"[scheduler] started hours={self.hours} timezone={self.timezone} next_run={self.next_run()}")

    def shutdown(self) -> None:
        if not self.running:
            return
        self._scheduler.shutdown(wait=False)
        logger.info("[scheduler] stopped")

    def next_run(self) -> Optional[datetime]:
        job = self._scheduler.get_job(SWEEP_JOB_ID)
        if job is None:
            return None
        return getattr(job, "next_run_time", None)

    def run_now(self) -> Optional[SweepRunSummary]:
        """Run one sweep on the calling thread, outside the cron cadence."""
        return self._fire()

    def _fire(self) -> Optional[SweepRunSummary]:
        try:
            return self.coordinator.sweep()
        except SweepInProgress:
            logger.warning("[scheduler] previous sweep still running, skipping this fire")
            return None
