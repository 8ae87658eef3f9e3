"""
services/sweep_service.py

One sweep = one sequential pass of the trigger engine over every active watch.

- A watch that raises or returns ERROR is counted and recorded, the loop
  carries on with the next watch.
- A fixed delay between watches keeps the fare provider from being burst.
- Sweeps do not overlap inside one process: a second sweep() while one is
  running raises SweepInProgress.
"""

import logging
import threading
import time
from datetime import datetime
from typing import Callable, List, Optional

from config import SWEEP_DELAY_SECONDS, SWEEP_PREVIEW_LIMIT
from schemas.sweep import SweepOutcome, SweepRunSummary, SweepSummary, TriggerAction, TriggerResult
from schemas.watches import WatchRecord
from services.errors import SweepInProgress, WatchNotFound
from services.trigger_service import TriggerEngine
from services.watch_repository import WatchRepository

logger = logging.getLogger(__name__)


def _outcome_from_result(result: TriggerResult) -> SweepOutcome:
    return SweepOutcome(
        watchId=result.watchId,
        route=result.route,
        success=result.action != TriggerAction.ERROR,
        action=result.action,
        reason=result.reason,
        currentPrice=result.currentPrice,
        priceChange=result.priceChange,
        error=result.reason if result.action == TriggerAction.ERROR else None,
    )


class SweepCoordinator:
    def __init__(
        self,
        repo: WatchRepository,
        engine: TriggerEngine,
        sleep: Callable[[float], None] = time.sleep,
        delay: float = SWEEP_DELAY_SECONDS,
        preview_limit: int = SWEEP_PREVIEW_LIMIT,
        user_id: Optional[str] = None,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self.repo = repo
        self.engine = engine
        self.sleep = sleep
        self.delay = delay
        self.preview_limit = preview_limit
        self.user_id = user_id
        self.clock = clock

        self._lock = threading.Lock()
        self.last_run: Optional[datetime] = None
        self.last_summary: Optional[SweepSummary] = None

    @property
    def running(self) -> bool:
        return self._lock.locked()

    def sweep(self) -> SweepRunSummary:
        if not self._lock.acquire(blocking=False):
            logger.warning("[sweep] already running, refusing to start another")
            raise SweepInProgress()
        try:
            return self._run()
        finally:
            self._lock.release()

    def _run(self) -> SweepRunSummary:
        started = time.monotonic()
        timestamp = self.clock()

        # Listing failure propagates: the caller reports it as a failed sweep
        watches = self.repo.list_active(self.user_id)
        logger.info(f"[sweep] starting sweep watches={len(watches)} user_id={self.user_id or '*'}")

        summary = SweepSummary(total=len(watches))
        outcomes: List[SweepOutcome] = []

        for index, watch in enumerate(watches):
            if index > 0 and self.delay > 0:
                self.sleep(self.delay)

            outcome = self._run_one(watch)
            outcomes.append(outcome)

            if outcome.action == TriggerAction.NOTIFY:
                summary.notified += 1
            elif outcome.action == TriggerAction.NOOP:
                summary.noop += 1
            else:
                summary.errors += 1

        duration_ms = int((time.monotonic() - started) * 1000)
        self.last_run = timestamp
        self.last_summary = summary

        logger.info(
            f"[sweep] complete total={summary.total} notified={summary.notified} "
            f"noop={summary.noop} errors={summary.errors} duration_ms={duration_ms}"
        )

        return SweepRunSummary(
            success=True,
            summary=summary,
            timestamp=timestamp,
            duration=duration_ms,
            results=outcomes[: self.preview_limit],
        )

    def _run_one(self, watch: WatchRecord) -> SweepOutcome:
        # Re-read by id; the listed snapshot may be minutes old by now
        try:
            result = self.engine.trigger(watch.id)
        except WatchNotFound:
            logger.info(f"[sweep] watch deleted during sweep watch_id={watch.id}")
            return SweepOutcome(
                watchId=watch.id,
                route=watch.route,
                success=True,
                action=TriggerAction.NOOP,
                reason="deleted",
            )
        except Exception as e:
            logger.exception(f"[sweep] trigger crashed watch_id={watch.id}")
            return SweepOutcome(
                watchId=watch.id,
                route=watch.route,
                success=False,
                action=TriggerAction.ERROR,
                reason="unexpected error",
                error=str(e),
            )
        return _outcome_from_result(result)
