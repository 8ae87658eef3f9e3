"""routers/sweep.py - Sweep entry points and the per-watch manual trigger."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from config import SWEEP_CRON_HOURS, SWEEP_ENABLED, SWEEP_TIMEZONE
from scheduler import SweepScheduler
from schemas.sweep import SweepInfo, SweepRunSummary, SweepSchedule, SweepStats, TriggerResult
from services.errors import SweepInProgress, WatchNotFound
from services.sweep_service import SweepCoordinator
from services.trigger_service import TriggerEngine
from services.watch_repository import WatchRepository
from routers.deps import get_coordinator, get_engine, get_repo, get_scheduler, require_admin

logger = logging.getLogger(__name__)

router = APIRouter()


# =====================================================================
# SECTION: SWEEP
# =====================================================================

@router.post("/watch/run", response_model=SweepRunSummary, dependencies=[Depends(require_admin)])
def run_sweep(coordinator: SweepCoordinator = Depends(get_coordinator)):
    try:
        return coordinator.sweep()
    except SweepInProgress:
        raise HTTPException(status_code=409, detail="A sweep is already running")
    except SQLAlchemyError as e:
        logger.exception("[sweep] failed to list watches")
        return JSONResponse(
            status_code=500,
            content={"success": False, "error": f"Failed to load watches: {e.__class__.__name__}"},
        )


@router.get("/watch/run", response_model=SweepInfo)
def sweep_info(
    repo: WatchRepository = Depends(get_repo),
    coordinator: SweepCoordinator = Depends(get_coordinator),
    scheduler: Optional[SweepScheduler] = Depends(get_scheduler),
):
    total, active = repo.count(coordinator.user_id)

    if scheduler is not None:
        info = scheduler.describe()
        schedule = SweepSchedule(
            enabled=SWEEP_ENABLED,
            running=scheduler.running,
            hours=scheduler.hours,
            timezone=scheduler.timezone,
            target="all active watches",
            nextRun=scheduler.next_run(),
        )
    else:
        info = "Scheduled sweeps are disabled; POST to this endpoint to sweep on demand"
        schedule = SweepSchedule(
            enabled=False,
            running=False,
            hours=SWEEP_CRON_HOURS,
            timezone=SWEEP_TIMEZONE,
            target="all active watches",
        )

    stats = SweepStats(
        totalWatches=total,
        activeWatches=active,
        lastRun=coordinator.last_run,
        lastSummary=coordinator.last_summary,
    )
    return SweepInfo(info=info, stats=stats, schedule=schedule)


# =====================================================================
# SECTION: SINGLE WATCH TRIGGER
# =====================================================================

@router.post("/watch/{watch_id}/trigger", response_model=TriggerResult, dependencies=[Depends(require_admin)])
def trigger_watch(watch_id: str, engine: TriggerEngine = Depends(get_engine)):
    try:
        return engine.trigger(watch_id)
    except WatchNotFound:
        raise HTTPException(status_code=404, detail="Watch not found")
