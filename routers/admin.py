"""routers/admin.py - Health checks."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from scheduler import SweepScheduler
from routers.deps import get_scheduler

logger = logging.getLogger(__name__)

router = APIRouter()


# =====================================================================
# SECTION: HEALTH ROUTES
# =====================================================================

@router.get("/")
def home():
    return {"message": "Price watch backend is running"}


@router.get("/health")
def health(request: Request, scheduler: Optional[SweepScheduler] = Depends(get_scheduler)):
    database = "ok"
    db = request.app.state.session_factory()
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.warning(f"[health] database check failed: {e}")
        database = "error"
    finally:
        db.close()

    return {
        "status": "ok" if database == "ok" else "degraded",
        "database": database,
        "scheduler": bool(scheduler and scheduler.running),
    }
