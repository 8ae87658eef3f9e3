"""routers/deps.py - Access to the components built in the app lifespan, plus the admin token guard."""

from datetime import date
from typing import Optional

from fastapi import Header, HTTPException, Request

from config import ADMIN_API_TOKEN
from scheduler import SweepScheduler
from services.sweep_service import SweepCoordinator
from services.trigger_service import TriggerEngine
from services.watch_repository import WatchRepository


def get_repo(request: Request) -> WatchRepository:
    return request.app.state.repo


def get_engine(request: Request) -> TriggerEngine:
    return request.app.state.engine


def get_coordinator(request: Request) -> SweepCoordinator:
    return request.app.state.coordinator


def get_scheduler(request: Request) -> Optional[SweepScheduler]:
    return getattr(request.app.state, "scheduler", None)


def get_today(request: Request) -> date:
    return request.app.state.engine.today()


def require_admin(x_admin_token: Optional[str] = Header(None, alias="X-Admin-Token")) -> None:
    """No-op unless ADMIN_API_TOKEN is set; then the header must match it."""
    expected = (ADMIN_API_TOKEN or "").strip()
    if not expected:
        return

    received = (x_admin_token or "").strip()
    if received.lower().startswith("bearer "):
        received = received[7:].strip()
    if received != expected:
        raise HTTPException(status_code=401, detail="Invalid admin token")
