"""routers/watches.py - Watch CRUD: create, list, read, update, delete, alert history."""

from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import ValidationError

from config import DEFAULT_USER_ID
from schemas.watches import (
    WatchAlertOut,
    WatchCreate,
    WatchDeleteResponse,
    WatchRecord,
    WatchUpdate,
)
from services.errors import WatchNotFound, WatchValidationError
from services.watch_repository import WatchRepository
from routers.deps import get_repo, get_today

router = APIRouter()

NULLABLE_FIELDS = {"email", "phone"}


def _bad_request(e: WatchValidationError) -> HTTPException:
    return HTTPException(status_code=400, detail={"error": "Validation failed", "details": e.details()})


def _check_start_not_past(start: date, today: date) -> None:
    if start < today:
        raise WatchValidationError("start date cannot be in the past", field="start")


def _get_or_404(repo: WatchRepository, watch_id: str) -> WatchRecord:
    watch = repo.get(watch_id)
    if watch is None:
        raise HTTPException(status_code=404, detail="Watch not found")
    return watch


# =====================================================================
# SECTION: CREATE AND LIST
# =====================================================================

@router.post("/watch", response_model=WatchRecord, status_code=201)
def create_watch(
    payload: WatchCreate,
    repo: WatchRepository = Depends(get_repo),
    today: date = Depends(get_today),
):
    try:
        _check_start_not_past(payload.start, today)
    except WatchValidationError as e:
        raise _bad_request(e)

    return repo.create(payload)


@router.get("/watch", response_model=List[WatchRecord])
def list_watches(
    userId: Optional[str] = None,
    active: Optional[bool] = None,
    repo: WatchRepository = Depends(get_repo),
):
    watches = repo.list_by_user(userId or DEFAULT_USER_ID, active_only=bool(active))
    return watches


# =====================================================================
# SECTION: READ, UPDATE, DELETE
# =====================================================================

@router.get("/watch/{watch_id}", response_model=WatchRecord)
def get_watch(watch_id: str, repo: WatchRepository = Depends(get_repo)):
    return _get_or_404(repo, watch_id)


@router.patch("/watch/{watch_id}", response_model=WatchRecord)
def update_watch(
    watch_id: str,
    payload: WatchUpdate,
    repo: WatchRepository = Depends(get_repo),
    today: date = Depends(get_today),
):
    existing = _get_or_404(repo, watch_id)
    changes = payload.model_dump(exclude_unset=True)
    if not changes:
        return existing

    try:
        for field, value in changes.items():
            if value is None and field not in NULLABLE_FIELDS:
                raise WatchValidationError(f"{field} cannot be null", field=field)
        if "start" in changes:
            _check_start_not_past(changes["start"], today)

        # Re-run the create-time invariants against the merged watch
        merged = existing.model_dump(include=set(WatchCreate.model_fields))
        merged.update(changes)
        WatchCreate(**merged)
    except WatchValidationError as e:
        raise _bad_request(e)
    except ValidationError as e:
        details = [
            {"field": ".".join(str(p) for p in err.get("loc", ())), "message": err.get("msg", "")}
            for err in e.errors()
        ]
        raise HTTPException(status_code=400, detail={"error": "Validation failed", "details": details})

    try:
        return repo.update_fields(watch_id, changes)
    except WatchNotFound:
        raise HTTPException(status_code=404, detail="Watch not found")


@router.delete("/watch/{watch_id}", response_model=WatchDeleteResponse)
def delete_watch(watch_id: str, repo: WatchRepository = Depends(get_repo)):
    if not repo.delete(watch_id):
        raise HTTPException(status_code=404, detail="Watch not found")
    return WatchDeleteResponse(status="deleted", id=watch_id)


@router.get("/watch/{watch_id}/alerts", response_model=List[WatchAlertOut])
def list_watch_alerts(watch_id: str, repo: WatchRepository = Depends(get_repo)):
    _get_or_404(repo, watch_id)
    return repo.list_alerts(watch_id)
