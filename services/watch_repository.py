"""
services/watch_repository.py

Durable store of watch definitions and their price state, on top of the
SQLAlchemy models. Every method opens and closes its own session and hands
back detached WatchRecord snapshots, so callers never hold a live row.

update_fields() is a single UPDATE statement. When expected_last_checked is
given the UPDATE is conditional on last_checked still holding that value,
which is how the trigger engine avoids clobbering a concurrent sweep.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple
from uuid import uuid4

from sqlalchemy import func
from sqlalchemy.orm import Session

from config import DEFAULT_USER_ID
from models import Watch, WatchAlert
from schemas.watches import WatchAlertOut, WatchCreate, WatchRecord
from services.errors import StaleWatchError, WatchNotFound

# Sentinel: "do not make the update conditional"
UNSET: Any = object()

# WatchRecord field -> Watch column
FIELD_COLUMNS: Dict[str, str] = {
    "userId": "user_id",
    "origin": "origin",
    "destination": "destination",
    "cabin": "cabin",
    "adults": "adults",
    "children": "children",
    "infants": "infants",
    "tripType": "trip_type",
    "start": "start",
    "end": "end",
    "flexDays": "flex_days",
    "currency": "currency",
    "targetUsd": "target_usd",
    "maxStops": "max_stops",
    "channel": "channel",
    "email": "email",
    "phone": "phone",
    "active": "active",
    "lastBestUsd": "last_best_usd",
    "lastNotifiedUsd": "last_notified_usd",
    "lastChecked": "last_checked",
    "lastProvider": "last_provider",
    "lastCarrier": "last_carrier",
    "lastDepart": "last_depart",
    "lastReturn": "last_return",
}

PROTECTED_FIELDS = {"id", "createdAt", "updatedAt"}


def _to_record(row: Watch) -> WatchRecord:
    data = {field: getattr(row, column) for field, column in FIELD_COLUMNS.items()}
    return WatchRecord(id=row.id, createdAt=row.created_at, updatedAt=row.updated_at, **data)


def _to_alert(row: WatchAlert) -> WatchAlertOut:
    return WatchAlertOut(
        id=row.id,
        watchId=row.watch_id,
        oldPrice=row.old_price,
        newPrice=row.new_price,
        delta=row.delta,
        carrier=row.carrier,
        depart=row.depart,
        returnDate=row.return_date,
        sent=row.sent,
        messageId=row.message_id,
        provider=row.provider,
        error=row.error,
        createdAt=row.created_at,
    )


def _column_values(fields: Dict[str, Any]) -> Dict[str, Any]:
    values: Dict[str, Any] = {}
    for field, value in fields.items():
        if field in PROTECTED_FIELDS:
            raise ValueError(f"{field} cannot be updated")
        column = FIELD_COLUMNS.get(field)
        if column is None:
            raise ValueError(f"unknown watch field: {field}")
        if isinstance(value, Enum):
            value = value.value
        values[column] = value
    return values


class WatchRepository:
    def __init__(self, session_factory: Callable[[], Session], clock: Callable[[], datetime] = datetime.utcnow):
        self._session_factory = session_factory
        self._clock = clock

    # ---- create / read ----

    def create(self, payload: WatchCreate) -> WatchRecord:
        now = self._clock()
        data = payload.model_dump(exclude={"userId"})
        values = _column_values(data)

        db = self._session_factory()
        try:
            row = Watch(
                id=str(uuid4()),
                user_id=payload.userId or DEFAULT_USER_ID,
                created_at=now,
                updated_at=now,
                **values,
            )
            db.add(row)
            db.commit()
            db.refresh(row)
            return _to_record(row)
        finally:
            db.close()

    def get(self, watch_id: str) -> Optional[WatchRecord]:
        db = self._session_factory()
        try:
            row = db.get(Watch, watch_id)
            return _to_record(row) if row else None
        finally:
            db.close()

    def list_by_user(self, user_id: str, active_only: bool = False) -> List[WatchRecord]:
        db = self._session_factory()
        try:
            query = db.query(Watch).filter(Watch.user_id == user_id)
            if active_only:
                query = query.filter(Watch.active == True)  # noqa: E712
            rows = query.order_by(Watch.created_at.desc(), Watch.id).all()
            return [_to_record(r) for r in rows]
        finally:
            db.close()

    def list_active(self, user_id: Optional[str] = None) -> List[WatchRecord]:
        if user_id is not None:
            return self.list_by_user(user_id, active_only=True)

        db = self._session_factory()
        try:
            rows = (
                db.query(Watch)
                .filter(Watch.active == True)  # noqa: E712
                .order_by(Watch.created_at.desc(), Watch.id)
                .all()
            )
            return [_to_record(r) for r in rows]
        finally:
            db.close()

    def count(self, user_id: Optional[str] = None) -> Tuple[int, int]:
        """Return (total, active) watch counts."""
        db = self._session_factory()
        try:
            query = db.query(func.count(Watch.id))
            if user_id is not None:
                query = query.filter(Watch.user_id == user_id)
            total = query.scalar() or 0
            active = query.filter(Watch.active == True).scalar() or 0  # noqa: E712
            return int(total), int(active)
        finally:
            db.close()

    # ---- update / delete ----

    def update_fields(
        self,
        watch_id: str,
        fields: Dict[str, Any],
        expected_last_checked: Any = UNSET,
    ) -> WatchRecord:
        values = _column_values(fields)
        values["updated_at"] = self._clock()

        db = self._session_factory()
        try:
            query = db.query(Watch).filter(Watch.id == watch_id)
            if expected_last_checked is not UNSET:
                if expected_last_checked is None:
                    query = query.filter(Watch.last_checked.is_(None))
                else:
                    query = query.filter(Watch.last_checked == expected_last_checked)

            updated = query.update(values, synchronize_session=False)
            if updated == 0:
                db.rollback()
                if db.get(Watch, watch_id) is None:
                    raise WatchNotFound(watch_id)
                raise StaleWatchError(watch_id)

            db.commit()
            row = db.get(Watch, watch_id)
            db.refresh(row)
            return _to_record(row)
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def delete(self, watch_id: str) -> bool:
        db = self._session_factory()
        try:
            row = db.get(Watch, watch_id)
            if row is None:
                return False
            db.query(WatchAlert).filter(WatchAlert.watch_id == watch_id).delete()
            db.delete(row)
            db.commit()
            return True
        finally:
            db.close()

    # ---- alert log ----

    def record_alert(
        self,
        watch_id: str,
        new_price: float,
        old_price: Optional[float] = None,
        carrier: Optional[str] = None,
        depart=None,
        return_date=None,
        sent: bool = False,
        message_id: Optional[str] = None,
        provider: Optional[str] = None,
        error: Optional[str] = None,
    ) -> WatchAlertOut:
        delta = round(new_price - old_price, 2) if old_price is not None else None
        db = self._session_factory()
        try:
            row = WatchAlert(
                watch_id=watch_id,
                old_price=old_price,
                new_price=new_price,
                delta=delta,
                carrier=carrier,
                depart=depart,
                return_date=return_date,
                sent=sent,
                message_id=message_id,
                provider=provider,
                error=(error or None) and error[:2000],
                created_at=self._clock(),
            )
            db.add(row)
            db.commit()
            db.refresh(row)
            return _to_alert(row)
        finally:
            db.close()

    def list_alerts(self, watch_id: str) -> List[WatchAlertOut]:
        db = self._session_factory()
        try:
            rows = (
                db.query(WatchAlert)
                .filter(WatchAlert.watch_id == watch_id)
                .order_by(WatchAlert.created_at.desc(), WatchAlert.id.desc())
                .all()
            )
            return [_to_alert(r) for r in rows]
        finally:
            db.close()
