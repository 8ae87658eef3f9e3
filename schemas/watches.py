"""schemas/watches.py - Pydantic models for watch CRUD and the watch snapshot used by the engine."""

from datetime import date, datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from config import MAX_ADULTS, MAX_FLEX_DAYS, MAX_STOPS_LIMIT
from schemas.search import CabinClass, TripType


class NotificationChannel(str, Enum):
    EMAIL = "email"
    SMS = "sms"
    BOTH = "both"


def _normalize_location(value: str) -> str:
    code = (value or "").strip().upper()
    if len(code) < 3 or len(code) > 8 or not code.isalnum():
        raise ValueError("location code must be 3-8 letters or digits")
    return code


class WatchCreate(BaseModel):
    userId: Optional[str] = None

    origin: str
    destination: str
    cabin: CabinClass = CabinClass.ECONOMY

    adults: int = Field(default=1, ge=1, le=MAX_ADULTS)
    children: int = Field(default=0, ge=0, le=MAX_ADULTS)
    infants: int = Field(default=0, ge=0, le=MAX_ADULTS)

    tripType: TripType = TripType.ROUNDTRIP

    start: date
    end: date
    flexDays: int = Field(default=0, ge=0, le=MAX_FLEX_DAYS)

    currency: str = "USD"
    targetUsd: float = Field(gt=0)
    maxStops: int = Field(default=1, ge=0, le=MAX_STOPS_LIMIT)

    channel: NotificationChannel = NotificationChannel.EMAIL
    email: Optional[str] = None
    phone: Optional[str] = None

    active: bool = True

    @field_validator("origin", "destination")
    @classmethod
    def upper_location(cls, v: str) -> str:
        return _normalize_location(v)

    @field_validator("currency")
    @classmethod
    def usd_only(cls, v: str) -> str:
        if (v or "").upper() != "USD":
            raise ValueError("only USD is supported")
        return "USD"

    @model_validator(mode="after")
    def check_window(self):
        if self.end < self.start:
            raise ValueError("end date cannot be before start date")
        if self.origin == self.destination:
            raise ValueError("origin and destination must differ")
        return self


class WatchUpdate(BaseModel):
    # Basic status
    active: Optional[bool] = None

    # Route
    origin: Optional[str] = None
    destination: Optional[str] = None
    cabin: Optional[CabinClass] = None
    adults: Optional[int] = Field(default=None, ge=1, le=MAX_ADULTS)
    children: Optional[int] = Field(default=None, ge=0, le=MAX_ADULTS)
    infants: Optional[int] = Field(default=None, ge=0, le=MAX_ADULTS)
    tripType: Optional[TripType] = None

    # Date window
    start: Optional[date] = None
    end: Optional[date] = None
    flexDays: Optional[int] = Field(default=None, ge=0, le=MAX_FLEX_DAYS)

    # Pricing policy
    targetUsd: Optional[float] = Field(default=None, gt=0)
    maxStops: Optional[int] = Field(default=None, ge=0, le=MAX_STOPS_LIMIT)

    # Contact
    channel: Optional[NotificationChannel] = None
    email: Optional[str] = None
    phone: Optional[str] = None

    @field_validator("origin", "destination")
    @classmethod
    def upper_location(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        return _normalize_location(v)


class WatchRecord(BaseModel):
    """Detached snapshot of one watch row. Engine code only ever sees these."""

    model_config = ConfigDict(frozen=True)

    id: str
    userId: str

    origin: str
    destination: str
    cabin: CabinClass

    adults: int = 1
    children: int = 0
    infants: int = 0

    tripType: TripType

    start: date
    end: date
    flexDays: int = 0

    currency: str = "USD"
    targetUsd: float
    maxStops: int

    channel: NotificationChannel = NotificationChannel.EMAIL
    email: Optional[str] = None
    phone: Optional[str] = None

    active: bool = True

    lastBestUsd: Optional[float] = None
    lastNotifiedUsd: Optional[float] = None
    lastChecked: Optional[datetime] = None

    lastProvider: Optional[str] = None
    lastCarrier: Optional[str] = None
    lastDepart: Optional[date] = None
    lastReturn: Optional[date] = None

    createdAt: datetime
    updatedAt: datetime

    @property
    def route(self) -> str:
        return f"{self.origin} → {self.destination}"


class WatchAlertOut(BaseModel):
    id: int
    watchId: str
    oldPrice: Optional[float] = None
    newPrice: float
    delta: Optional[float] = None
    carrier: Optional[str] = None
    depart: Optional[date] = None
    returnDate: Optional[date] = None
    sent: bool
    messageId: Optional[str] = None
    provider: Optional[str] = None
    error: Optional[str] = None
    createdAt: datetime


class WatchDeleteResponse(BaseModel):
    status: str
    id: str


class ValidationIssue(BaseModel):
    field: str
    message: str


class ValidationErrorResponse(BaseModel):
    error: str
    details: List[ValidationIssue] = Field(default_factory=list)
