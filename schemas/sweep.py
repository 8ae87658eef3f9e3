"""schemas/sweep.py - Pydantic models for trigger results and sweep summaries."""

from datetime import date, datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


class TriggerAction(str, Enum):
    NOTIFY = "NOTIFY"
    NOOP = "NOOP"
    ERROR = "ERROR"


class NotificationStatus(str, Enum):
    SENT = "sent"
    FAILED = "failed"
    SKIPPED = "skipped"


class OfferDates(BaseModel):
    depart: date
    returnDate: Optional[date] = None


class OfferSummary(BaseModel):
    total: float
    currency: str
    carrier: str
    stopsOut: int
    stopsBack: Optional[int] = None
    provider: Optional[str] = None
    dates: OfferDates


class NotificationOutcome(BaseModel):
    status: NotificationStatus
    to: Optional[str] = None
    subject: Optional[str] = None
    messageId: Optional[str] = None
    provider: Optional[str] = None
    error: Optional[str] = None


class TriggerResult(BaseModel):
    watchId: str
    route: str
    action: TriggerAction
    reason: str

    best: Optional[OfferSummary] = None
    searchedCombinations: int = 0
    failedCombinations: int = 0

    currentPrice: Optional[float] = None
    priceChange: Optional[float] = None
    lastBestUsd: Optional[float] = None
    lastNotifiedUsd: Optional[float] = None

    notification: Optional[NotificationOutcome] = None
    deeplink: Optional[str] = None


class SweepSummary(BaseModel):
    total: int = 0
    notified: int = 0
    noop: int = 0
    errors: int = 0


class SweepOutcome(BaseModel):
    watchId: str
    route: str
    success: bool
    action: TriggerAction
    reason: Optional[str] = None
    currentPrice: Optional[float] = None
    priceChange: Optional[float] = None
    error: Optional[str] = None


class SweepRunSummary(BaseModel):
    success: bool = True
    summary: SweepSummary
    timestamp: datetime
    duration: int  # milliseconds
    results: List[SweepOutcome] = Field(default_factory=list)


class SweepStats(BaseModel):
    totalWatches: int
    activeWatches: int
    lastRun: Optional[datetime] = None
    lastSummary: Optional[SweepSummary] = None


class SweepSchedule(BaseModel):
    enabled: bool
    running: bool
    hours: List[int]
    timezone: str
    target: str
    nextRun: Optional[datetime] = None


class SweepInfo(BaseModel):
    info: str
    stats: SweepStats
    schedule: SweepSchedule
