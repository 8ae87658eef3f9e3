"""schemas/search.py - Pydantic models for fare searches, date combinations, and offers."""

from datetime import date
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


class CabinClass(str, Enum):
    ECONOMY = "ECONOMY"
    PREMIUM_ECONOMY = "PREMIUM_ECONOMY"
    BUSINESS = "BUSINESS"
    FIRST = "FIRST"


class TripType(str, Enum):
    ONEWAY = "oneway"
    ROUNDTRIP = "roundtrip"


class DateCombination(BaseModel):
    depart: date
    returnDate: Optional[date] = None

    @property
    def is_round_trip(self) -> bool:
        return self.returnDate is not None

    def label(self) -> str:
        if self.returnDate is None:
            return self.depart.isoformat()
        return f"{self.depart.isoformat()}/{self.returnDate.isoformat()}"


class FareSearchRequest(BaseModel):
    origin: str
    destination: str
    departDate: date
    returnDate: Optional[date] = None
    adults: int = 1
    children: int = 0
    infants: int = 0
    cabinClass: CabinClass = CabinClass.ECONOMY
    currency: str = "USD"
    maxResults: int = 20

    def cache_key(self) -> str:
        return "|".join([
            self.origin,
            self.destination,
            self.departDate.isoformat(),
            self.returnDate.isoformat() if self.returnDate else "",
            str(self.adults),
            str(self.children),
            str(self.infants),
            self.cabinClass.value,
            self.currency,
            str(self.maxResults),
        ])


class FareSegment(BaseModel):
    direction: str  # "outbound" | "return"
    carrier: Optional[str] = None
    flightNumber: Optional[str] = None
    origin: Optional[str] = None
    destination: Optional[str] = None
    departingAt: Optional[str] = None
    arrivingAt: Optional[str] = None


class FareOffer(BaseModel):
    id: str = ""
    provider: str

    total: float
    currency: str = "USD"
    carrier: str

    stopsOut: int
    stopsBack: Optional[int] = None

    depart: date
    returnDate: Optional[date] = None

    segments: List[FareSegment] = Field(default_factory=list)

    @property
    def total_stops(self) -> int:
        return self.stopsOut + (self.stopsBack or 0)

    def outbound_segments(self) -> List[FareSegment]:
        return [s for s in self.segments if s.direction == "outbound"]

    def return_segments(self) -> List[FareSegment]:
        return [s for s in self.segments if s.direction == "return"]


class BestOffer(BaseModel):
    offer: FareOffer
    dates: DateCombination
