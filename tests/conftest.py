from datetime import date, datetime, timedelta
from typing import Callable, List, Optional

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import models  # noqa: F401
from db import Base
from notifier import NotificationError, SendResult
from schemas.search import FareOffer, FareSearchRequest, FareSegment
from schemas.watches import WatchCreate, WatchRecord
from services.trigger_service import TriggerEngine
from services.watch_repository import WatchRepository

TODAY = date(2025, 11, 1)


class TickingClock:
    """Returns a strictly increasing datetime on every call."""

    def __init__(self, start: datetime = datetime(2025, 11, 1, 9, 0, 0)):
        self.current = start

    def __call__(self) -> datetime:
        self.current = self.current + timedelta(seconds=1)
        return self.current


def make_offer(
    request: FareSearchRequest,
    total: float,
    carrier: str = "AA",
    stops_out: int = 1,
    stops_back: Optional[int] = 1,
) -> FareOffer:
    segments = [
        FareSegment(
            direction="outbound",
            carrier=carrier,
            flightNumber=f"{carrier}{100 + i}",
            origin=request.origin if i == 0 else "DFW",
            destination=request.destination if i == stops_out else "DFW",
            departingAt=f"{request.departDate.isoformat()}T08:00:00",
            arrivingAt=f"{request.departDate.isoformat()}T11:00:00",
        )
        for i in range(stops_out + 1)
    ]
    if request.returnDate is None:
        stops_back = None
    return FareOffer(
        id=f"{carrier}-{total}",
        provider="fake",
        total=total,
        currency="USD",
        carrier=carrier,
        stopsOut=stops_out,
        stopsBack=stops_back,
        depart=request.departDate,
        returnDate=request.returnDate,
        segments=segments,
    )


class FakeProvider:
    name = "fake"

    def __init__(self, responder: Optional[Callable[[FareSearchRequest], List[FareOffer]]] = None):
        self.responder = responder or (lambda request: [])
        self.requests: List[FareSearchRequest] = []

    def search(self, request: FareSearchRequest) -> List[FareOffer]:
        self.requests.append(request)
        return self.responder(request)


def flat_price(total: float, **kwargs) -> Callable[[FareSearchRequest], List[FareOffer]]:
    return lambda request: [make_offer(request, total, **kwargs)]


class FakeTransport:
    name = "fake"

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sent = []

    def send(self, payload):
        if self.fail:
            raise NotificationError("mailbox unavailable", provider=self.name)
        self.sent.append(payload)
        return SendResult(message_id=f"msg-{len(self.sent)}", provider=self.name)


def watch_payload(**overrides) -> WatchCreate:
    data = {
        "origin": "nyc",
        "destination": "lax",
        "start": "2025-12-01",
        "end": "2025-12-10",
        "flexDays": 3,
        "tripType": "roundtrip",
        "targetUsd": 500,
        "maxStops": 1,
        "email": "traveller@example.com",
    }
    data.update(overrides)
    return WatchCreate(**data)


def make_record(**overrides) -> WatchRecord:
    data = {
        "id": "w-1",
        "userId": "anon",
        "origin": "NYC",
        "destination": "LAX",
        "cabin": "ECONOMY",
        "tripType": "roundtrip",
        "start": date(2025, 12, 1),
        "end": date(2025, 12, 10),
        "flexDays": 3,
        "targetUsd": 500.0,
        "maxStops": 1,
        "email": "traveller@example.com",
        "createdAt": datetime(2025, 11, 1, 8, 0),
        "updatedAt": datetime(2025, 11, 1, 8, 0),
    }
    data.update(overrides)
    return WatchRecord(**data)


@pytest.fixture
def engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def repo(session_factory):
    return WatchRepository(session_factory, clock=TickingClock(datetime(2025, 11, 1, 8, 0, 0)))


@pytest.fixture
def provider():
    return FakeProvider(flat_price(450.0))


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def trigger_engine(repo, provider, transport):
    return TriggerEngine(
        repo,
        provider,
        transport,
        today=lambda: TODAY,
        now=TickingClock(),
        min_drop=1.0,
        auto_deactivate=True,
        fallback_recipient=None,
    )
