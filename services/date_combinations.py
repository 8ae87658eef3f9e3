"""
services/date_combinations.py

Expands a watch's date window into the bounded list of (depart, return?) pairs
that get searched on every trigger.

Rules:
  - Every day from start to end inclusive is a candidate depart date.
  - flexDays > 0 adds flexDays days before start (skipping any before today)
    and flexDays days after end.
  - One-way: one combination per depart date, never a return date.
  - Round-trip: return = depart + 7, plus depart + 5 and depart + 9 when
    flexDays > 0. A return may not fall after end + flexDays.
  - Output is capped (15 one-way, 10 round-trip) regardless of window size.
"""

from datetime import date, timedelta
from typing import List, Optional, Union

from config import (
    DEFAULT_STAY_NIGHTS,
    FLEX_STAY_NIGHTS,
    ONE_WAY_COMBINATION_CAP,
    ROUND_TRIP_COMBINATION_CAP,
)
from schemas.search import DateCombination, TripType


def combination_cap(trip_type: TripType) -> int:
    return ONE_WAY_COMBINATION_CAP if trip_type == TripType.ONEWAY else ROUND_TRIP_COMBINATION_CAP


def candidate_depart_dates(start: date, end: date, flex_days: int, today: date) -> List[date]:
    days = (end - start).days
    window = [start + timedelta(days=i) for i in range(days + 1)]

    if flex_days <= 0:
        return window

    before = [start - timedelta(days=i) for i in range(flex_days, 0, -1)]
    before = [d for d in before if d >= today]
    after = [end + timedelta(days=i) for i in range(1, flex_days + 1)]
    return before + window + after


def generate_date_combinations(
    start: date,
    end: date,
    flex_days: int,
    trip_type: Union[TripType, str],
    today: Optional[date] = None,
) -> List[DateCombination]:
    trip_type = TripType(trip_type)
    flex_days = max(0, int(flex_days or 0))
    if end < start:
        return []

    today = today or date.today()
    cap = combination_cap(trip_type)
    departs = candidate_depart_dates(start, end, flex_days, today)

    if trip_type == TripType.ONEWAY:
        return [DateCombination(depart=d) for d in departs[:cap]]

    latest_return = end + timedelta(days=flex_days)
    stays = [DEFAULT_STAY_NIGHTS]
    if flex_days > 0:
        stays.extend(FLEX_STAY_NIGHTS)

    combos: List[DateCombination] = []
    for depart in departs:
        for nights in stays:
            if len(combos) >= cap:
                return combos
            ret = depart + timedelta(days=nights)
            if ret <= latest_return:
                combos.append(DateCombination(depart=depart, returnDate=ret))

    if not combos:
        # Window shorter than any stay: still search the default stay from start
        combos.append(DateCombination(depart=start, returnDate=start + timedelta(days=DEFAULT_STAY_NIGHTS)))

    return combos
