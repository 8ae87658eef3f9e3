from datetime import date, timedelta

from schemas.search import TripType
from services.date_combinations import candidate_depart_dates, generate_date_combinations

TODAY = date(2025, 11, 1)


def test_oneway_window_with_flex_yields_only_depart_dates():
    combos = generate_date_combinations(date(2025, 12, 1), date(2025, 12, 5), 2, "oneway", today=TODAY)

    assert all(c.returnDate is None for c in combos)
    departs = [c.depart for c in combos]
    assert departs[0] == date(2025, 11, 29)
    assert departs[-1] == date(2025, 12, 7)
    assert len(departs) == 9
    assert departs == sorted(departs)


def test_roundtrip_window_with_flex_respects_return_bounds():
    start, end, flex = date(2025, 12, 1), date(2025, 12, 5), 2
    combos = generate_date_combinations(start, end, flex, TripType.ROUNDTRIP, today=TODAY)

    assert combos
    assert len(combos) <= 10
    for c in combos:
        assert c.returnDate is not None
        assert c.returnDate >= c.depart + timedelta(days=5)
        assert c.returnDate <= end + timedelta(days=flex)


def test_roundtrip_alternate_stays_only_with_flex():
    combos = generate_date_combinations(date(2025, 12, 1), date(2025, 12, 20), 0, "roundtrip", today=TODAY)

    assert len(combos) == 10
    assert {(c.returnDate - c.depart).days for c in combos} == {7}

    flexed = generate_date_combinations(date(2025, 12, 1), date(2025, 12, 20), 1, "roundtrip", today=TODAY)
    assert {(c.returnDate - c.depart).days for c in flexed} == {5, 7, 9}


def test_oneway_output_is_capped():
    combos = generate_date_combinations(date(2025, 12, 1), date(2026, 1, 31), 0, "oneway", today=TODAY)
    assert len(combos) == 15
    assert combos[0].depart == date(2025, 12, 1)


def test_roundtrip_output_is_capped_for_large_window():
    combos = generate_date_combinations(date(2025, 12, 1), date(2026, 3, 1), 30, "roundtrip", today=TODAY)
    assert len(combos) == 10


def test_zero_length_window_still_yields_a_combination():
    oneway = generate_date_combinations(date(2025, 12, 1), date(2025, 12, 1), 0, "oneway", today=TODAY)
    assert [c.depart for c in oneway] == [date(2025, 12, 1)]

    roundtrip = generate_date_combinations(date(2025, 12, 1), date(2025, 12, 1), 0, "roundtrip", today=TODAY)
    assert len(roundtrip) == 1
    assert roundtrip[0].depart == date(2025, 12, 1)
    assert roundtrip[0].returnDate == date(2025, 12, 8)


def test_flex_days_before_today_are_dropped():
    departs = candidate_depart_dates(date(2025, 11, 2), date(2025, 11, 3), 3, TODAY)
    assert departs[0] == TODAY
    assert all(d >= TODAY for d in departs)
    assert departs[-1] == date(2025, 11, 6)


def test_end_before_start_yields_nothing():
    assert generate_date_combinations(date(2025, 12, 5), date(2025, 12, 1), 2, "oneway", today=TODAY) == []


def test_generation_is_deterministic():
    a = generate_date_combinations(date(2025, 12, 1), date(2025, 12, 10), 3, "roundtrip", today=TODAY)
    b = generate_date_combinations(date(2025, 12, 1), date(2025, 12, 10), 3, "roundtrip", today=TODAY)
    assert a == b
