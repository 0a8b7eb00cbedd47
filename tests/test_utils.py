from datetime import date

import pytest

from errors import ValidationFailed
from lifecycle import resolve_shares
from utils import complete_shares, contains_ci, haversine_km, windows_overlap


def test_haversine_known_distance():
    london = (51.5074, -0.1278)
    paris = (48.8566, 2.3522)
    assert haversine_km(*london, *paris) == pytest.approx(343.5, abs=1.0)
    assert haversine_km(*london, *london) == 0


def test_contains_ci():
    assert contains_ci("Granny Smith Apples", "apples")
    assert not contains_ci("Pears", "apple")
    assert not contains_ci(None, "apple")


@pytest.mark.parametrize("query_start, query_end, expected", [
    (None, None, True),
    (date(2026, 9, 10), date(2026, 9, 20), True),
    (date(2026, 10, 15), None, True),
    (date(2026, 10, 16), None, False),
    (None, date(2026, 8, 31), False),
])
def test_windows_overlap(query_start, query_end, expected):
    assert windows_overlap(date(2026, 9, 1), date(2026, 10, 15), query_start, query_end) is expected


def test_complete_shares():
    assert complete_shares(30, None) == (30, 70)
    assert complete_shares(None, 25) == (75, 25)
    assert complete_shares(40, 40) == (40, 40)


def test_resolve_shares_enforces_total():
    assert resolve_shares(0, None) == (0, 100)
    with pytest.raises(ValidationFailed):
        resolve_shares(40, 40)
    with pytest.raises(ValidationFailed):
        resolve_shares(None, None)
    with pytest.raises(ValidationFailed):
        resolve_shares(130, None)
