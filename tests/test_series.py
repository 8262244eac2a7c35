# file: tests/test_series.py
from __future__ import annotations

from calltariff.rating.series import align_bounds, match_span
from calltariff.reference.models import Series


def _series(initial: int, final: int, ndc: int = 1) -> Series:
    return Series(id=1, indicator_id=1, ndc=ndc, initial_number=initial, final_number=final)


def test_bounds_pad_to_subscriber_length() -> None:
    assert align_bounds(2000, 2999, 5) == (20000, 29999)
    assert match_span(_series(2000, 2999), "25001") == 9999


def test_uneven_final_bound_pads_with_nines() -> None:
    assert align_bounds(2000, 3500, 5) == (20000, 35009)
    assert match_span(_series(2000, 3500), "40000") is None


def test_bounds_of_unequal_length_are_equalised_first() -> None:
    assert align_bounds(5, 1999, 4) == (5, 1999)
    assert align_bounds(0, 999999, 6) == (0, 999999)
    assert align_bounds(100, 99, 4) == (1000, 9999)


def test_longer_bounds_are_not_truncated() -> None:
    assert align_bounds(2000000, 2999999, 4) == (2000000, 2999999)
    assert match_span(_series(2000000, 2999999), "2500") is None


def test_non_numeric_subscriber_never_matches() -> None:
    assert match_span(_series(0, 9), "") is None
    assert match_span(_series(0, 9), "12a") is None
