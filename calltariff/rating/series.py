# file: calltariff/rating/series.py
"""
Series range matching.

Series bounds are stored as integers with whatever digit count the numbering
plan publisher used, while dialed subscriber numbers carry their full length.
Bounds are therefore padded to the subscriber's length before comparing:
zeros extend the initial bound and nines extend the final bound, so
2000-2999 covers 20000-29999 when five digits are dialed.
"""

from __future__ import annotations

from calltariff.reference.models import Series


def align_bounds(initial: int, final: int, length: int) -> tuple[int, int]:
    """
    Pad series bounds to `length` digits.

    Bounds of unequal length are equalised first (initial left-padded with
    zeros, final right-padded with nines). Bounds longer than `length` are left
    as they are.
    """

    lo = str(initial)
    hi = str(final)
    if len(lo) < len(hi):
        lo = lo.zfill(len(hi))
    elif len(hi) < len(lo):
        hi = hi.ljust(len(lo), "9")

    if len(lo) < length:
        lo = lo.ljust(length, "0")
        hi = hi.ljust(length, "9")
    return int(lo), int(hi)


def match_span(series: Series, subscriber: str) -> int | None:
    """
    Return the width of the padded range when `subscriber` falls inside it.

    A smaller span means a more specific series. Returns None when the number
    is outside the range or is not numeric.
    """

    if not subscriber or not subscriber.isdigit():
        return None
    lo, hi = align_bounds(series.initial_number, series.final_number, len(subscriber))
    number = int(subscriber)
    if lo <= number <= hi:
        return hi - lo
    return None
