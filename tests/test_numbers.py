# file: tests/test_numbers.py
from __future__ import annotations

import pytest

from calltariff.core.numbers import (
    UnknownRegionError,
    country_code_for_region,
    sanitize_dialed_number,
    strip_exit_prefix,
)


def test_sanitize_dialed_number_removes_separators() -> None:
    assert sanitize_dialed_number(" (031) 234-5678 ") == "0312345678"
    assert sanitize_dialed_number("+1 212.555.1234") == "12125551234"
    assert sanitize_dialed_number("   ") == ""


def test_strip_exit_prefix_prefers_longest() -> None:
    assert strip_exit_prefix("90312345678", ["9"]) == "0312345678"
    assert strip_exit_prefix("9912345", ["9", "99"]) == "12345"


def test_strip_exit_prefix_keeps_number_without_match_or_digits() -> None:
    assert strip_exit_prefix("0312345678", ["9"]) == "0312345678"
    assert strip_exit_prefix("9", ["9"]) == "9"
    assert strip_exit_prefix("9123", []) == "9123"


def test_country_code_for_region() -> None:
    assert country_code_for_region("co") == "57"
    assert country_code_for_region("US") == "1"


def test_country_code_for_unknown_region() -> None:
    with pytest.raises(UnknownRegionError):
        country_code_for_region("ZZ")
