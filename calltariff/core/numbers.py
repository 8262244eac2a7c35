# file: calltariff/core/numbers.py
"""
Dialed-number helpers.

This module provides small wrappers that:
- sanitize a dialed number into the digit string the rating engine matches on,
- strip PBX exit codes (the digits a PBX user dials to seize an outside line),
- map an ISO region code to the country calling code via `phonenumbers`.

Numbering-plan specific rewriting is the call classifier's job; nothing here
reinterprets digits.
"""

from __future__ import annotations

import re
from typing import Iterable

import phonenumbers


class UnknownRegionError(ValueError):
    """Raised when an ISO region code has no known country calling code."""


_NON_DIGITS = re.compile(r"\D+")


def sanitize_dialed_number(raw: str) -> str:
    """
    Normalize a dialed number into a plain digit string.

    - Trims whitespace.
    - Removes separators (spaces, dashes, parentheses, dots) and a leading `+`.

    This function does not validate; it only sanitizes input.
    """

    s = raw.strip()
    if not s:
        return s
    return _NON_DIGITS.sub("", s)


def strip_exit_prefix(number: str, exit_prefixes: Iterable[str]) -> str:
    """
    Remove the longest matching PBX exit prefix from `number`.

    Returns the number unchanged when no prefix matches or when stripping would
    leave nothing to dial.
    """

    candidates = sorted({p.strip() for p in exit_prefixes if p and p.strip()}, key=len, reverse=True)
    for prefix in candidates:
        if number.startswith(prefix) and len(number) > len(prefix):
            return number[len(prefix) :]
    return number


def country_code_for_region(region: str) -> str:
    """
    Return the country calling code (e.g. "57") for an ISO 3166-1 alpha-2 region.

    Raises:
        UnknownRegionError: if libphonenumber has no calling code for `region`.
    """

    code = phonenumbers.country_code_for_region(region.strip().upper())
    if not code:
        raise UnknownRegionError(f"Unknown region code: {region!r}")
    return str(code)
