# file: calltariff/core/hours.py
"""
Hour-of-day specifications used by time-windowed special rates.

A specification is a comma-separated list of single hours ("14") and
hyphenated ranges ("8-12"). A range whose start is greater than its end wraps
past midnight ("22-6" covers 22, 23, 0, ..., 6). An empty specification covers
every hour.
"""

from __future__ import annotations


class InvalidHoursSpecification(ValueError):
    """Raised when an hour specification cannot be parsed."""


def _parse_hour(token: str, spec: str) -> int:
    token = token.strip()
    if not token.isdigit():
        raise InvalidHoursSpecification(f"Invalid hour {token!r} in specification {spec!r}")
    hour = int(token)
    if hour > 23:
        raise InvalidHoursSpecification(f"Hour {hour} out of range in specification {spec!r}")
    return hour


def parse_hours_specification(spec: str | None) -> frozenset[int]:
    """
    Expand a specification into the set of hours (0-23) it covers.

    Raises:
        InvalidHoursSpecification: on non-numeric tokens, hours above 23, or
            ranges with other than two ends.
    """

    if spec is None or not spec.strip():
        return frozenset(range(24))

    hours: set[int] = set()
    for part in spec.split(","):
        part = part.strip()
        if not part:
            continue
        if "-" in part:
            ends = part.split("-")
            if len(ends) != 2:
                raise InvalidHoursSpecification(f"Invalid hour range {part!r} in {spec!r}")
            start = _parse_hour(ends[0], spec)
            end = _parse_hour(ends[1], spec)
            if start <= end:
                hours.update(range(start, end + 1))
            else:
                hours.update(range(start, 24))
                hours.update(range(0, end + 1))
        else:
            hours.add(_parse_hour(part, spec))
    return frozenset(hours)


def hour_applies(spec: str | None, hour: int) -> bool:
    return hour in parse_hours_specification(spec)
