# file: calltariff/rating/__init__.py
"""Call rating: prefix selection, destination resolution, rate pipeline and billing."""

from __future__ import annotations

from .engine import BatchOutcome, RatingEngine
from .results import CallRecord, MatchStatus, RatingResult

__all__ = ["BatchOutcome", "CallRecord", "MatchStatus", "RatingEngine", "RatingResult"]
