# file: calltariff/rating/results.py
"""
Result types passed between rating stages.

Every stage returns a value tagged with a `MatchStatus`, so choosing the best
of several candidates is a comparison over a closed, totally ordered set
rather than a set of loose booleans.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from decimal import Decimal
from enum import IntEnum
from typing import Any

from calltariff.reference.models import Indicator, Prefix


class MatchStatus(IntEnum):
    """Ordered from worst to best: ERROR < ASSUMED < DEFINITIVE."""

    ERROR = 0
    ASSUMED = 1
    DEFINITIVE = 2

    @property
    def label(self) -> str:
        return self.name.lower()


@dataclass(frozen=True, slots=True)
class CallRecord:
    """
    One call as handed over by the call classifier.

    `dialed_number` is already normalised; PBX exit codes are only stripped
    again for the circuit normalisation retry.
    """

    dialed_number: str
    origin_country_id: int
    origin_indicator_id: int
    called_at: datetime
    duration_seconds: int
    trunk_name: str | None = None


@dataclass(frozen=True, slots=True)
class DestinationMatch:
    """
    Resolver output.

    `prefix` and `telephony_type_id` are the values rating continues with; they
    differ from the candidate's when a Local call is upgraded to Local
    Extended.
    """

    status: MatchStatus
    prefix: Prefix
    telephony_type_id: int
    indicator: Indicator | None = None
    ndc: int | None = None
    description: str = ""

    @property
    def assumed(self) -> bool:
        return self.status == MatchStatus.ASSUMED


@dataclass(frozen=True, slots=True)
class RateContext:
    """
    Immutable state threaded through the rate pipeline.

    `rate` is always ex-VAT. Stages return a new context via `with_rate` or
    `dataclasses.replace`; `initial_price` is the ex-VAT base rate, recorded
    the first time a stage changes the rate.
    """

    origin_country_id: int
    origin_indicator_id: int
    prefix_id: int
    telephony_type_id: int
    operator_id: int
    indicator_id: int
    rate: Decimal
    vat_percent: Decimal
    bill_per_second: bool = False
    band_id: int = 0
    initial_price: Decimal | None = None
    band_used: bool = False
    special_rate_applied: bool = False
    trunk_rate_applied: bool = False
    trunk_rule_applied: bool = False

    def with_rate(self, rate: Decimal, **changes: Any) -> "RateContext":
        initial = self.initial_price
        if initial is None and rate != self.rate:
            initial = self.rate
        return replace(self, rate=rate, initial_price=initial, **changes)


@dataclass(frozen=True, slots=True)
class CandidateResult:
    """Outcome of rating one prefix candidate."""

    status: MatchStatus
    prefix: Prefix | None = None
    destination: DestinationMatch | None = None
    context: RateContext | None = None
    reason: str = ""


@dataclass(frozen=True, slots=True)
class RatingResult:
    """
    Final, ledger-ready rating of one call.

    Amounts are quantized to 4 decimal places.
    """

    status: MatchStatus
    telephony_type_id: int
    telephony_type_name: str
    operator_id: int = 0
    operator_name: str = ""
    indicator_id: int = 0
    destination: str = ""
    rate_per_unit: Decimal = Decimal("0.0000")
    vat_percent: Decimal = Decimal("0")
    bill_per_second: bool = False
    initial_price: Decimal | None = None
    billing_units: int = 0
    billed_amount: Decimal = Decimal("0.0000")
    dialed_number: str = ""
    band_used: bool = False
    special_rate_applied: bool = False
    trunk_rate_applied: bool = False
    trunk_rule_applied: bool = False
    circuit_normalized: bool = False
    reason: str = ""

    @property
    def assumed(self) -> bool:
        return self.status == MatchStatus.ASSUMED

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.label,
            "dialed_number": self.dialed_number,
            "telephony_type_id": self.telephony_type_id,
            "telephony_type": self.telephony_type_name,
            "operator_id": self.operator_id,
            "operator": self.operator_name,
            "indicator_id": self.indicator_id,
            "destination": self.destination,
            "rate_per_unit": str(self.rate_per_unit),
            "vat_percent": str(self.vat_percent),
            "bill_per_second": self.bill_per_second,
            "initial_price": None if self.initial_price is None else str(self.initial_price),
            "billing_units": self.billing_units,
            "billed_amount": str(self.billed_amount),
            "band_used": self.band_used,
            "special_rate_applied": self.special_rate_applied,
            "trunk_rate_applied": self.trunk_rate_applied,
            "trunk_rule_applied": self.trunk_rule_applied,
            "assumed": self.assumed,
            "circuit_normalized": self.circuit_normalized,
            "reason": self.reason,
        }
