# file: calltariff/rating/billing.py
"""
Billing calculator and VAT helpers.

All arithmetic is done on `Decimal`. Rates are carried at full precision
between stages and rounded (HALF_UP, 4 places) only when reported.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

logger = logging.getLogger(__name__)

FOUR_PLACES = Decimal("0.0001")
_HUNDRED = Decimal("100")


def quantize(value: Decimal) -> Decimal:
    return value.quantize(FOUR_PLACES, rounding=ROUND_HALF_UP)


def vat_multiplier(vat_percent: Decimal) -> Decimal:
    return Decimal(1) + (vat_percent / _HUNDRED)


def to_ex_vat(rate: Decimal, vat_percent: Decimal, vat_included: bool) -> Decimal:
    """Strip VAT from `rate` when it is VAT-inclusive."""

    if not vat_included or vat_percent <= 0:
        return rate
    return rate / vat_multiplier(vat_percent)


def with_vat(rate: Decimal, vat_percent: Decimal) -> Decimal:
    """Add VAT to an ex-VAT rate."""

    if vat_percent <= 0:
        return rate
    return rate * vat_multiplier(vat_percent)


def billing_units(duration_seconds: int, *, bill_per_second: bool) -> int:
    """
    Seconds when billing per second, otherwise started minutes.

    Any positive duration bills at least one minute.
    """

    if duration_seconds <= 0:
        return 0
    if bill_per_second:
        return duration_seconds
    return max(1, math.ceil(duration_seconds / 60))


@dataclass(frozen=True, slots=True)
class BilledAmount:
    units: int
    amount: Decimal
    no_consumption: bool = False


def compute_billed_amount(
    rate: Decimal,
    vat_percent: Decimal,
    *,
    duration_seconds: int,
    vat_included: bool = False,
    bill_per_second: bool = False,
    min_billable_seconds: int = 0,
    special_service: bool = False,
) -> BilledAmount:
    """
    Convert a per-unit rate and a duration into the amount billed.

    Calls at or below `min_billable_seconds` bill nothing and are flagged
    `no_consumption`. Special-service calls skip that floor and always bill at
    least one unit.
    """

    if duration_seconds <= min_billable_seconds and not special_service:
        logger.debug(
            "Duration %ss within minimum billable %ss; no consumption",
            duration_seconds,
            min_billable_seconds,
        )
        return BilledAmount(units=0, amount=quantize(Decimal(0)), no_consumption=True)

    units = billing_units(duration_seconds, bill_per_second=bill_per_second)
    if special_service:
        units = max(units, 1)

    cost = rate * units
    if not vat_included:
        cost = with_vat(cost, vat_percent)
    return BilledAmount(units=units, amount=quantize(cost))
