# file: calltariff/rating/pipeline.py
"""
Rate resolution pipeline.

Stages run in a fixed order, each taking a `RateContext` and returning a new
one:

1. base: the prefix's own rate
2. band: a geographic band on the prefix
3. special rate: a time-windowed override
4. circuit: a trunk rate, or else a trunk rule

Every incoming rate is normalised to ex-VAT before it replaces the current
one. The pipeline never mutates a context, so running it twice over the same
inputs gives the same answer.
"""

from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal

from calltariff.config import TelephonyTypeIds
from calltariff.core.hours import hour_applies
from calltariff.rating.billing import to_ex_vat
from calltariff.rating.resolver import select_band
from calltariff.rating.results import DestinationMatch, RateContext
from calltariff.reference.models import (
    Prefix,
    SpecialRateValue,
    SpecialRateValueType,
    Trunk,
    TrunkRule,
)
from calltariff.reference.store import ReferenceStore

logger = logging.getLogger(__name__)

_HUNDRED = Decimal("100")


def _naive(value: datetime) -> datetime:
    return value.replace(tzinfo=None)


def special_rate_applies(
    rate: SpecialRateValue, ctx: RateContext, called_at: datetime, *, holiday: bool
) -> bool:
    """Scope, validity window, day and hour checks for one special rate."""

    if rate.telephony_type_id not in (0, ctx.telephony_type_id):
        return False
    if rate.operator_id not in (0, ctx.operator_id):
        return False
    if rate.band_id not in (0, ctx.band_id):
        return False
    if rate.origin_indicator_id not in (0, ctx.origin_indicator_id):
        return False

    when = _naive(called_at)
    if rate.valid_from is not None and when < _naive(rate.valid_from):
        return False
    if rate.valid_to is not None and when > _naive(rate.valid_to):
        return False

    if not (rate.enabled_on(when.weekday()) or (holiday and rate.holiday_enabled)):
        return False
    return hour_applies(rate.hours_specification, when.hour)


def _special_rate_rank(rate: SpecialRateValue) -> tuple[int, ...]:
    # Exact beats "any" on each dimension, origin first; lowest id breaks ties.
    return (
        0 if rate.origin_indicator_id else 1,
        0 if rate.telephony_type_id else 1,
        0 if rate.operator_id else 1,
        0 if rate.band_id else 1,
        rate.id,
    )


def _trunk_rule_rank(rule: TrunkRule) -> tuple[int, ...]:
    return (
        0 if rule.trunk_id else 1,
        0 if rule.indicator_ids else 1,
        0 if rule.origin_indicator_id else 1,
        rule.id,
    )


class RatePipeline:
    def __init__(self, store: ReferenceStore, type_ids: TelephonyTypeIds) -> None:
        self._store = store
        self._type_ids = type_ids

    def base(
        self,
        prefix: Prefix,
        destination: DestinationMatch | None,
        *,
        origin_country_id: int,
        origin_indicator_id: int,
    ) -> RateContext:
        indicator = destination.indicator if destination is not None else None
        telephony_type_id = (
            destination.telephony_type_id if destination is not None else prefix.telephony_type_id
        )
        return RateContext(
            origin_country_id=origin_country_id,
            origin_indicator_id=origin_indicator_id,
            prefix_id=prefix.id,
            telephony_type_id=telephony_type_id,
            operator_id=prefix.operator_id,
            indicator_id=indicator.id if indicator is not None else 0,
            rate=to_ex_vat(prefix.base_value, prefix.vat_percent, prefix.vat_included),
            vat_percent=prefix.vat_percent,
        )

    def apply_band(self, ctx: RateContext, prefix: Prefix) -> RateContext:
        if not prefix.band_ok:
            return ctx
        if not ctx.indicator_id and not self._type_ids.is_local(ctx.telephony_type_id):
            return ctx

        band = select_band(self._store.bands(prefix.id), ctx.indicator_id, ctx.origin_indicator_id)
        if band is None:
            return ctx
        logger.debug("Band %d applies to prefix %d", band.id, prefix.id)
        rate = to_ex_vat(band.value, ctx.vat_percent, band.vat_included)
        return ctx.with_rate(rate, band_id=band.id, band_used=True)

    def apply_special_rate(self, ctx: RateContext, called_at: datetime) -> RateContext:
        holiday = called_at.date() in self._store.holidays(ctx.origin_country_id)
        matches = [
            r
            for r in self._store.special_rate_values(ctx.telephony_type_id)
            if special_rate_applies(r, ctx, called_at, holiday=holiday)
        ]
        if not matches:
            return ctx

        chosen = min(matches, key=_special_rate_rank)
        if chosen.value_type == SpecialRateValueType.PERCENTAGE:
            rate = ctx.rate * (Decimal(1) - chosen.rate_value / _HUNDRED)
        else:
            rate = to_ex_vat(chosen.rate_value, ctx.vat_percent, chosen.includes_vat)
        logger.debug("Special rate %d applies at %s", chosen.id, called_at.isoformat())
        return ctx.with_rate(rate, special_rate_applied=True)

    def _vat_for(self, ctx: RateContext, telephony_type_id: int, operator_id: int) -> Decimal:
        vat = self._store.vat_percent(telephony_type_id, operator_id, ctx.origin_country_id)
        return ctx.vat_percent if vat is None else vat

    def apply_trunk(self, ctx: RateContext, trunk: Trunk | None) -> RateContext:
        if trunk is None:
            return ctx

        for trunk_rate in self._store.trunk_rates(trunk.id):
            if (
                trunk_rate.operator_id == ctx.operator_id
                and trunk_rate.telephony_type_id == ctx.telephony_type_id
            ):
                vat = self._vat_for(ctx, ctx.telephony_type_id, ctx.operator_id)
                rate = to_ex_vat(trunk_rate.rate_value, vat, trunk_rate.includes_vat)
                logger.debug("Trunk rate %d applies on %s", trunk_rate.id, trunk.name)
                return ctx.with_rate(
                    rate,
                    vat_percent=vat,
                    bill_per_second=trunk_rate.bill_per_second,
                    trunk_rate_applied=True,
                )

        rules = [
            rule
            for rule in self._store.trunk_rules(trunk.id, ctx.telephony_type_id)
            if (not rule.indicator_ids or ctx.indicator_id in rule.indicator_ids)
            and rule.origin_indicator_id in (0, ctx.origin_indicator_id)
        ]
        if not rules:
            return ctx

        rule = min(rules, key=_trunk_rule_rank)
        telephony_type_id = rule.new_telephony_type_id or ctx.telephony_type_id
        operator_id = rule.new_operator_id or ctx.operator_id
        vat = self._vat_for(ctx, telephony_type_id, operator_id)
        rate = to_ex_vat(rule.rate_value, vat, rule.includes_vat)
        logger.debug(
            "Trunk rule %d applies on %s (type %d, operator %d)",
            rule.id,
            trunk.name,
            telephony_type_id,
            operator_id,
        )
        return ctx.with_rate(
            rate,
            telephony_type_id=telephony_type_id,
            operator_id=operator_id,
            vat_percent=vat,
            bill_per_second=rule.bill_per_second,
            trunk_rule_applied=True,
        )

    def run(
        self,
        destination: DestinationMatch,
        *,
        origin_country_id: int,
        origin_indicator_id: int,
        called_at: datetime,
        trunk: Trunk | None = None,
    ) -> RateContext:
        """Run every stage for a resolved destination."""

        prefix = destination.prefix
        ctx = self.base(
            prefix,
            destination,
            origin_country_id=origin_country_id,
            origin_indicator_id=origin_indicator_id,
        )
        ctx = self.apply_band(ctx, prefix)
        ctx = self.apply_special_rate(ctx, called_at)
        return self.apply_trunk(ctx, trunk)
