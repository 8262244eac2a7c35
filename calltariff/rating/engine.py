# file: calltariff/rating/engine.py
"""
Per-call rating orchestration.

`RatingEngine.rate` runs one call through special-service lookup, prefix
selection, destination resolution, the rate pipeline and billing. It holds no
mutable state besides the read-through reference cache, so calls can be
rated concurrently; `rate_batch` does that on worker threads.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from dataclasses import dataclass, replace
from typing import Iterable

from calltariff.cache import CachedReferenceStore
from calltariff.config import CalltariffSettings, TelephonyTypeIds
from calltariff.core.numbers import sanitize_dialed_number, strip_exit_prefix
from calltariff.rating.billing import compute_billed_amount, quantize, to_ex_vat
from calltariff.rating.pipeline import RatePipeline
from calltariff.rating.resolver import DestinationResolver
from calltariff.rating.results import CallRecord, CandidateResult, MatchStatus, RatingResult
from calltariff.rating.selector import PrefixSelector
from calltariff.reference.models import Prefix, SpecialService, Trunk
from calltariff.reference.store import ReferenceStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class _Components:
    type_ids: TelephonyTypeIds
    selector: PrefixSelector
    resolver: DestinationResolver
    pipeline: RatePipeline


@dataclass(frozen=True, slots=True)
class BatchOutcome:
    """One batch entry: a result, or the error that prevented it."""

    index: int
    call: CallRecord
    result: RatingResult | None = None
    error: str | None = None


class RatingEngine:
    def __init__(self, store: ReferenceStore, settings: CalltariffSettings | None = None) -> None:
        self.settings = settings or CalltariffSettings()
        self.store: ReferenceStore = (
            CachedReferenceStore(store) if self.settings.cache_enabled else store
        )
        self._components: dict[int, _Components] = {}
        self._lock = threading.Lock()

    def _for_country(self, origin_country_id: int) -> _Components:
        with self._lock:
            found = self._components.get(origin_country_id)
            if found is None:
                type_ids = self.settings.type_ids_for(origin_country_id)
                found = _Components(
                    type_ids=type_ids,
                    selector=PrefixSelector(self.store, type_ids),
                    resolver=DestinationResolver(
                        self.store, type_ids, assumed_text=self.settings.assumed_text
                    ),
                    pipeline=RatePipeline(self.store, type_ids),
                )
                self._components[origin_country_id] = found
            return found

    def _type_name(self, telephony_type_id: int) -> str:
        tt = self.store.telephony_type(telephony_type_id)
        return tt.name if tt is not None else ""

    def _error_result(self, parts: _Components, number: str, reason: str) -> RatingResult:
        return RatingResult(
            status=MatchStatus.ERROR,
            telephony_type_id=parts.type_ids.errors,
            telephony_type_name=self._type_name(parts.type_ids.errors),
            dialed_number=number,
            reason=reason,
        )

    def _attempt(
        self, parts: _Components, number: str, call: CallRecord, trunk: Trunk | None
    ) -> CandidateResult:
        candidates = parts.selector.candidates(number, call.origin_country_id, trunk)
        if not candidates:
            return CandidateResult(status=MatchStatus.ERROR, reason="no prefix")

        def evaluate(prefix: Prefix) -> CandidateResult:
            residual = parts.selector.residual(prefix, number, call.origin_country_id)
            if residual is None:
                return CandidateResult(
                    status=MatchStatus.ERROR, prefix=prefix, reason="invalid number length"
                )
            destination = parts.resolver.resolve(
                prefix,
                residual,
                origin_country_id=call.origin_country_id,
                origin_indicator_id=call.origin_indicator_id,
            )
            if destination.status == MatchStatus.ERROR:
                return CandidateResult(
                    status=MatchStatus.ERROR,
                    prefix=prefix,
                    destination=destination,
                    reason="no destination",
                )
            ctx = parts.pipeline.run(
                destination,
                origin_country_id=call.origin_country_id,
                origin_indicator_id=call.origin_indicator_id,
                called_at=call.called_at,
                trunk=trunk,
            )
            return CandidateResult(
                status=destination.status,
                prefix=destination.prefix,
                destination=destination,
                context=ctx,
            )

        best = parts.selector.best_of(candidates, evaluate)
        return best or CandidateResult(status=MatchStatus.ERROR, reason="no prefix")

    def _special_service_result(
        self, parts: _Components, call: CallRecord, number: str, service: SpecialService
    ) -> RatingResult:
        billed = compute_billed_amount(
            service.value,
            service.vat_percent,
            duration_seconds=call.duration_seconds,
            vat_included=service.vat_included,
            min_billable_seconds=self.settings.min_billable_seconds,
            special_service=True,
        )
        return RatingResult(
            status=MatchStatus.DEFINITIVE,
            telephony_type_id=parts.type_ids.special_services,
            telephony_type_name=self._type_name(parts.type_ids.special_services),
            indicator_id=service.indicator_id or call.origin_indicator_id,
            destination=service.description,
            rate_per_unit=quantize(
                to_ex_vat(service.value, service.vat_percent, service.vat_included)
            ),
            vat_percent=service.vat_percent,
            billing_units=billed.units,
            billed_amount=billed.amount,
            dialed_number=number,
        )

    def _final_result(
        self, parts: _Components, call: CallRecord, number: str, outcome: CandidateResult
    ) -> RatingResult:
        ctx = outcome.context
        if outcome.status == MatchStatus.ERROR or ctx is None:
            return self._error_result(parts, number, outcome.reason or "unrated")

        billed = compute_billed_amount(
            ctx.rate,
            ctx.vat_percent,
            duration_seconds=call.duration_seconds,
            bill_per_second=ctx.bill_per_second,
            min_billable_seconds=self.settings.min_billable_seconds,
        )
        telephony_type_id = ctx.telephony_type_id
        if billed.no_consumption:
            telephony_type_id = parts.type_ids.no_consumption
        operator = self.store.operator(ctx.operator_id)
        destination = outcome.destination

        return RatingResult(
            status=outcome.status,
            telephony_type_id=telephony_type_id,
            telephony_type_name=self._type_name(telephony_type_id),
            operator_id=ctx.operator_id,
            operator_name=operator.name if operator is not None else "",
            indicator_id=ctx.indicator_id,
            destination=destination.description if destination is not None else "",
            rate_per_unit=quantize(ctx.rate),
            vat_percent=ctx.vat_percent,
            bill_per_second=ctx.bill_per_second,
            initial_price=quantize(ctx.initial_price) if ctx.initial_price is not None else None,
            billing_units=billed.units,
            billed_amount=billed.amount,
            dialed_number=number,
            band_used=ctx.band_used,
            special_rate_applied=ctx.special_rate_applied,
            trunk_rate_applied=ctx.trunk_rate_applied,
            trunk_rule_applied=ctx.trunk_rule_applied,
        )

    def rate(self, call: CallRecord) -> RatingResult:
        """
        Rate one call.

        "Not found" outcomes are returned as ERROR results with a zero amount.

        Raises:
            ReferenceDataError: if the reference store fails.
        """

        parts = self._for_country(call.origin_country_id)
        number = sanitize_dialed_number(call.dialed_number)
        if not number:
            return self._error_result(parts, number, "empty number")

        service = self.store.special_service(
            number, call.origin_country_id, call.origin_indicator_id
        )
        if service is not None:
            logger.debug("Special service %d matched %s", service.id, number)
            return self._special_service_result(parts, call, number, service)

        trunk: Trunk | None = None
        if call.trunk_name:
            trunk = self.store.trunk(call.trunk_name)
            if trunk is None:
                logger.debug("Unknown trunk %r; rating without a circuit", call.trunk_name)

        outcome = self._attempt(parts, number, call, trunk)
        normalized = False

        if trunk is not None and outcome.status != MatchStatus.DEFINITIVE:
            retry_number = number
            if not trunk.no_pbx_prefix:
                retry_number = strip_exit_prefix(number, self.settings.pbx_exit_prefixes)
            retry = self._attempt(parts, retry_number, call, None)
            if retry.status > outcome.status:
                logger.info(
                    "Circuit normalisation for %s on %s: %s -> %s",
                    number,
                    trunk.name,
                    outcome.status.label,
                    retry.status.label,
                )
                outcome = retry
                normalized = True

        result = self._final_result(parts, call, number, outcome)
        if normalized:
            result = replace(result, circuit_normalized=True)
        return result

    async def _rate_one(self, index: int, call: CallRecord) -> BatchOutcome:
        try:
            result = await asyncio.to_thread(self.rate, call)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.warning("Call %d (%s) failed: %s", index, call.dialed_number, exc)
            return BatchOutcome(index=index, call=call, error=f"{type(exc).__name__}: {exc}")
        return BatchOutcome(index=index, call=call, result=result)

    async def rate_batch(self, calls: Iterable[CallRecord]) -> list[BatchOutcome]:
        """
        Rate many calls concurrently on worker threads.

        `settings.batch_workers` workers pull calls from `calls` one at a time,
        so a generator is consumed lazily and at most that many calls are in
        flight. A failure on one call is recorded in its outcome and does not
        affect the others. Outcomes come back in input order.
        """

        pending = enumerate(calls)
        outcomes: list[BatchOutcome] = []

        async def worker() -> None:
            for index, call in pending:
                outcomes.append(await self._rate_one(index, call))

        await asyncio.gather(*(worker() for _ in range(max(1, self.settings.batch_workers))))
        outcomes.sort(key=lambda o: o.index)
        return outcomes
