# file: calltariff/rating/resolver.py
"""
Destination indicator resolution.

The residual number (dialed number minus the prefix's dialing code) is split
into an NDC and a subscriber part at every NDC length known for the telephony
type, longest first, and matched against the series published for that NDC.
The first length that yields an exact match wins. Wildcard series (NDC -1)
only serve as a fallback when no length matches exactly.

Local calls carry no area code, so they are looked up as National calls with
the caller's own NDC in front.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from calltariff.config import TelephonyTypeIds
from calltariff.rating.results import DestinationMatch, MatchStatus
from calltariff.rating.series import match_span
from calltariff.reference.models import WILDCARD_NDC, Band, Indicator, Prefix, Series
from calltariff.reference.store import ReferenceStore

logger = logging.getLogger(__name__)


def select_band(bands: list[Band], indicator_id: int, origin_indicator_id: int) -> Band | None:
    """
    Pick the band reaching `indicator_id` from the caller's origin.

    A band scoped to the caller's own origin indicator is preferred over an
    any-origin band; among equals the first (lowest id) wins.
    """

    best: Band | None = None
    for band in bands:
        if band.origin_indicator_id not in (0, origin_indicator_id):
            continue
        if not band.reaches(indicator_id):
            continue
        if best is None or (band.origin_indicator_id != 0 and best.origin_indicator_id == 0):
            best = band
    return best


@dataclass(frozen=True, slots=True)
class _SeriesHit:
    series: Series
    indicator: Indicator
    exact: bool


class DestinationResolver:
    def __init__(
        self,
        store: ReferenceStore,
        type_ids: TelephonyTypeIds,
        *,
        assumed_text: str = "(assumed)",
    ) -> None:
        self._store = store
        self._type_ids = type_ids
        self._assumed_text = assumed_text

    def local_ndc(self, indicator_id: int) -> int | None:
        """The indicator's own area code: its most common NDC, smallest on ties."""

        ndcs = self._store.indicator_ndcs(indicator_id)
        return ndcs[0] if ndcs else None

    def _eligible(
        self, indicator: Indicator, prefix: Prefix, bands: list[Band], origin_indicator_id: int
    ) -> tuple[bool, Band | None]:
        # A band-enabled prefix only reaches indicators through its bands; with
        # no bands it reaches nothing.
        if prefix.band_ok:
            band = select_band(bands, indicator.id, origin_indicator_id)
            return band is not None, band
        return indicator.operator_id in (0, prefix.operator_id), None

    def _scan(
        self,
        number: str,
        telephony_type_id: int,
        origin_country_id: int | None,
        prefix: Prefix,
        bands: list[Band],
        origin_indicator_id: int,
    ) -> _SeriesHit | None:
        lo, hi = self._store.ndc_length_range(telephony_type_id, origin_country_id)
        lengths = list(range(hi, lo - 1, -1)) if hi > 0 else []
        lengths.append(0)
        wildcards = self._store.series(telephony_type_id, WILDCARD_NDC, origin_country_id)

        approximate: _SeriesHit | None = None
        for ndc_len in lengths:
            ndc_text, subscriber = number[:ndc_len], number[ndc_len:]
            if not subscriber:
                continue
            # Stored NDCs are integers, so a leading zero cannot be part of one.
            if ndc_len and ndc_text.startswith("0"):
                continue
            ndc = int(ndc_text) if ndc_len else 0

            best: tuple[tuple[int, int], _SeriesHit] | None = None
            for series, indicator in self._store.series(telephony_type_id, ndc, origin_country_id):
                span = match_span(series, subscriber)
                if span is None:
                    continue
                ok, band = self._eligible(indicator, prefix, bands, origin_indicator_id)
                if not ok:
                    continue
                rank = (0 if band is not None and band.origin_indicator_id else 1, span)
                if best is None or rank < best[0]:
                    best = (rank, _SeriesHit(series, indicator, exact=True))
            if best is not None:
                logger.debug(
                    "Series %d matched %s (ndc=%d, subscriber=%s)",
                    best[1].series.id,
                    number,
                    ndc,
                    subscriber,
                )
                return best[1]

            if approximate is None:
                for series, indicator in wildcards:
                    if match_span(series, subscriber) is None:
                        continue
                    ok, _ = self._eligible(indicator, prefix, bands, origin_indicator_id)
                    if ok:
                        approximate = _SeriesHit(series, indicator, exact=False)
                        break
        return approximate

    def _describe(self, indicator: Indicator | None, assumed: bool) -> str:
        text = indicator.description if indicator is not None else ""
        if assumed and self._assumed_text:
            text = f"{text} {self._assumed_text}".strip()
        return text

    def _local_extended_prefix(self, prefix: Prefix, origin_country_id: int) -> Prefix | None:
        target = self._type_ids.local_extended
        for candidate in self._store.prefixes(origin_country_id):
            if candidate.telephony_type_id == target and candidate.operator_id == prefix.operator_id:
                return candidate
        for candidate in self._store.prefixes(origin_country_id):
            if candidate.telephony_type_id == target:
                return candidate
        return None

    def resolve(
        self,
        prefix: Prefix,
        residual: str,
        *,
        origin_country_id: int,
        origin_indicator_id: int,
    ) -> DestinationMatch:
        """
        Find the destination indicator for `residual` under `prefix`.

        Never raises for "not found": the returned match is tagged DEFINITIVE,
        ASSUMED (wildcard series or the caller's own indicator) or ERROR.
        """

        telephony_type_id = prefix.telephony_type_id
        is_local = self._type_ids.is_local(telephony_type_id)

        number = residual
        search_type = telephony_type_id
        if is_local:
            origin_ndc = self.local_ndc(origin_indicator_id)
            if origin_ndc is not None and origin_ndc > 0:
                number = f"{origin_ndc}{residual}"
                search_type = self._type_ids.national

        scope = None if self._type_ids.is_worldwide(search_type) else origin_country_id
        bands = self._store.bands(prefix.id) if prefix.band_ok else []

        hit = self._scan(number, search_type, scope, prefix, bands, origin_indicator_id)

        if hit is None:
            if is_local:
                origin = self._store.indicator(origin_indicator_id)
                if origin is not None:
                    logger.info(
                        "No series for local number %s; assuming caller's own indicator %d",
                        residual,
                        origin.id,
                    )
                    return DestinationMatch(
                        status=MatchStatus.ASSUMED,
                        prefix=prefix,
                        telephony_type_id=telephony_type_id,
                        indicator=origin,
                        ndc=self.local_ndc(origin.id),
                        description=self._describe(origin, assumed=True),
                    )
            logger.debug("No destination for %s under prefix %d", residual, prefix.id)
            return DestinationMatch(
                status=MatchStatus.ERROR, prefix=prefix, telephony_type_id=telephony_type_id
            )

        status = MatchStatus.DEFINITIVE if hit.exact else MatchStatus.ASSUMED
        if not hit.exact:
            logger.info(
                "Approximate match for %s: indicator %d via wildcard series %d",
                residual,
                hit.indicator.id,
                hit.series.id,
            )

        if (
            is_local
            and hit.exact
            and hit.indicator.id != origin_indicator_id
            and hit.series.ndc in self._store.indicator_ndcs(origin_indicator_id)
        ):
            extended = self._local_extended_prefix(prefix, origin_country_id)
            if extended is None:
                logger.warning(
                    "Indicator %d is local-extended from %d but no Local Extended prefix exists "
                    "for country %d; rating as Local",
                    hit.indicator.id,
                    origin_indicator_id,
                    origin_country_id,
                )
            else:
                logger.info(
                    "Upgrading local call to %d to Local Extended (prefix %d)",
                    hit.indicator.id,
                    extended.id,
                )
                prefix = extended
                telephony_type_id = extended.telephony_type_id

        return DestinationMatch(
            status=status,
            prefix=prefix,
            telephony_type_id=telephony_type_id,
            indicator=hit.indicator,
            ndc=hit.series.ndc,
            description=self._describe(hit.indicator, assumed=not hit.exact),
        )
