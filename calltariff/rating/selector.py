# file: calltariff/rating/selector.py
"""
Prefix candidate selection.

Without a circuit, the dialed number's longest matching dialing code decides
the candidates. A circuit already implies routing, so with one the candidates
are the prefixes whose (operator, telephony type) the circuit carries.
"""

from __future__ import annotations

import logging
from typing import Callable, Iterable

from calltariff.config import TelephonyTypeIds
from calltariff.rating.results import CandidateResult, MatchStatus
from calltariff.reference.models import Prefix, Trunk
from calltariff.reference.store import ReferenceStore

logger = logging.getLogger(__name__)


class PrefixSelector:
    def __init__(self, store: ReferenceStore, type_ids: TelephonyTypeIds) -> None:
        self._store = store
        self._type_ids = type_ids

    def _rateable(self, origin_country_id: int) -> list[Prefix]:
        special = self._type_ids.special_services
        return [p for p in self._store.prefixes(origin_country_id) if p.telephony_type_id != special]

    def candidates(
        self, number: str, origin_country_id: int, trunk: Trunk | None = None
    ) -> list[Prefix]:
        """
        Ranked candidate prefixes for `number`.

        Returns an empty list when nothing applies ("no prefix").
        """

        prefixes = self._rateable(origin_country_id)

        if trunk is not None:
            carried: list[tuple[int, int]] = []
            for rate in self._store.trunk_rates(trunk.id):
                pair = (rate.operator_id, rate.telephony_type_id)
                if pair not in carried:
                    carried.append(pair)
            out: list[Prefix] = []
            for operator_id, telephony_type_id in carried:
                out.extend(
                    p
                    for p in prefixes
                    if p.operator_id == operator_id and p.telephony_type_id == telephony_type_id
                )
            logger.debug("Trunk %s carries %d candidate prefixes", trunk.name, len(out))
            return out

        matching = [p for p in prefixes if p.code and number.startswith(p.code)]
        if matching:
            longest = max(len(p.code) for p in matching)
            return [p for p in matching if len(p.code) == longest]

        local = [
            p for p in prefixes if not p.code and p.telephony_type_id == self._type_ids.local
        ]
        logger.debug("No dialing code matches %s; %d local fallback prefixes", number, len(local))
        return local

    def residual(self, prefix: Prefix, number: str, origin_country_id: int) -> str | None:
        """
        The digits left for destination lookup once `prefix` is applied.

        The dialing code is removed when the number starts with it. The rest is
        cut to the telephony type's maximum length; None means it is shorter
        than the type's minimum (or empty).
        """

        rest = number[len(prefix.code) :] if prefix.code and number.startswith(prefix.code) else number

        config = self._store.telephony_type_config(prefix.telephony_type_id, origin_country_id)
        if config is not None:
            if config.max_digits > 0 and len(rest) > config.max_digits:
                rest = rest[: config.max_digits]
            if len(rest) < config.min_digits:
                logger.debug(
                    "Residual %s shorter than %d digits for type %d",
                    rest,
                    config.min_digits,
                    prefix.telephony_type_id,
                )
                return None
        return rest or None

    @staticmethod
    def best_of(
        candidates: Iterable[Prefix], evaluate: Callable[[Prefix], CandidateResult]
    ) -> CandidateResult | None:
        """
        Evaluate candidates in order and keep the best outcome.

        The first definitive outcome wins outright. Otherwise the earliest
        outcome of the highest status is kept; a later candidate only replaces
        it when strictly better.
        """

        best: CandidateResult | None = None
        for prefix in candidates:
            outcome = evaluate(prefix)
            if outcome.status == MatchStatus.DEFINITIVE:
                return outcome
            if best is None or outcome.status > best.status:
                best = outcome
        return best
