# file: calltariff/cache.py
"""
Per-run read-through cache over the reference store.

Reference data is immutable for the duration of a rating run, so every store
answer can be memoised for the life of the wrapper. Millions of calls share a
handful of prefix lists, NDC ranges and series sets; this keeps those lookups
off the database after the first call.
"""

from __future__ import annotations

import hashlib
import logging
import threading
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any, Callable, TypeVar

from calltariff.reference.models import (
    Band,
    Indicator,
    Operator,
    OriginCountry,
    Prefix,
    Series,
    SpecialRateValue,
    SpecialService,
    TelephonyType,
    TelephonyTypeConfig,
    Trunk,
    TrunkRate,
    TrunkRule,
)
from calltariff.reference.store import ReferenceStore, pick_special_service

logger = logging.getLogger(__name__)

T = TypeVar("T")


def make_cache_key(namespace: str, *parts: str) -> str:
    """
    Make a stable cache key.

    Keys are hashed to keep them short even for long dialed numbers.
    """

    raw = "|".join((namespace, *parts)).encode("utf-8")
    digest = hashlib.sha256(raw).hexdigest()
    return f"{namespace}:{digest}"


@dataclass(frozen=True, slots=True)
class CacheStats:
    hits: int = 0
    misses: int = 0


class CachedReferenceStore(ReferenceStore):
    """
    Store wrapper that memoises every query.

    Safe to share across worker threads. Two threads missing on the same key
    may both hit the store; the results are identical, so the second write is
    harmless.
    """

    def __init__(self, store: ReferenceStore) -> None:
        self._store = store
        self._values: dict[str, Any] = {}
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0

    @property
    def entries(self) -> int:
        """Number of memoised answers."""

        with self._lock:
            return len(self._values)

    @property
    def stats(self) -> CacheStats:
        with self._lock:
            return CacheStats(hits=self._hits, misses=self._misses)

    def clear(self) -> None:
        with self._lock:
            self._values.clear()

    def _memo(self, namespace: str, fn: Callable[..., T], *args: Any) -> T:
        key = make_cache_key(namespace, *(repr(a) for a in args))
        with self._lock:
            if key in self._values:
                self._hits += 1
                return self._values[key]
            self._misses += 1
        value = fn(*args)
        with self._lock:
            self._values[key] = value
        return value

    def origin_country(self, origin_country_id: int) -> OriginCountry | None:
        return self._memo("origin_country", self._store.origin_country, origin_country_id)

    def origin_country_by_code(self, code: str) -> OriginCountry | None:
        return self._memo("origin_country_code", self._store.origin_country_by_code, code)

    def prefixes(self, origin_country_id: int) -> list[Prefix]:
        return self._memo("prefixes", self._store.prefixes, origin_country_id)

    def telephony_type(self, telephony_type_id: int) -> TelephonyType | None:
        return self._memo("telephony_type", self._store.telephony_type, telephony_type_id)

    def telephony_type_config(
        self, telephony_type_id: int, origin_country_id: int
    ) -> TelephonyTypeConfig | None:
        return self._memo(
            "telephony_type_config",
            self._store.telephony_type_config,
            telephony_type_id,
            origin_country_id,
        )

    def operator(self, operator_id: int) -> Operator | None:
        return self._memo("operator", self._store.operator, operator_id)

    def indicator(self, indicator_id: int) -> Indicator | None:
        return self._memo("indicator", self._store.indicator, indicator_id)

    def ndc_length_range(
        self, telephony_type_id: int, origin_country_id: int | None
    ) -> tuple[int, int]:
        return self._memo(
            "ndc_length_range", self._store.ndc_length_range, telephony_type_id, origin_country_id
        )

    def series(
        self, telephony_type_id: int, ndc: int, origin_country_id: int | None
    ) -> list[tuple[Series, Indicator]]:
        return self._memo("series", self._store.series, telephony_type_id, ndc, origin_country_id)

    def indicator_ndcs(self, indicator_id: int) -> list[int]:
        return self._memo("indicator_ndcs", self._store.indicator_ndcs, indicator_id)

    def bands(self, prefix_id: int) -> list[Band]:
        return self._memo("bands", self._store.bands, prefix_id)

    def special_rate_values(self, telephony_type_id: int) -> list[SpecialRateValue]:
        return self._memo(
            "special_rate_values", self._store.special_rate_values, telephony_type_id
        )

    def holidays(self, origin_country_id: int) -> frozenset[date]:
        return self._memo("holidays", self._store.holidays, origin_country_id)

    def trunk(self, name: str) -> Trunk | None:
        return self._memo("trunk", self._store.trunk, name.strip().upper())

    def trunk_rates(self, trunk_id: int) -> list[TrunkRate]:
        return self._memo("trunk_rates", self._store.trunk_rates, trunk_id)

    def trunk_rules(self, trunk_id: int, telephony_type_id: int) -> list[TrunkRule]:
        return self._memo("trunk_rules", self._store.trunk_rules, trunk_id, telephony_type_id)

    def vat_percent(
        self, telephony_type_id: int, operator_id: int, origin_country_id: int
    ) -> Decimal | None:
        return self._memo(
            "vat_percent",
            self._store.vat_percent,
            telephony_type_id,
            operator_id,
            origin_country_id,
        )

    def special_services(self, origin_country_id: int) -> list[SpecialService]:
        return self._memo("special_services", self._store.special_services, origin_country_id)

    def _special_service_index(self, origin_country_id: int) -> dict[str, list[SpecialService]]:
        index: dict[str, list[SpecialService]] = {}
        for service in self.special_services(origin_country_id):
            index.setdefault(service.phone_number, []).append(service)
        return index

    def special_service(
        self, phone_number: str, origin_country_id: int, indicator_id: int
    ) -> SpecialService | None:
        # Keyed by country, not by dialed number, so the cache stays bounded by
        # the size of the reference data.
        index = self._memo(
            "special_service_index", self._special_service_index, origin_country_id
        )
        return pick_special_service(index.get(phone_number, ()), phone_number, indicator_id)
