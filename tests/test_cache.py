# file: tests/test_cache.py
from __future__ import annotations

from calltariff.cache import CachedReferenceStore, make_cache_key
from calltariff.config import CalltariffSettings
from calltariff.rating.engine import RatingEngine
from calltariff.reference.store import SQLiteReferenceStore

from conftest import BOGOTA, COUNTRY, SOACHA, make_call


def test_make_cache_key_is_stable_and_namespaced() -> None:
    k1 = make_cache_key("series", "4", "1", "1")
    k2 = make_cache_key("series", "4", "1", "1")
    k3 = make_cache_key("series", "4", "11")
    assert k1 == k2
    assert k1 != k3
    assert k1.startswith("series:")


def test_cached_store_answers_from_memory(store: SQLiteReferenceStore) -> None:
    cached = CachedReferenceStore(store)

    first = cached.prefixes(COUNTRY)
    second = cached.prefixes(COUNTRY)
    assert first == second
    assert cached.stats.misses == 1
    assert cached.stats.hits == 1

    cached.series(4, 1, COUNTRY)
    cached.series(4, 4, COUNTRY)
    assert cached.stats.misses == 3


def test_cached_store_keeps_none_answers(store: SQLiteReferenceStore) -> None:
    cached = CachedReferenceStore(store)
    assert cached.trunk("missing") is None
    assert cached.trunk("missing") is None
    assert cached.stats.hits == 1


def test_trunk_names_share_an_entry_regardless_of_case(store: SQLiteReferenceStore) -> None:
    cached = CachedReferenceStore(store)
    a = cached.trunk("trk-loc")
    b = cached.trunk("TRK-LOC")
    assert a is not None and a == b
    assert cached.stats.misses == 1


def test_clear_drops_memoised_answers(store: SQLiteReferenceStore) -> None:
    cached = CachedReferenceStore(store)
    cached.indicator(BOGOTA)
    cached.clear()
    cached.indicator(BOGOTA)
    assert cached.stats.misses == 2


def test_special_services_resolve_against_one_table_per_country(store: SQLiteReferenceStore) -> None:
    cached = CachedReferenceStore(store)

    specific = cached.special_service("123", COUNTRY, BOGOTA)
    generic = cached.special_service("123", COUNTRY, SOACHA)
    assert specific is not None and specific.id == 2
    assert generic is not None and generic.id == 1

    before = cached.entries
    for n in range(100):
        assert cached.special_service(f"0312{n:06d}", COUNTRY, BOGOTA) is None
    assert cached.entries == before


def test_cache_stays_bounded_across_distinct_numbers(store: SQLiteReferenceStore) -> None:
    engine = RatingEngine(store, CalltariffSettings())
    cached = engine.store
    assert isinstance(cached, CachedReferenceStore)

    engine.rate(make_call("0312300000"))
    after_first = cached.entries
    for n in range(1, 200):
        engine.rate(make_call(f"03123{n:05d}"))
    assert cached.entries == after_first
