# file: tests/test_resolver.py
from __future__ import annotations

from calltariff.config import TelephonyTypeIds
from calltariff.rating.resolver import DestinationResolver, select_band
from calltariff.rating.results import MatchStatus
from calltariff.reference.models import Band, ReferenceDocument
from calltariff.reference.store import SQLiteReferenceStore

from conftest import BOGOTA, COUNTRY, MEDELLIN, SOACHA, document_data


def _resolver(store) -> DestinationResolver:
    return DestinationResolver(store, TelephonyTypeIds(), assumed_text="(assumed)")


def _prefix(store, code: str, telephony_type_id: int):
    return next(
        p
        for p in store.prefixes(COUNTRY)
        if p.code == code and p.telephony_type_id == telephony_type_id
    )


def _resolve(store, code: str, telephony_type_id: int, residual: str, origin: int = BOGOTA):
    return _resolver(store).resolve(
        _prefix(store, code, telephony_type_id),
        residual,
        origin_country_id=COUNTRY,
        origin_indicator_id=origin,
    )


def test_exact_match_at_shorter_ndc_beats_wildcard(store) -> None:
    # "42" has no series, so the wildcard is seen first; "4" then matches Medellin.
    match = _resolve(store, "0", 4, "42345678")
    assert match.status == MatchStatus.DEFINITIVE
    assert match.indicator is not None and match.indicator.id == MEDELLIN
    assert match.ndc == 4
    assert match.description == "Medellin, Antioquia"


def test_longer_ndc_is_tried_first(store) -> None:
    match = _resolve(store, "0", 4, "45123456")
    assert match.indicator is not None and match.indicator.id == 14
    assert match.ndc == 45


def test_wildcard_is_an_assumed_fallback(store) -> None:
    match = _resolve(store, "0", 4, "81234567")
    assert match.status == MatchStatus.ASSUMED
    assert match.indicator is not None and match.indicator.id == 15
    assert match.ndc == -1
    assert match.description == "National (assumed)"


def test_no_destination_is_an_error(store) -> None:
    match = _resolve(store, "03", 2, "99999999")
    assert match.status == MatchStatus.ERROR
    assert match.indicator is None


def test_international_series_are_not_scoped_to_origin_country(store) -> None:
    match = _resolve(store, "00", 5, "12125551234")
    assert match.status == MatchStatus.DEFINITIVE
    assert match.indicator is not None and match.indicator.city_name == "United States"


def test_local_call_uses_origin_ndc(store) -> None:
    match = _resolve(store, "", 3, "2345678")
    assert match.status == MatchStatus.DEFINITIVE
    assert match.indicator is not None and match.indicator.id == BOGOTA
    assert match.telephony_type_id == 3
    assert match.prefix.id == 1


def test_local_call_without_series_assumes_origin(store) -> None:
    match = _resolve(store, "", 3, "5123456")
    assert match.status == MatchStatus.ASSUMED
    assert match.indicator is not None and match.indicator.id == BOGOTA
    assert match.description.endswith("(assumed)")


def test_local_extended_reclassification(store) -> None:
    match = _resolve(store, "", 3, "7123456")
    assert match.status == MatchStatus.DEFINITIVE
    assert match.indicator is not None and match.indicator.id == SOACHA
    assert match.telephony_type_id == 12
    assert match.prefix.id == 5
    assert match.prefix.operator_id == 1


def test_local_extended_without_prefix_stays_local() -> None:
    data = document_data()
    data["prefixes"] = [p for p in data["prefixes"] if p["telephony_type_id"] != 12]
    store = SQLiteReferenceStore.from_document(ReferenceDocument.model_validate(data))
    try:
        match = _resolve(store, "", 3, "7123456")
    finally:
        store.close()
    assert match.indicator is not None and match.indicator.id == SOACHA
    assert match.telephony_type_id == 3
    assert match.prefix.id == 1


def test_band_enabled_prefix_only_reaches_banded_indicators(store) -> None:
    assert _resolve(store, "09", 4, "42345678").indicator.id == MEDELLIN
    # Bogota is not reachable through any band on the "09" prefix.
    assert _resolve(store, "09", 4, "12345678").status == MatchStatus.ERROR


def test_band_enabled_prefix_without_bands_reaches_nothing() -> None:
    data = document_data()
    data["bands"] = []
    store = SQLiteReferenceStore.from_document(ReferenceDocument.model_validate(data))
    try:
        match = _resolve(store, "09", 4, "42345678")
    finally:
        store.close()
    assert match.status == MatchStatus.ERROR
    assert match.indicator is None


def test_select_band_prefers_exact_origin() -> None:
    bands = [
        Band(id=1, prefix_id=3, value="90", indicator_ids=(MEDELLIN,)),
        Band(id=2, prefix_id=3, value="70", origin_indicator_id=BOGOTA, indicator_ids=(MEDELLIN,)),
        Band(id=3, prefix_id=3, value="10", origin_indicator_id=99, indicator_ids=(MEDELLIN,)),
    ]
    assert select_band(bands, MEDELLIN, BOGOTA).id == 2
    assert select_band(bands, MEDELLIN, SOACHA).id == 1
    assert select_band(bands, BOGOTA, BOGOTA) is None


def test_band_without_destinations_applies_everywhere() -> None:
    band = Band(id=1, prefix_id=1, value="5")
    assert select_band([band], 0, BOGOTA) is band
