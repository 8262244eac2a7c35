# file: tests/conftest.py
from __future__ import annotations

import copy
from datetime import datetime
from typing import Any, Iterator

import pytest

from calltariff.config import CalltariffSettings
from calltariff.rating.engine import RatingEngine
from calltariff.rating.results import CallRecord
from calltariff.reference.models import ReferenceDocument
from calltariff.reference.store import SQLiteReferenceStore

COUNTRY = 1
BOGOTA = 10
SOACHA = 11
MEDELLIN = 12

# Wednesday, midday.
WEEKDAY_NOON = datetime(2026, 3, 11, 12, 0)
WEEKDAY_NIGHT = datetime(2026, 3, 11, 23, 0)
# Friday, a holiday.
CHRISTMAS_NOON = datetime(2026, 12, 25, 12, 0)

_DOCUMENT: dict[str, Any] = {
    "origin_countries": [{"id": COUNTRY, "code": "57", "name": "Colombia"}],
    "telephony_types": [
        {"id": 2, "name": "Cellular"},
        {"id": 3, "name": "Local"},
        {"id": 4, "name": "National"},
        {"id": 5, "name": "International"},
        {"id": 11, "name": "Special services"},
        {"id": 12, "name": "Local extended"},
        {"id": 16, "name": "No consumption"},
        {"id": 97, "name": "Errors"},
    ],
    "telephony_type_configs": [
        {"telephony_type_id": 2, "origin_country_id": COUNTRY, "min_digits": 8, "max_digits": 10},
        {"telephony_type_id": 3, "origin_country_id": COUNTRY, "min_digits": 7, "max_digits": 7},
        {"telephony_type_id": 4, "origin_country_id": COUNTRY, "min_digits": 8, "max_digits": 9},
        {"telephony_type_id": 5, "origin_country_id": COUNTRY, "min_digits": 6, "max_digits": 15},
        {"telephony_type_id": 12, "origin_country_id": COUNTRY, "min_digits": 7, "max_digits": 7},
    ],
    "operators": [
        {"id": 1, "name": "Telco", "origin_country_id": COUNTRY},
        {"id": 2, "name": "MobileCo", "origin_country_id": COUNTRY},
        {"id": 3, "name": "LongDistance", "origin_country_id": COUNTRY},
    ],
    "prefixes": [
        {"id": 1, "code": "", "telephony_type_id": 3, "operator_id": 1, "base_value": "50", "vat_percent": "19"},
        {"id": 2, "code": "0", "telephony_type_id": 4, "operator_id": 3, "base_value": "100", "vat_percent": "16"},
        {
            "id": 3,
            "code": "09",
            "telephony_type_id": 4,
            "operator_id": 3,
            "base_value": "150",
            "vat_percent": "16",
            "band_ok": True,
        },
        {"id": 4, "code": "03", "telephony_type_id": 2, "operator_id": 2, "base_value": "200", "vat_percent": "19"},
        {"id": 5, "code": "", "telephony_type_id": 12, "operator_id": 1, "base_value": "80", "vat_percent": "19"},
        {"id": 6, "code": "00", "telephony_type_id": 5, "operator_id": 3, "base_value": "1000", "vat_percent": "19"},
        {"id": 7, "code": "1", "telephony_type_id": 11, "operator_id": 1, "base_value": "0", "vat_percent": "19"},
    ],
    "indicators": [
        {"id": BOGOTA, "telephony_type_id": 4, "origin_country_id": COUNTRY, "city_name": "Bogota", "department_country": "Cundinamarca"},
        {"id": SOACHA, "telephony_type_id": 4, "origin_country_id": COUNTRY, "city_name": "Soacha", "department_country": "Cundinamarca"},
        {"id": MEDELLIN, "telephony_type_id": 4, "origin_country_id": COUNTRY, "city_name": "Medellin", "department_country": "Antioquia"},
        {"id": 14, "telephony_type_id": 4, "origin_country_id": COUNTRY, "city_name": "Envigado", "department_country": "Antioquia"},
        {"id": 15, "telephony_type_id": 4, "origin_country_id": COUNTRY, "city_name": "National", "operator_id": 3},
        {"id": 20, "telephony_type_id": 2, "origin_country_id": COUNTRY, "city_name": "MobileCo", "operator_id": 2},
        {"id": 30, "telephony_type_id": 5, "origin_country_id": 0, "city_name": "United States"},
        {"id": 31, "telephony_type_id": 5, "origin_country_id": 0, "city_name": "Rest of world"},
    ],
    "series": [
        {"id": 1, "indicator_id": BOGOTA, "ndc": 1, "initial_number": 2000000, "final_number": 2999999},
        {"id": 2, "indicator_id": SOACHA, "ndc": 1, "initial_number": 7000000, "final_number": 7999999},
        {"id": 3, "indicator_id": MEDELLIN, "ndc": 4, "initial_number": 2000000, "final_number": 4999999},
        {"id": 4, "indicator_id": 14, "ndc": 45, "initial_number": 100000, "final_number": 199999},
        {"id": 5, "indicator_id": 15, "ndc": -1, "initial_number": 0, "final_number": 9},
        {"id": 6, "indicator_id": 20, "ndc": 12, "initial_number": 0, "final_number": 999999},
        {"id": 7, "indicator_id": 30, "ndc": 1, "initial_number": 2000000000, "final_number": 9999999999},
        {"id": 8, "indicator_id": 31, "ndc": -1, "initial_number": 0, "final_number": 9},
    ],
    "bands": [
        {"id": 1, "prefix_id": 3, "name": "Antioquia", "value": "90", "indicator_ids": [MEDELLIN]},
        {
            "id": 2,
            "prefix_id": 3,
            "name": "Antioquia from Bogota",
            "value": "70",
            "origin_indicator_id": BOGOTA,
            "indicator_ids": [MEDELLIN],
        },
    ],
    "special_rate_values": [
        {
            "id": 1,
            "name": "National night",
            "rate_value": "60",
            "telephony_type_id": 4,
            "monday_enabled": True,
            "tuesday_enabled": True,
            "wednesday_enabled": True,
            "thursday_enabled": True,
            "friday_enabled": True,
            "hours_specification": "22-6",
        },
        {
            "id": 2,
            "name": "Local sundays and holidays",
            "rate_value": "50",
            "value_type": 1,
            "telephony_type_id": 3,
            "sunday_enabled": True,
            "holiday_enabled": True,
        },
        {
            "id": 3,
            "name": "National night from Bogota",
            "rate_value": "40",
            "telephony_type_id": 4,
            "origin_indicator_id": BOGOTA,
            "monday_enabled": True,
            "tuesday_enabled": True,
            "wednesday_enabled": True,
            "thursday_enabled": True,
            "friday_enabled": True,
            "hours_specification": "22-6",
        },
    ],
    "trunks": [
        {"id": 1, "name": "trk-ld", "operator_id": 3},
        {"id": 2, "name": "TRK-LOC", "operator_id": 1},
        {"id": 3, "name": "TRK-RAW", "operator_id": 3, "no_pbx_prefix": True},
    ],
    "trunk_rates": [
        {"id": 1, "trunk_id": 1, "operator_id": 3, "telephony_type_id": 4, "rate_value": "55"},
        {"id": 2, "trunk_id": 2, "operator_id": 1, "telephony_type_id": 3, "rate_value": "30", "seconds": 1},
        {"id": 3, "trunk_id": 3, "operator_id": 3, "telephony_type_id": 4, "rate_value": "55"},
    ],
    "trunk_rules": [
        {
            "id": 1,
            "trunk_id": 2,
            "telephony_type_id": 12,
            "indicator_ids": [SOACHA],
            "rate_value": "45",
            "new_telephony_type_id": 4,
            "new_operator_id": 3,
        },
        {"id": 2, "trunk_id": 0, "telephony_type_id": 12, "rate_value": "99"},
    ],
    "special_services": [
        {"id": 1, "phone_number": "123", "origin_country_id": COUNTRY, "value": "500", "vat_percent": "19", "description": "Emergency line"},
        {
            "id": 2,
            "phone_number": "123",
            "origin_country_id": COUNTRY,
            "indicator_id": BOGOTA,
            "value": "0",
            "vat_percent": "19",
            "description": "Emergency line (Bogota)",
        },
    ],
    "holidays": [{"origin_country_id": COUNTRY, "day": "2026-12-25"}],
}


def document_data() -> dict[str, Any]:
    """A fresh, mutable copy of the reference document used across tests."""

    return copy.deepcopy(_DOCUMENT)


def make_call(
    number: str,
    *,
    duration: int = 90,
    origin: int = BOGOTA,
    at: datetime = WEEKDAY_NOON,
    trunk: str | None = None,
) -> CallRecord:
    return CallRecord(
        dialed_number=number,
        origin_country_id=COUNTRY,
        origin_indicator_id=origin,
        called_at=at,
        duration_seconds=duration,
        trunk_name=trunk,
    )


@pytest.fixture()
def document() -> ReferenceDocument:
    return ReferenceDocument.model_validate(document_data())


@pytest.fixture()
def store(document: ReferenceDocument) -> Iterator[SQLiteReferenceStore]:
    s = SQLiteReferenceStore.from_document(document)
    yield s
    s.close()


@pytest.fixture()
def settings() -> CalltariffSettings:
    return CalltariffSettings(pbx_exit_prefixes=["9"])


@pytest.fixture()
def engine(store: SQLiteReferenceStore, settings: CalltariffSettings) -> RatingEngine:
    return RatingEngine(store, settings)
