# file: calltariff/reference/models.py
"""
Reference data records.

Records are immutable pydantic models. They are validated when a reference
document is loaded and when rows are read back from the SQLite store, so the
rating engine only ever sees well-formed values.

Id conventions follow the billing database: an id of 0 on a scope column
means "any".
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from enum import IntEnum

from pydantic import BaseModel, Field, field_validator
from pydantic import ConfigDict as PydanticConfigDict

from calltariff.core.hours import parse_hours_specification

WILDCARD_NDC = -1


class _Record(BaseModel):
    model_config = PydanticConfigDict(frozen=True, extra="ignore")


class OriginCountry(_Record):
    id: int
    code: str
    name: str = ""


class TelephonyType(_Record):
    id: int
    name: str
    active: bool = True


class TelephonyTypeConfig(_Record):
    telephony_type_id: int
    origin_country_id: int
    min_digits: int = 0
    max_digits: int = 99


class Operator(_Record):
    id: int
    name: str
    origin_country_id: int
    active: bool = True


class Prefix(_Record):
    id: int
    code: str = ""
    telephony_type_id: int
    operator_id: int
    base_value: Decimal = Decimal("0")
    vat_included: bool = False
    vat_percent: Decimal = Decimal("0")
    band_ok: bool = False
    active: bool = True

    @field_validator("code", mode="before")
    @classmethod
    def _code_as_text(cls, v: object) -> str:
        return "" if v is None else str(v).strip()


class Indicator(_Record):
    id: int
    telephony_type_id: int
    origin_country_id: int = 0
    department_country: str = ""
    city_name: str = ""
    operator_id: int = 0
    active: bool = True

    @property
    def description(self) -> str:
        parts = [p for p in (self.city_name, self.department_country) if p]
        return ", ".join(parts)


class Series(_Record):
    id: int
    indicator_id: int
    ndc: int
    initial_number: int
    final_number: int
    active: bool = True


class Band(_Record):
    id: int
    prefix_id: int
    name: str = ""
    value: Decimal = Decimal("0")
    vat_included: bool = False
    origin_indicator_id: int = 0
    indicator_ids: tuple[int, ...] = ()
    active: bool = True

    def reaches(self, indicator_id: int) -> bool:
        """A band with no linked destinations applies to every destination."""

        return not self.indicator_ids or indicator_id in self.indicator_ids


class SpecialRateValueType(IntEnum):
    FIXED = 0
    PERCENTAGE = 1


class SpecialRateValue(_Record):
    id: int
    name: str = ""
    rate_value: Decimal = Decimal("0")
    includes_vat: bool = False
    value_type: SpecialRateValueType = SpecialRateValueType.FIXED
    sunday_enabled: bool = False
    monday_enabled: bool = False
    tuesday_enabled: bool = False
    wednesday_enabled: bool = False
    thursday_enabled: bool = False
    friday_enabled: bool = False
    saturday_enabled: bool = False
    holiday_enabled: bool = False
    valid_from: datetime | None = None
    valid_to: datetime | None = None
    telephony_type_id: int = 0
    operator_id: int = 0
    band_id: int = 0
    origin_indicator_id: int = 0
    hours_specification: str | None = None
    active: bool = True

    @field_validator("hours_specification")
    @classmethod
    def _hours_parse(cls, v: str | None) -> str | None:
        if v is not None and v.strip():
            # Raises InvalidHoursSpecification (a ValueError) for malformed input.
            parse_hours_specification(v)
        return v

    def enabled_on(self, weekday: int) -> bool:
        """`weekday` follows `datetime.weekday()` (Monday == 0)."""

        flags = (
            self.monday_enabled,
            self.tuesday_enabled,
            self.wednesday_enabled,
            self.thursday_enabled,
            self.friday_enabled,
            self.saturday_enabled,
            self.sunday_enabled,
        )
        return flags[weekday]


class Trunk(_Record):
    id: int
    name: str
    description: str = ""
    operator_id: int = 0
    no_pbx_prefix: bool = False
    active: bool = True

    @field_validator("name")
    @classmethod
    def _name_upper(cls, v: str) -> str:
        return v.strip().upper()


class TrunkRate(_Record):
    id: int
    trunk_id: int
    operator_id: int
    telephony_type_id: int
    rate_value: Decimal = Decimal("0")
    includes_vat: bool = False
    seconds: int = 0
    active: bool = True

    @property
    def bill_per_second(self) -> bool:
        return self.seconds > 0


class TrunkRule(_Record):
    id: int
    trunk_id: int = 0
    telephony_type_id: int
    indicator_ids: tuple[int, ...] = ()
    origin_indicator_id: int = 0
    rate_value: Decimal = Decimal("0")
    includes_vat: bool = False
    seconds: int = 0
    new_telephony_type_id: int = 0
    new_operator_id: int = 0
    active: bool = True

    @property
    def bill_per_second(self) -> bool:
        return self.seconds > 0


class SpecialService(_Record):
    id: int
    phone_number: str
    origin_country_id: int
    indicator_id: int = 0
    value: Decimal = Decimal("0")
    vat_percent: Decimal = Decimal("0")
    vat_included: bool = False
    description: str = ""
    active: bool = True


class Holiday(_Record):
    origin_country_id: int
    day: date


class ReferenceDocument(BaseModel):
    """Whole reference-data document, as loaded from YAML or JSON."""

    model_config = PydanticConfigDict(extra="forbid")

    origin_countries: list[OriginCountry] = Field(default_factory=list)
    telephony_types: list[TelephonyType] = Field(default_factory=list)
    telephony_type_configs: list[TelephonyTypeConfig] = Field(default_factory=list)
    operators: list[Operator] = Field(default_factory=list)
    prefixes: list[Prefix] = Field(default_factory=list)
    indicators: list[Indicator] = Field(default_factory=list)
    series: list[Series] = Field(default_factory=list)
    bands: list[Band] = Field(default_factory=list)
    special_rate_values: list[SpecialRateValue] = Field(default_factory=list)
    trunks: list[Trunk] = Field(default_factory=list)
    trunk_rates: list[TrunkRate] = Field(default_factory=list)
    trunk_rules: list[TrunkRule] = Field(default_factory=list)
    special_services: list[SpecialService] = Field(default_factory=list)
    holidays: list[Holiday] = Field(default_factory=list)
