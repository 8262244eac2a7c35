# file: calltariff/reference/store.py
"""
Read-only reference data store.

`ReferenceStore` is the contract the rating engine depends on; every query the
engine makes is one method here. `SQLiteReferenceStore` implements it on top
of SQLite, either a database file produced by `calltariff load-data` or an
in-memory database populated from a reference document.

The store never raises for "not found": lookups return `None` or an empty list.
Store faults (unreachable database, missing schema, malformed rows) raise
`ReferenceDataError`.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from abc import ABC, abstractmethod
from datetime import date
from decimal import Decimal
from pathlib import Path
from typing import Any, Iterable, Sequence, TypeVar

from pydantic import BaseModel, ValidationError

from calltariff.reference.models import (
    WILDCARD_NDC,
    Band,
    Holiday,
    Indicator,
    Operator,
    OriginCountry,
    Prefix,
    ReferenceDocument,
    Series,
    SpecialRateValue,
    SpecialService,
    TelephonyType,
    TelephonyTypeConfig,
    Trunk,
    TrunkRate,
    TrunkRule,
)

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)


class ReferenceDataError(RuntimeError):
    """Raised when reference data cannot be read or a stored record is malformed."""


def pick_special_service(
    services: Iterable[SpecialService], phone_number: str, indicator_id: int
) -> SpecialService | None:
    """
    The record for `phone_number` as dialed from `indicator_id`.

    A record scoped to the caller's indicator beats a country-wide one (indicator
    0); the lowest id breaks ties.
    """

    matches = [
        s
        for s in services
        if s.phone_number == phone_number and s.indicator_id in (0, indicator_id)
    ]
    if not matches:
        return None
    return min(matches, key=lambda s: (-s.indicator_id, s.id))


class ReferenceStore(ABC):
    """Queries the rating engine runs against reference data."""

    @abstractmethod
    def origin_country(self, origin_country_id: int) -> OriginCountry | None: ...

    @abstractmethod
    def origin_country_by_code(self, code: str) -> OriginCountry | None: ...

    @abstractmethod
    def prefixes(self, origin_country_id: int) -> list[Prefix]:
        """
        Active prefixes of active operators and telephony types in a country.

        Ordered by code length (longest first), then by the telephony type's
        minimum dialed length (largest first), then telephony type id.
        """

    @abstractmethod
    def telephony_type(self, telephony_type_id: int) -> TelephonyType | None: ...

    @abstractmethod
    def telephony_type_config(
        self, telephony_type_id: int, origin_country_id: int
    ) -> TelephonyTypeConfig | None: ...

    @abstractmethod
    def operator(self, operator_id: int) -> Operator | None: ...

    @abstractmethod
    def indicator(self, indicator_id: int) -> Indicator | None: ...

    @abstractmethod
    def ndc_length_range(
        self, telephony_type_id: int, origin_country_id: int | None
    ) -> tuple[int, int]:
        """
        (min, max) digit length of the positive NDCs known for a telephony type.

        `origin_country_id=None` searches every country (international and
        satellite destinations). Returns (0, 0) when there are none.
        """

    @abstractmethod
    def series(
        self, telephony_type_id: int, ndc: int, origin_country_id: int | None
    ) -> list[tuple[Series, Indicator]]: ...

    @abstractmethod
    def indicator_ndcs(self, indicator_id: int) -> list[int]:
        """Non-wildcard NDCs of an indicator's series, most frequent first."""

    @abstractmethod
    def bands(self, prefix_id: int) -> list[Band]: ...

    @abstractmethod
    def special_rate_values(self, telephony_type_id: int) -> list[SpecialRateValue]:
        """Active special rates scoped to `telephony_type_id` or to any type."""

    @abstractmethod
    def holidays(self, origin_country_id: int) -> frozenset[date]: ...

    @abstractmethod
    def trunk(self, name: str) -> Trunk | None: ...

    @abstractmethod
    def trunk_rates(self, trunk_id: int) -> list[TrunkRate]: ...

    @abstractmethod
    def trunk_rules(self, trunk_id: int, telephony_type_id: int) -> list[TrunkRule]:
        """Active rules for `trunk_id` or for every trunk, on one telephony type."""

    @abstractmethod
    def vat_percent(
        self, telephony_type_id: int, operator_id: int, origin_country_id: int
    ) -> Decimal | None: ...

    @abstractmethod
    def special_services(self, origin_country_id: int) -> list[SpecialService]:
        """Active special-service numbers of a country."""

    @abstractmethod
    def special_service(
        self, phone_number: str, origin_country_id: int, indicator_id: int
    ) -> SpecialService | None: ...


_SCHEMA = """
CREATE TABLE IF NOT EXISTS origin_country (
    id INTEGER PRIMARY KEY, code TEXT NOT NULL, name TEXT NOT NULL DEFAULT ''
);
CREATE TABLE IF NOT EXISTS telephony_type (
    id INTEGER PRIMARY KEY, name TEXT NOT NULL, active INTEGER NOT NULL DEFAULT 1
);
CREATE TABLE IF NOT EXISTS telephony_type_config (
    telephony_type_id INTEGER NOT NULL, origin_country_id INTEGER NOT NULL,
    min_digits INTEGER NOT NULL DEFAULT 0, max_digits INTEGER NOT NULL DEFAULT 99,
    PRIMARY KEY (telephony_type_id, origin_country_id)
);
CREATE TABLE IF NOT EXISTS operator (
    id INTEGER PRIMARY KEY, name TEXT NOT NULL, origin_country_id INTEGER NOT NULL,
    active INTEGER NOT NULL DEFAULT 1
);
CREATE TABLE IF NOT EXISTS prefix (
    id INTEGER PRIMARY KEY, code TEXT NOT NULL DEFAULT '', telephony_type_id INTEGER NOT NULL,
    operator_id INTEGER NOT NULL, base_value TEXT NOT NULL DEFAULT '0',
    vat_included INTEGER NOT NULL DEFAULT 0, vat_percent TEXT NOT NULL DEFAULT '0',
    band_ok INTEGER NOT NULL DEFAULT 0, active INTEGER NOT NULL DEFAULT 1
);
CREATE TABLE IF NOT EXISTS indicator (
    id INTEGER PRIMARY KEY, telephony_type_id INTEGER NOT NULL,
    origin_country_id INTEGER NOT NULL DEFAULT 0, department_country TEXT NOT NULL DEFAULT '',
    city_name TEXT NOT NULL DEFAULT '', operator_id INTEGER NOT NULL DEFAULT 0,
    active INTEGER NOT NULL DEFAULT 1
);
CREATE TABLE IF NOT EXISTS series (
    id INTEGER PRIMARY KEY, indicator_id INTEGER NOT NULL, ndc INTEGER NOT NULL,
    initial_number INTEGER NOT NULL, final_number INTEGER NOT NULL,
    active INTEGER NOT NULL DEFAULT 1
);
CREATE INDEX IF NOT EXISTS idx_series_ndc ON series(ndc);
CREATE TABLE IF NOT EXISTS band (
    id INTEGER PRIMARY KEY, prefix_id INTEGER NOT NULL, name TEXT NOT NULL DEFAULT '',
    value TEXT NOT NULL DEFAULT '0', vat_included INTEGER NOT NULL DEFAULT 0,
    origin_indicator_id INTEGER NOT NULL DEFAULT 0, active INTEGER NOT NULL DEFAULT 1
);
CREATE TABLE IF NOT EXISTS band_indicator (
    band_id INTEGER NOT NULL, indicator_id INTEGER NOT NULL,
    PRIMARY KEY (band_id, indicator_id)
);
CREATE TABLE IF NOT EXISTS special_rate_value (
    id INTEGER PRIMARY KEY, name TEXT NOT NULL DEFAULT '', rate_value TEXT NOT NULL DEFAULT '0',
    includes_vat INTEGER NOT NULL DEFAULT 0, value_type INTEGER NOT NULL DEFAULT 0,
    sunday_enabled INTEGER NOT NULL DEFAULT 0, monday_enabled INTEGER NOT NULL DEFAULT 0,
    tuesday_enabled INTEGER NOT NULL DEFAULT 0, wednesday_enabled INTEGER NOT NULL DEFAULT 0,
    thursday_enabled INTEGER NOT NULL DEFAULT 0, friday_enabled INTEGER NOT NULL DEFAULT 0,
    saturday_enabled INTEGER NOT NULL DEFAULT 0, holiday_enabled INTEGER NOT NULL DEFAULT 0,
    valid_from TEXT, valid_to TEXT,
    telephony_type_id INTEGER NOT NULL DEFAULT 0, operator_id INTEGER NOT NULL DEFAULT 0,
    band_id INTEGER NOT NULL DEFAULT 0, origin_indicator_id INTEGER NOT NULL DEFAULT 0,
    hours_specification TEXT, active INTEGER NOT NULL DEFAULT 1
);
CREATE TABLE IF NOT EXISTS trunk (
    id INTEGER PRIMARY KEY, name TEXT NOT NULL, description TEXT NOT NULL DEFAULT '',
    operator_id INTEGER NOT NULL DEFAULT 0, no_pbx_prefix INTEGER NOT NULL DEFAULT 0,
    active INTEGER NOT NULL DEFAULT 1
);
CREATE TABLE IF NOT EXISTS trunk_rate (
    id INTEGER PRIMARY KEY, trunk_id INTEGER NOT NULL, operator_id INTEGER NOT NULL,
    telephony_type_id INTEGER NOT NULL, rate_value TEXT NOT NULL DEFAULT '0',
    includes_vat INTEGER NOT NULL DEFAULT 0, seconds INTEGER NOT NULL DEFAULT 0,
    active INTEGER NOT NULL DEFAULT 1
);
CREATE TABLE IF NOT EXISTS trunk_rule (
    id INTEGER PRIMARY KEY, trunk_id INTEGER NOT NULL DEFAULT 0,
    telephony_type_id INTEGER NOT NULL, origin_indicator_id INTEGER NOT NULL DEFAULT 0,
    rate_value TEXT NOT NULL DEFAULT '0', includes_vat INTEGER NOT NULL DEFAULT 0,
    seconds INTEGER NOT NULL DEFAULT 0, new_telephony_type_id INTEGER NOT NULL DEFAULT 0,
    new_operator_id INTEGER NOT NULL DEFAULT 0, active INTEGER NOT NULL DEFAULT 1
);
CREATE TABLE IF NOT EXISTS trunk_rule_indicator (
    trunk_rule_id INTEGER NOT NULL, indicator_id INTEGER NOT NULL,
    PRIMARY KEY (trunk_rule_id, indicator_id)
);
CREATE TABLE IF NOT EXISTS special_service (
    id INTEGER PRIMARY KEY, phone_number TEXT NOT NULL, origin_country_id INTEGER NOT NULL,
    indicator_id INTEGER NOT NULL DEFAULT 0, value TEXT NOT NULL DEFAULT '0',
    vat_percent TEXT NOT NULL DEFAULT '0', vat_included INTEGER NOT NULL DEFAULT 0,
    description TEXT NOT NULL DEFAULT '', active INTEGER NOT NULL DEFAULT 1
);
CREATE TABLE IF NOT EXISTS holiday (
    origin_country_id INTEGER NOT NULL, day TEXT NOT NULL,
    PRIMARY KEY (origin_country_id, day)
);
"""

_INTERNATIONAL_SCOPE = "(:country IS NULL OR i.origin_country_id = :country OR i.origin_country_id = 0)"


class SQLiteReferenceStore(ReferenceStore):
    """
    `ReferenceStore` backed by a single SQLite connection.

    The connection is shared across worker threads; every query runs under a
    lock, which keeps concurrent rating safe without per-call connections.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        conn.row_factory = sqlite3.Row
        self._conn = conn
        self._lock = threading.RLock()

    @classmethod
    def open(cls, path: Path) -> "SQLiteReferenceStore":
        """Open an existing database file read-only."""

        if not path.exists():
            raise ReferenceDataError(f"Reference database not found: {path}")
        try:
            conn = sqlite3.connect(
                f"{path.resolve().as_uri()}?mode=ro", uri=True, check_same_thread=False
            )
        except sqlite3.Error as exc:
            raise ReferenceDataError(f"Cannot open reference database {path}: {exc}") from exc
        return cls(conn)

    @classmethod
    def from_document(
        cls, document: ReferenceDocument, *, path: Path | None = None
    ) -> "SQLiteReferenceStore":
        """
        Build a store from a validated document.

        With `path=None` the database lives in memory for the life of the store.
        """

        target = ":memory:"
        if path is not None:
            path.parent.mkdir(parents=True, exist_ok=True)
            if path.exists():
                path.unlink()
            target = str(path)
        conn = sqlite3.connect(target, check_same_thread=False)
        store = cls(conn)
        store._populate(document)
        return store

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    # -- population -----------------------------------------------------

    def _insert(self, table: str, rows: Sequence[BaseModel], *, exclude: set[str] | None = None) -> None:
        if not rows:
            return
        dumped = [r.model_dump(mode="json", exclude=exclude) for r in rows]
        columns = list(dumped[0].keys())
        sql = (
            f"INSERT INTO {table} ({', '.join(columns)}) "
            f"VALUES ({', '.join('?' for _ in columns)})"
        )
        self._conn.executemany(sql, [tuple(d[c] for c in columns) for d in dumped])

    def _populate(self, doc: ReferenceDocument) -> None:
        with self._lock:
            try:
                with self._conn:
                    self._conn.executescript(_SCHEMA)
                    self._insert("origin_country", doc.origin_countries)
                    self._insert("telephony_type", doc.telephony_types)
                    self._insert("telephony_type_config", doc.telephony_type_configs)
                    self._insert("operator", doc.operators)
                    self._insert("prefix", doc.prefixes)
                    self._insert("indicator", doc.indicators)
                    self._insert("series", doc.series)
                    self._insert("band", doc.bands, exclude={"indicator_ids"})
                    self._conn.executemany(
                        "INSERT INTO band_indicator (band_id, indicator_id) VALUES (?, ?)",
                        [(b.id, i) for b in doc.bands for i in b.indicator_ids],
                    )
                    self._insert("special_rate_value", doc.special_rate_values)
                    self._insert("trunk", doc.trunks)
                    self._insert("trunk_rate", doc.trunk_rates)
                    self._insert("trunk_rule", doc.trunk_rules, exclude={"indicator_ids"})
                    self._conn.executemany(
                        "INSERT INTO trunk_rule_indicator (trunk_rule_id, indicator_id) VALUES (?, ?)",
                        [(r.id, i) for r in doc.trunk_rules for i in r.indicator_ids],
                    )
                    self._insert("special_service", doc.special_services)
                    self._insert("holiday", doc.holidays)
            except sqlite3.Error as exc:
                raise ReferenceDataError(f"Cannot load reference data: {exc}") from exc
        logger.debug(
            "Reference store populated: %d prefixes, %d indicators, %d series",
            len(doc.prefixes),
            len(doc.indicators),
            len(doc.series),
        )

    # -- query helpers --------------------------------------------------

    def _fetch(self, sql: str, params: dict[str, Any] | Sequence[Any] = ()) -> list[sqlite3.Row]:
        with self._lock:
            try:
                return self._conn.execute(sql, params).fetchall()
            except sqlite3.Error as exc:
                raise ReferenceDataError(f"Reference query failed: {exc}") from exc

    @staticmethod
    def _model(model: type[M], row: sqlite3.Row | dict[str, Any], **extra: Any) -> M:
        data = dict(row)
        data.update(extra)
        try:
            return model.model_validate(data)
        except ValidationError as exc:
            raise ReferenceDataError(f"Malformed {model.__name__} record: {exc}") from exc

    def _one(self, model: type[M], sql: str, params: dict[str, Any] | Sequence[Any]) -> M | None:
        rows = self._fetch(sql, params)
        return self._model(model, rows[0]) if rows else None

    def _linked_ids(self, table: str, key: str, ids: Iterable[int]) -> dict[int, tuple[int, ...]]:
        id_list = list(ids)
        if not id_list:
            return {}
        marks = ", ".join("?" for _ in id_list)
        rows = self._fetch(
            f"SELECT {key} AS owner, indicator_id FROM {table} WHERE {key} IN ({marks}) "
            "ORDER BY indicator_id",
            id_list,
        )
        out: dict[int, list[int]] = {}
        for r in rows:
            out.setdefault(int(r["owner"]), []).append(int(r["indicator_id"]))
        return {k: tuple(v) for k, v in out.items()}

    # -- ReferenceStore -------------------------------------------------

    def origin_country(self, origin_country_id: int) -> OriginCountry | None:
        return self._one(
            OriginCountry, "SELECT * FROM origin_country WHERE id = ?", (origin_country_id,)
        )

    def origin_country_by_code(self, code: str) -> OriginCountry | None:
        return self._one(
            OriginCountry, "SELECT * FROM origin_country WHERE code = ? ORDER BY id", (code,)
        )

    def prefixes(self, origin_country_id: int) -> list[Prefix]:
        rows = self._fetch(
            """
            SELECT p.* FROM prefix p
            JOIN operator o ON o.id = p.operator_id
            JOIN telephony_type tt ON tt.id = p.telephony_type_id
            LEFT JOIN telephony_type_config ttc
                ON ttc.telephony_type_id = p.telephony_type_id
                AND ttc.origin_country_id = :country
            WHERE p.active = 1 AND o.active = 1 AND tt.active = 1
                AND o.origin_country_id = :country
            ORDER BY LENGTH(p.code) DESC, COALESCE(ttc.min_digits, 0) DESC,
                p.telephony_type_id, p.id
            """,
            {"country": origin_country_id},
        )
        return [self._model(Prefix, r) for r in rows]

    def telephony_type(self, telephony_type_id: int) -> TelephonyType | None:
        return self._one(
            TelephonyType, "SELECT * FROM telephony_type WHERE id = ?", (telephony_type_id,)
        )

    def telephony_type_config(
        self, telephony_type_id: int, origin_country_id: int
    ) -> TelephonyTypeConfig | None:
        return self._one(
            TelephonyTypeConfig,
            "SELECT * FROM telephony_type_config "
            "WHERE telephony_type_id = ? AND origin_country_id = ?",
            (telephony_type_id, origin_country_id),
        )

    def operator(self, operator_id: int) -> Operator | None:
        return self._one(Operator, "SELECT * FROM operator WHERE id = ?", (operator_id,))

    def indicator(self, indicator_id: int) -> Indicator | None:
        return self._one(Indicator, "SELECT * FROM indicator WHERE id = ?", (indicator_id,))

    def ndc_length_range(
        self, telephony_type_id: int, origin_country_id: int | None
    ) -> tuple[int, int]:
        rows = self._fetch(
            f"""
            SELECT MIN(LENGTH(CAST(s.ndc AS TEXT))) AS lo, MAX(LENGTH(CAST(s.ndc AS TEXT))) AS hi
            FROM series s JOIN indicator i ON i.id = s.indicator_id
            WHERE s.active = 1 AND i.active = 1 AND s.ndc > 0
                AND i.telephony_type_id = :tt AND {_INTERNATIONAL_SCOPE}
            """,
            {"tt": telephony_type_id, "country": origin_country_id},
        )
        if not rows or rows[0]["lo"] is None:
            return (0, 0)
        return (int(rows[0]["lo"]), int(rows[0]["hi"]))

    def series(
        self, telephony_type_id: int, ndc: int, origin_country_id: int | None
    ) -> list[tuple[Series, Indicator]]:
        rows = self._fetch(
            f"""
            SELECT s.id AS s_id, s.indicator_id AS s_indicator_id, s.ndc AS s_ndc,
                s.initial_number AS s_initial, s.final_number AS s_final, i.*
            FROM series s JOIN indicator i ON i.id = s.indicator_id
            WHERE s.active = 1 AND i.active = 1 AND s.ndc = :ndc
                AND i.telephony_type_id = :tt AND {_INTERNATIONAL_SCOPE}
            ORDER BY s.initial_number, s.final_number, s.id
            """,
            {"tt": telephony_type_id, "ndc": ndc, "country": origin_country_id},
        )
        out: list[tuple[Series, Indicator]] = []
        for r in rows:
            series = self._model(
                Series,
                {
                    "id": r["s_id"],
                    "indicator_id": r["s_indicator_id"],
                    "ndc": r["s_ndc"],
                    "initial_number": r["s_initial"],
                    "final_number": r["s_final"],
                },
            )
            indicator = self._model(
                Indicator, {k: r[k] for k in r.keys() if not k.startswith("s_")}
            )
            out.append((series, indicator))
        return out

    def indicator_ndcs(self, indicator_id: int) -> list[int]:
        rows = self._fetch(
            "SELECT ndc FROM series WHERE indicator_id = ? AND active = 1 AND ndc != ? "
            "GROUP BY ndc ORDER BY COUNT(*) DESC, ndc ASC",
            (indicator_id, WILDCARD_NDC),
        )
        return [int(r["ndc"]) for r in rows]

    def bands(self, prefix_id: int) -> list[Band]:
        rows = self._fetch(
            "SELECT * FROM band WHERE prefix_id = ? AND active = 1 ORDER BY id", (prefix_id,)
        )
        links = self._linked_ids("band_indicator", "band_id", (int(r["id"]) for r in rows))
        return [self._model(Band, r, indicator_ids=links.get(int(r["id"]), ())) for r in rows]

    def special_rate_values(self, telephony_type_id: int) -> list[SpecialRateValue]:
        rows = self._fetch(
            "SELECT * FROM special_rate_value WHERE active = 1 "
            "AND (telephony_type_id = 0 OR telephony_type_id = ?) ORDER BY id",
            (telephony_type_id,),
        )
        return [self._model(SpecialRateValue, r) for r in rows]

    def holidays(self, origin_country_id: int) -> frozenset[date]:
        rows = self._fetch(
            "SELECT * FROM holiday WHERE origin_country_id = ?", (origin_country_id,)
        )
        return frozenset(self._model(Holiday, r).day for r in rows)

    def trunk(self, name: str) -> Trunk | None:
        return self._one(
            Trunk,
            "SELECT * FROM trunk WHERE UPPER(name) = ? AND active = 1 ORDER BY id DESC",
            (name.strip().upper(),),
        )

    def trunk_rates(self, trunk_id: int) -> list[TrunkRate]:
        rows = self._fetch(
            "SELECT * FROM trunk_rate WHERE trunk_id = ? AND active = 1 ORDER BY id",
            (trunk_id,),
        )
        return [self._model(TrunkRate, r) for r in rows]

    def trunk_rules(self, trunk_id: int, telephony_type_id: int) -> list[TrunkRule]:
        rows = self._fetch(
            "SELECT * FROM trunk_rule WHERE active = 1 AND (trunk_id = 0 OR trunk_id = ?) "
            "AND telephony_type_id = ? ORDER BY id",
            (trunk_id, telephony_type_id),
        )
        links = self._linked_ids(
            "trunk_rule_indicator", "trunk_rule_id", (int(r["id"]) for r in rows)
        )
        return [
            self._model(TrunkRule, r, indicator_ids=links.get(int(r["id"]), ())) for r in rows
        ]

    def vat_percent(
        self, telephony_type_id: int, operator_id: int, origin_country_id: int
    ) -> Decimal | None:
        rows = self._fetch(
            """
            SELECT p.vat_percent FROM prefix p JOIN operator o ON o.id = p.operator_id
            WHERE p.active = 1 AND o.active = 1 AND p.telephony_type_id = ?
                AND p.operator_id = ? AND o.origin_country_id = ?
            ORDER BY p.id LIMIT 1
            """,
            (telephony_type_id, operator_id, origin_country_id),
        )
        return Decimal(str(rows[0]["vat_percent"])) if rows else None

    def special_services(self, origin_country_id: int) -> list[SpecialService]:
        rows = self._fetch(
            "SELECT * FROM special_service WHERE active = 1 AND origin_country_id = ? "
            "ORDER BY phone_number, indicator_id DESC, id",
            (origin_country_id,),
        )
        return [self._model(SpecialService, r) for r in rows]

    def special_service(
        self, phone_number: str, origin_country_id: int, indicator_id: int
    ) -> SpecialService | None:
        return self._one(
            SpecialService,
            "SELECT * FROM special_service WHERE active = 1 AND phone_number = ? "
            "AND origin_country_id = ? AND (indicator_id = 0 OR indicator_id = ?) "
            "ORDER BY indicator_id DESC, id LIMIT 1",
            (phone_number, origin_country_id, indicator_id),
        )
