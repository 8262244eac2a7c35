# file: calltariff/io/report.py
"""
Call-record input and rating result export.

Call records come in as CSV with one call per row. Results are exported as
JSON (one document with metadata and a list of rows) or as a flat CSV, one row
per call.
"""

from __future__ import annotations

import csv
import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable, Iterator, Mapping

from calltariff import __version__
from calltariff.rating.engine import BatchOutcome
from calltariff.rating.results import CallRecord

CALL_FIELDS = [
    "dialed_number",
    "origin_country_id",
    "origin_indicator_id",
    "called_at",
    "duration_seconds",
    "trunk_name",
]

RESULT_FIELDS = [
    "row_index",
    "status",
    "dialed_number",
    "telephony_type_id",
    "telephony_type",
    "operator_id",
    "operator",
    "indicator_id",
    "destination",
    "rate_per_unit",
    "vat_percent",
    "bill_per_second",
    "initial_price",
    "billing_units",
    "billed_amount",
    "band_used",
    "special_rate_applied",
    "trunk_rate_applied",
    "trunk_rule_applied",
    "assumed",
    "circuit_normalized",
    "reason",
    "error",
]


def utc_now_iso() -> str:
    return datetime.now(tz=timezone.utc).isoformat()


def _safe_str(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, (str, int, float, bool)):
        return str(value)
    return json.dumps(value, ensure_ascii=True)


def _call_from_row(row: Mapping[str, str | None], line: int) -> CallRecord:
    try:
        return CallRecord(
            dialed_number=(row.get("dialed_number") or "").strip(),
            origin_country_id=int(row.get("origin_country_id") or 0),
            origin_indicator_id=int(row.get("origin_indicator_id") or 0),
            called_at=datetime.fromisoformat((row.get("called_at") or "").strip()),
            duration_seconds=int(row.get("duration_seconds") or 0),
            trunk_name=(row.get("trunk_name") or "").strip() or None,
        )
    except ValueError as exc:
        raise ValueError(f"Invalid call record on line {line}: {exc}") from exc


def iter_calls_csv(path: Path) -> Iterator[CallRecord]:
    """
    Stream call records from a CSV file with a header row.

    Required columns: dialed_number, origin_country_id, origin_indicator_id,
    called_at (ISO 8601), duration_seconds. `trunk_name` is optional.

    Raises:
        ValueError: on a missing column or an unparsable value.
    """

    with path.open(newline="", encoding="utf-8") as fh:
        reader = csv.DictReader(fh)
        missing = [c for c in CALL_FIELDS[:-1] if c not in (reader.fieldnames or [])]
        if missing:
            raise ValueError(f"{path}: missing columns {', '.join(missing)}")
        # Line 1 is the header.
        for line, row in enumerate(reader, start=2):
            yield _call_from_row(row, line)


def read_calls_csv(path: Path) -> list[CallRecord]:
    """Read every call record of a CSV file (see `iter_calls_csv`)."""

    return list(iter_calls_csv(path))


def outcome_row(outcome: BatchOutcome) -> dict[str, Any]:
    row: dict[str, Any] = {"row_index": outcome.index}
    if outcome.result is not None:
        row.update(outcome.result.to_dict())
        row["error"] = None
    else:
        row.update({"status": "failed", "dialed_number": outcome.call.dialed_number})
        row["error"] = outcome.error
    return row


def export_json(outcomes: Iterable[BatchOutcome], path: Path) -> None:
    """Write batch results to disk as pretty-printed JSON."""

    rows = [outcome_row(o) for o in outcomes]
    document = {
        "metadata": {
            "tool": "calltariff",
            "version": __version__,
            "generated_at": utc_now_iso(),
            "rows": len(rows),
            "failed": sum(1 for r in rows if r.get("error")),
        },
        "results": rows,
    }
    path.write_text(json.dumps(document, indent=2, sort_keys=True), encoding="utf-8")


def export_csv(outcomes: Iterable[BatchOutcome], path: Path) -> None:
    """Export batch results as CSV, one row per call."""

    with path.open("w", newline="", encoding="utf-8") as fh:
        writer = csv.DictWriter(fh, fieldnames=RESULT_FIELDS, extrasaction="ignore")
        writer.writeheader()
        for outcome in outcomes:
            row = outcome_row(outcome)
            writer.writerow({k: _safe_str(row.get(k)) for k in RESULT_FIELDS})
