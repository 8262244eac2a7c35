# file: calltariff/cli.py
"""
calltariff CLI.

Commands:
  - load-data: validate a reference document and write it to a SQLite database
  - rate: rate a single call
  - batch: rate a CSV file of calls and export the results
"""

from __future__ import annotations

import asyncio
import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any

import click

from calltariff import __version__
from calltariff.config import CalltariffSettings, load_settings
from calltariff.core.numbers import UnknownRegionError, country_code_for_region
from calltariff.io.report import export_csv, export_json, iter_calls_csv
from calltariff.logging_config import configure_logging
from calltariff.rating.engine import RatingEngine
from calltariff.rating.results import CallRecord
from calltariff.reference.loader import build_store, open_store
from calltariff.reference.store import ReferenceDataError, ReferenceStore

logger = logging.getLogger(__name__)


def _settings(config_path: Path | None, no_cache: bool = False) -> CalltariffSettings:
    settings = load_settings(yaml_path=config_path)
    if no_cache:
        settings = settings.model_copy(update={"cache_enabled": False})
    configure_logging(level=settings.log_level, json_logging=settings.json_logging)
    return settings


def _open(
    settings: CalltariffSettings, db_path: Path | None, data_path: Path | None
) -> ReferenceStore:
    if db_path is None and data_path is None:
        db_path = settings.database_path
        data_path = settings.reference_data_path
    try:
        return open_store(database_path=db_path, document_path=data_path)
    except ReferenceDataError as exc:
        raise click.ClickException(str(exc)) from exc


def _resolve_country(store: ReferenceStore, country_id: int | None, region: str | None) -> int:
    if country_id is not None:
        return country_id
    if region is None:
        raise click.UsageError("Give either --country or --region.")
    try:
        code = country_code_for_region(region)
        country = store.origin_country_by_code(code)
        if country is None:
            raise UnknownRegionError(f"No origin country with calling code {code} ({region})")
    except UnknownRegionError as exc:
        raise click.ClickException(str(exc)) from exc
    return country.id


def _human_text(result: dict[str, Any]) -> str:
    lines: list[str] = []
    lines.append(f"Number: {result.get('dialed_number', '')}")
    lines.append(f"Status: {result.get('status', '')}")
    lines.append(
        f"Type: {result.get('telephony_type', '')} ({result.get('telephony_type_id', '')})"
    )
    if result.get("operator"):
        lines.append(f"Operator: {result.get('operator')}")
    if result.get("destination"):
        lines.append(f"Destination: {result.get('destination')}")
    unit = "second" if result.get("bill_per_second") else "minute"
    rate = result.get("rate_per_unit", "")
    lines.append(f"Rate: {rate} per {unit} (VAT {result.get('vat_percent', '')}%)")
    if result.get("initial_price") is not None:
        lines.append(f"Initial price: {result.get('initial_price')}")
    lines.append(f"Units: {result.get('billing_units', 0)}")
    lines.append(f"Billed: {result.get('billed_amount', '')}")

    flags = [
        k
        for k in (
            "band_used",
            "special_rate_applied",
            "trunk_rate_applied",
            "trunk_rule_applied",
            "assumed",
            "circuit_normalized",
        )
        if result.get(k)
    ]
    if flags:
        lines.append(f"Flags: {', '.join(flags)}")
    if result.get("reason"):
        lines.append(f"Reason: {result.get('reason')}")
    return "\n".join(lines) + "\n"


_config_option = click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="YAML config path.",
)
_db_option = click.option(
    "--db",
    "db_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="SQLite reference database (from `load-data`).",
)
_data_option = click.option(
    "--data",
    "data_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="YAML/JSON reference document, loaded into memory.",
)


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(__version__)
def main() -> None:
    """Telephone call rating."""


@main.command("load-data")
@click.argument("document", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option(
    "--db",
    "db_path",
    type=click.Path(dir_okay=False, path_type=Path),
    required=True,
    help="SQLite database to (re)create.",
)
@_config_option
def load_data_cmd(document: Path, db_path: Path, config_path: Path | None) -> None:
    """Validate a reference document and write it to a SQLite database."""

    _settings(config_path)
    try:
        store = build_store(document, database_path=db_path)
    except ReferenceDataError as exc:
        raise click.ClickException(str(exc)) from exc
    store.close()
    click.echo(str(db_path))


@main.command("rate")
@click.argument("number", type=str)
@click.option("--duration", type=int, required=True, help="Call duration in seconds.")
@click.option("--origin-indicator", type=int, required=True, help="Caller's origin indicator id.")
@click.option("--country", "country_id", type=int, default=None, help="Origin country id.")
@click.option(
    "--region", default=None, help="Origin country as ISO alpha-2 region (instead of --country)."
)
@click.option(
    "--at",
    "called_at",
    type=click.DateTime(formats=["%Y-%m-%dT%H:%M:%S", "%Y-%m-%d %H:%M:%S", "%Y-%m-%dT%H:%M"]),
    default=None,
    help="Call start time (default: now).",
)
@click.option("--trunk", default=None, help="Outbound circuit (trunk) name.")
@click.option("--json", "as_json", is_flag=True, help="Print the result as JSON.")
@click.option("--no-cache", is_flag=True, help="Disable the per-run reference cache.")
@_db_option
@_data_option
@_config_option
def rate_cmd(
    number: str,
    duration: int,
    origin_indicator: int,
    country_id: int | None,
    region: str | None,
    called_at: datetime | None,
    trunk: str | None,
    as_json: bool,
    no_cache: bool,
    db_path: Path | None,
    data_path: Path | None,
    config_path: Path | None,
) -> None:
    """Rate a single call."""

    settings = _settings(config_path, no_cache)
    store = _open(settings, db_path, data_path)
    engine = RatingEngine(store, settings)

    try:
        call = CallRecord(
            dialed_number=number,
            origin_country_id=_resolve_country(store, country_id, region),
            origin_indicator_id=origin_indicator,
            called_at=called_at or datetime.now(),
            duration_seconds=duration,
            trunk_name=trunk,
        )
        result = engine.rate(call).to_dict()
    except ReferenceDataError as exc:
        raise click.ClickException(str(exc)) from exc

    if as_json:
        click.echo(json.dumps(result, indent=2, sort_keys=True))
    else:
        click.echo(_human_text(result), nl=False)


@main.command("batch")
@click.argument("calls", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--output", "output_path", type=click.Path(path_type=Path), default=None)
@click.option(
    "--format",
    "fmt",
    type=click.Choice(["json", "csv"], case_sensitive=False),
    default="csv",
    show_default=True,
)
@click.option("--no-cache", is_flag=True, help="Disable the per-run reference cache.")
@_db_option
@_data_option
@_config_option
def batch_cmd(
    calls: Path,
    output_path: Path | None,
    fmt: str,
    no_cache: bool,
    db_path: Path | None,
    data_path: Path | None,
    config_path: Path | None,
) -> None:
    """Rate every call in a CSV file and export the results."""

    settings = _settings(config_path, no_cache)
    store = _open(settings, db_path, data_path)
    engine = RatingEngine(store, settings)

    try:
        outcomes = asyncio.run(engine.rate_batch(iter_calls_csv(calls)))
    except ValueError as exc:
        raise click.ClickException(str(exc)) from exc

    failed = sum(1 for o in outcomes if o.error)
    if failed:
        logger.warning("%d of %d calls failed", failed, len(outcomes))

    fmt = fmt.lower()
    if output_path is None:
        output_path = calls.with_name(f"{calls.stem}.rated.{fmt}")
    if fmt == "json":
        export_json(outcomes, output_path)
    else:
        export_csv(outcomes, output_path)

    click.echo(str(output_path))
