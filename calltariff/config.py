# file: calltariff/config.py
"""
Configuration loader.

Design goals:
- Support `.env` for local development.
- Support YAML for telephony-type ids and rating defaults.
- Validate configuration with pydantic.

Precedence (highest to lowest):
1. OS environment variables
2. `.env` values
3. YAML config file values
4. Code defaults
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

import yaml
from dotenv import dotenv_values
from pydantic import BaseModel, Field
from pydantic import ConfigDict as PydanticConfigDict


class TelephonyTypeIds(BaseModel):
    """
    Ids of the telephony types the engine treats specially.

    Billing databases number their telephony types differently, so the engine
    never hard-codes these; one instance is injected per origin country.
    """

    model_config = PydanticConfigDict(frozen=True, extra="ignore")

    local: int = 3
    local_extended: int = 12
    national: int = 4
    cellular: int = 2
    international: int = 5
    satellite: int = 10
    special_services: int = 11
    errors: int = 97
    no_consumption: int = 16

    def is_local(self, telephony_type_id: int) -> bool:
        return telephony_type_id == self.local

    def is_worldwide(self, telephony_type_id: int) -> bool:
        """International and satellite destinations are not scoped to the origin country."""

        return telephony_type_id in (self.international, self.satellite)


class CalltariffSettings(BaseModel):
    model_config = PydanticConfigDict(extra="ignore")

    # General
    log_level: str = "INFO"
    json_logging: bool = False

    # Reference data
    database_path: Path | None = None
    reference_data_path: Path | None = None
    cache_enabled: bool = True

    # Rating
    min_billable_seconds: int = 0
    assumed_text: str = "(assumed)"
    pbx_exit_prefixes: list[str] = Field(default_factory=list)
    batch_workers: int = 4

    # Telephony type ids
    telephony_types: TelephonyTypeIds = Field(default_factory=TelephonyTypeIds)
    country_telephony_types: dict[int, dict[str, int]] = Field(default_factory=dict)

    def type_ids_for(self, origin_country_id: int) -> TelephonyTypeIds:
        """Default ids overlaid with any per-country overrides."""

        overrides = self.country_telephony_types.get(origin_country_id)
        if not overrides:
            return self.telephony_types
        return TelephonyTypeIds.model_validate({**self.telephony_types.model_dump(), **overrides})


_ENV_MAP: dict[str, str] = {
    "CALLTARIFF_LOG_LEVEL": "log_level",
    "CALLTARIFF_JSON_LOGGING": "json_logging",
    "CALLTARIFF_DATABASE_PATH": "database_path",
    "CALLTARIFF_REFERENCE_DATA_PATH": "reference_data_path",
    "CALLTARIFF_CACHE_ENABLED": "cache_enabled",
    "CALLTARIFF_MIN_BILLABLE_SECONDS": "min_billable_seconds",
    "CALLTARIFF_ASSUMED_TEXT": "assumed_text",
    # Comma-separated: "9,0"
    "CALLTARIFF_PBX_EXIT_PREFIXES": "pbx_exit_prefixes",
    "CALLTARIFF_BATCH_WORKERS": "batch_workers",
    # JSON string: {"local": 3, "national": 4, ...}
    "CALLTARIFF_TELEPHONY_TYPES": "telephony_types",
}


def _read_yaml(path: Path) -> dict[str, Any]:
    raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    return raw if isinstance(raw, dict) else {}


def _read_dotenv(path: Path) -> dict[str, str]:
    values = dotenv_values(path)
    out: dict[str, str] = {}
    for k, v in values.items():
        if isinstance(k, str) and isinstance(v, str):
            out[k] = v
    return out


def _overlay_env(target: dict[str, Any], env: dict[str, str]) -> None:
    for env_key, field_name in _ENV_MAP.items():
        if env_key not in env:
            continue
        raw = env[env_key]
        if field_name == "telephony_types":
            try:
                parsed = json.loads(raw)
            except json.JSONDecodeError:
                continue
            if isinstance(parsed, dict):
                merged = dict(target.get(field_name) or {})
                merged.update(parsed)
                target[field_name] = merged
        elif field_name == "pbx_exit_prefixes":
            target[field_name] = [p.strip() for p in raw.split(",") if p.strip()]
        else:
            target[field_name] = raw


def load_settings(
    *, yaml_path: Path | None = None, env_path: Path | None = None
) -> CalltariffSettings:
    """
    Load settings from YAML and .env, with OS env overrides.

    Args:
        yaml_path: Optional YAML config path.
        env_path: Optional .env path (default: `.env` if present).
    """

    data: dict[str, Any] = {}

    if env_path is None:
        maybe = Path(".env")
        env_path = maybe if maybe.exists() else None

    dotenv = _read_dotenv(env_path) if env_path is not None and env_path.exists() else {}

    # YAML path: explicit argument, then CALLTARIFF_CONFIG from OS env, then from .env.
    if yaml_path is None:
        cfg = os.environ.get("CALLTARIFF_CONFIG") or dotenv.get("CALLTARIFF_CONFIG")
        if cfg:
            yaml_path = Path(cfg)

    if yaml_path is not None and yaml_path.exists():
        data.update(_read_yaml(yaml_path))

    if dotenv:
        _overlay_env(data, dotenv)

    os_env: dict[str, str] = {k: v for k, v in os.environ.items() if k in _ENV_MAP}
    _overlay_env(data, os_env)

    return CalltariffSettings.model_validate(data)
