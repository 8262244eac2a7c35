# file: tests/test_config.py
from __future__ import annotations

from pathlib import Path

import yaml

from calltariff.config import CalltariffSettings, TelephonyTypeIds, load_settings


def _clear_env(monkeypatch) -> None:
    for key in (
        "CALLTARIFF_CONFIG",
        "CALLTARIFF_LOG_LEVEL",
        "CALLTARIFF_MIN_BILLABLE_SECONDS",
        "CALLTARIFF_PBX_EXIT_PREFIXES",
        "CALLTARIFF_TELEPHONY_TYPES",
        "CALLTARIFF_CACHE_ENABLED",
    ):
        monkeypatch.delenv(key, raising=False)


def test_defaults(monkeypatch, tmp_path: Path) -> None:
    _clear_env(monkeypatch)
    monkeypatch.chdir(tmp_path)
    s = load_settings()
    assert s.log_level == "INFO"
    assert s.cache_enabled is True
    assert s.pbx_exit_prefixes == []
    assert s.telephony_types == TelephonyTypeIds()
    assert s.telephony_types.errors == 97


def test_precedence_env_over_dotenv_over_yaml(monkeypatch, tmp_path: Path) -> None:
    _clear_env(monkeypatch)
    monkeypatch.chdir(tmp_path)

    cfg = tmp_path / "calltariff.yaml"
    cfg.write_text(
        yaml.safe_dump(
            {
                "log_level": "WARNING",
                "min_billable_seconds": 3,
                "assumed_text": "(approx)",
                "telephony_types": {"local": 30, "national": 40},
            }
        ),
        encoding="utf-8",
    )
    env_file = tmp_path / ".env"
    env_file.write_text(
        "CALLTARIFF_LOG_LEVEL=ERROR\nCALLTARIFF_MIN_BILLABLE_SECONDS=5\n", encoding="utf-8"
    )
    monkeypatch.setenv("CALLTARIFF_MIN_BILLABLE_SECONDS", "7")
    monkeypatch.setenv("CALLTARIFF_TELEPHONY_TYPES", '{"national": 41}')

    s = load_settings(yaml_path=cfg, env_path=env_file)
    assert s.log_level == "ERROR"
    assert s.min_billable_seconds == 7
    assert s.assumed_text == "(approx)"
    assert s.telephony_types.local == 30
    assert s.telephony_types.national == 41


def test_config_path_from_environment(monkeypatch, tmp_path: Path) -> None:
    _clear_env(monkeypatch)
    monkeypatch.chdir(tmp_path)
    cfg = tmp_path / "other.yaml"
    cfg.write_text("batch_workers: 9\n", encoding="utf-8")
    monkeypatch.setenv("CALLTARIFF_CONFIG", str(cfg))
    assert load_settings().batch_workers == 9


def test_pbx_exit_prefixes_are_comma_separated(monkeypatch, tmp_path: Path) -> None:
    _clear_env(monkeypatch)
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("CALLTARIFF_PBX_EXIT_PREFIXES", "9, 0,,")
    assert load_settings().pbx_exit_prefixes == ["9", "0"]


def test_country_overrides_only_touch_their_country() -> None:
    s = CalltariffSettings(country_telephony_types={2: {"local": 33, "errors": 98}})
    assert s.type_ids_for(1) == TelephonyTypeIds()
    overridden = s.type_ids_for(2)
    assert overridden.local == 33
    assert overridden.errors == 98
    assert overridden.national == 4
    assert overridden.is_local(33)
    assert not overridden.is_local(3)


def test_worldwide_types() -> None:
    ids = TelephonyTypeIds()
    assert ids.is_worldwide(ids.international)
    assert ids.is_worldwide(ids.satellite)
    assert not ids.is_worldwide(ids.national)
