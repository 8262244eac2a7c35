# file: tests/test_logging_config.py
from __future__ import annotations

import json
import logging

from calltariff.logging_config import JsonFormatter


def test_json_formatter_includes_extra_fields() -> None:
    record = logging.LogRecord(
        name="calltariff.rating.engine",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg="rated %s",
        args=("0312345678",),
        exc_info=None,
    )
    record.trunk = "TRK-LD"
    record.units = 2

    payload = json.loads(JsonFormatter().format(record))
    assert payload["level"] == "INFO"
    assert payload["logger"] == "calltariff.rating.engine"
    assert payload["msg"] == "rated 0312345678"
    assert payload["trunk"] == "TRK-LD"
    assert payload["units"] == 2
    assert "args" not in payload
