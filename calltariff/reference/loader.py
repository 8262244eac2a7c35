# file: calltariff/reference/loader.py
"""
Reference-data document loading.

A document is a YAML or JSON mapping with one list per record kind
(`prefixes`, `indicators`, `series`, ...). The whole document is validated
with pydantic before anything is written, so a malformed record rejects the
load instead of surfacing mid-run.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from calltariff.reference.models import ReferenceDocument
from calltariff.reference.store import ReferenceDataError, SQLiteReferenceStore

logger = logging.getLogger(__name__)


def _read_raw(path: Path) -> Any:
    text = path.read_text(encoding="utf-8")
    if path.suffix.lower() == ".json":
        return json.loads(text)
    return yaml.safe_load(text)


def load_document(path: Path) -> ReferenceDocument:
    """
    Parse and validate a reference document.

    Raises:
        ReferenceDataError: if the file is missing, unparsable, or holds a
            malformed record.
    """

    if not path.exists():
        raise ReferenceDataError(f"Reference document not found: {path}")
    try:
        raw = _read_raw(path)
    except (OSError, json.JSONDecodeError, yaml.YAMLError) as exc:
        raise ReferenceDataError(f"Cannot read reference document {path}: {exc}") from exc

    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ReferenceDataError(f"Reference document {path} must be a mapping of record lists")

    try:
        doc = ReferenceDocument.model_validate(raw)
    except ValidationError as exc:
        raise ReferenceDataError(f"Invalid reference document {path}: {exc}") from exc

    logger.info(
        "Loaded reference document %s (%d prefixes, %d series)",
        path,
        len(doc.prefixes),
        len(doc.series),
    )
    return doc


def build_store(document_path: Path, *, database_path: Path | None = None) -> SQLiteReferenceStore:
    """
    Load a document into a store.

    With `database_path` the SQLite file is (re)created on disk; otherwise the
    store is in memory.
    """

    return SQLiteReferenceStore.from_document(load_document(document_path), path=database_path)


def open_store(
    *, database_path: Path | None = None, document_path: Path | None = None
) -> SQLiteReferenceStore:
    """Open a prepared database, or build an in-memory store from a document."""

    if database_path is not None:
        return SQLiteReferenceStore.open(database_path)
    if document_path is not None:
        return build_store(document_path)
    raise ReferenceDataError("No reference data configured (set a database or a document path)")
