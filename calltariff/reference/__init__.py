# file: calltariff/reference/__init__.py
"""Reference data records and the read-only store the rating engine queries."""

from __future__ import annotations

from .loader import build_store, load_document, open_store
from .models import ReferenceDocument
from .store import ReferenceDataError, ReferenceStore, SQLiteReferenceStore

__all__ = [
    "ReferenceDataError",
    "ReferenceDocument",
    "ReferenceStore",
    "SQLiteReferenceStore",
    "build_store",
    "load_document",
    "open_store",
]
