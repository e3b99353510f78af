"""Persistent index store contract and its SQLite implementation."""

from __future__ import annotations

from typing import TYPE_CHECKING, Iterable, Protocol

from .errors import StoreError, StoreSchemaError
from .models import FileCategory, IndexRecord
from .sqlite import SCHEMA_VERSION, SqliteIndexStore

if TYPE_CHECKING:
    from mediaindex.duplicates import DuplicateClassifier


class IndexStore(Protocol):
    """Narrow contract the scan engine relies on.

    Implementations own the snapshot exclusively: the engine only reads a
    complete prior snapshot or writes a complete replacement.
    """

    def load_snapshot(self) -> dict[str, IndexRecord]:
        """Return the persisted snapshot keyed by path."""
        ...

    def replace_snapshot(self, records: Iterable[IndexRecord]) -> int:
        """Atomically clear the snapshot and bulk-write ``records``."""
        ...

    def mark_duplicates(self, classifier: "DuplicateClassifier") -> int:
        """Recompute and persist duplicate flags; return the number flagged."""
        ...


__all__ = [
    "IndexStore",
    "SqliteIndexStore",
    "SCHEMA_VERSION",
    "FileCategory",
    "IndexRecord",
    "StoreError",
    "StoreSchemaError",
]
