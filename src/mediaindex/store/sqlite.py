"""SQLite implementation of the index store contract."""

from __future__ import annotations

import logging
import sqlite3
from collections import defaultdict
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Iterable, Iterator

from pydantic import ValidationError

from .db import connect, transaction
from .errors import StoreError, StoreSchemaError
from .models import IndexRecord

if TYPE_CHECKING:
    from mediaindex.duplicates import DuplicateClassifier

LOGGER = logging.getLogger(__name__)

SCHEMA_VERSION = 1

_SCHEMA = """
CREATE TABLE IF NOT EXISTS indexed_files (
    path TEXT PRIMARY KEY,
    size INTEGER NOT NULL,
    content_digest TEXT NOT NULL,
    duration REAL NOT NULL DEFAULT 0,
    last_modified_ns INTEGER NOT NULL,
    scanned_at TEXT NOT NULL,
    is_duplicate INTEGER NOT NULL DEFAULT 0,
    category TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_indexed_files_digest ON indexed_files (content_digest);
"""

_COLUMNS = (
    "path, size, content_digest, duration, last_modified_ns, scanned_at, is_duplicate, category"
)


class SqliteIndexStore:
    """Persist the index snapshot in a single SQLite table.

    Every public method opens its own short-lived connection so the store can be
    used from the orchestrator's worker thread and the caller's thread alike.
    """

    def __init__(self, db_path: str | Path) -> None:
        self._db_path = Path(db_path).expanduser()
        self._initialized = False

    @property
    def db_path(self) -> Path:
        """Return the database file location."""
        return self._db_path

    def initialize(self) -> None:
        """Create the schema when missing and verify the schema version.

        Raises:
            StoreSchemaError: If the database was written by a newer schema.
            StoreError: If the database cannot be opened.
        """
        with self._connection(initialize=False) as conn:
            self._ensure_schema(conn)
        self._initialized = True

    # ------------------------------------------------------------------ #
    # Snapshot contract                                                  #
    # ------------------------------------------------------------------ #

    def load_snapshot(self) -> dict[str, IndexRecord]:
        """Return the persisted snapshot keyed by path (empty on first run)."""
        with self._connection() as conn:
            rows = conn.execute(f"SELECT {_COLUMNS} FROM indexed_files").fetchall()
        return {record.path: record for record in (self._to_record(row) for row in rows)}

    def replace_snapshot(self, records: Iterable[IndexRecord]) -> int:
        """Replace the snapshot wholesale with ``records``.

        The delete and the bulk insert share one transaction, so a failure
        part-way leaves the previous snapshot intact. Duplicate flags are always
        written as false; they are recomputed by :meth:`mark_duplicates`.

        Returns:
            int: Number of rows written.
        """
        unique: dict[str, IndexRecord] = {}
        for record in records:
            unique[record.path] = record
        rows = [self._to_row(record) for record in unique.values()]

        with self._connection() as conn:
            with transaction(conn):
                conn.execute("DELETE FROM indexed_files")
                conn.executemany(
                    f"INSERT INTO indexed_files ({_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, 0, ?)",
                    rows,
                )
        LOGGER.info("Replaced index snapshot with %d records", len(rows))
        return len(rows)

    def mark_duplicates(self, classifier: "DuplicateClassifier") -> int:
        """Recompute and persist duplicate flags for the stored snapshot.

        Returns:
            int: Number of records flagged as duplicate.
        """
        report = classifier.classify(self.load_snapshot().values())
        flagged = sorted(report.duplicate_paths)
        with self._connection() as conn:
            with transaction(conn):
                conn.execute("UPDATE indexed_files SET is_duplicate = 0")
                conn.executemany(
                    "UPDATE indexed_files SET is_duplicate = 1 WHERE path = ?",
                    [(path,) for path in flagged],
                )
        LOGGER.info(
            "Marked %d duplicates across %d digest groups", len(flagged), len(report.groups)
        )
        return len(flagged)

    # ------------------------------------------------------------------ #
    # Read-only queries                                                  #
    # ------------------------------------------------------------------ #

    def record_count(self) -> int:
        """Return the number of indexed files."""
        return int(self._scalar("SELECT COUNT(*) FROM indexed_files") or 0)

    def total_size(self) -> int:
        """Return the combined size of all indexed files in bytes."""
        return int(self._scalar("SELECT SUM(size) FROM indexed_files") or 0)

    def duplicate_size(self) -> int:
        """Return the combined size of files flagged as duplicate."""
        return int(
            self._scalar("SELECT SUM(size) FROM indexed_files WHERE is_duplicate = 1") or 0
        )

    def iter_path_sizes(self) -> Iterator[tuple[str, int]]:
        """Yield ``(path, size)`` for every indexed file."""
        with self._connection() as conn:
            rows = conn.execute("SELECT path, size FROM indexed_files").fetchall()
        for row in rows:
            yield row["path"], int(row["size"])

    def duplicate_groups(self) -> dict[str, list[IndexRecord]]:
        """Return records grouped by digest for digests shared by two or more files."""
        query = (
            f"SELECT {_COLUMNS} FROM indexed_files WHERE content_digest IN ("
            "SELECT content_digest FROM indexed_files "
            "GROUP BY content_digest HAVING COUNT(*) > 1"
            ") ORDER BY content_digest, path"
        )
        with self._connection() as conn:
            rows = conn.execute(query).fetchall()
        groups: dict[str, list[IndexRecord]] = defaultdict(list)
        for row in rows:
            record = self._to_record(row)
            groups[record.content_digest].append(record)
        return dict(groups)

    # ------------------------------------------------------------------ #
    # Internal helpers                                                   #
    # ------------------------------------------------------------------ #

    @contextmanager
    def _connection(self, *, initialize: bool = True) -> Iterator[sqlite3.Connection]:
        """Open a connection, translating SQLite failures into StoreError."""
        if initialize and not self._initialized:
            self.initialize()
        try:
            conn = connect(self._db_path)
        except (sqlite3.Error, OSError) as exc:
            raise StoreError(f"Unable to open index database {self._db_path}: {exc}") from exc
        try:
            yield conn
        except sqlite3.Error as exc:
            raise StoreError(f"Index database operation failed: {exc}") from exc
        finally:
            conn.close()

    def _ensure_schema(self, conn: sqlite3.Connection) -> None:
        version = int(conn.execute("PRAGMA user_version").fetchone()[0])
        if version > SCHEMA_VERSION:
            raise StoreSchemaError(
                f"Index database {self._db_path} uses schema v{version}; "
                f"this release understands up to v{SCHEMA_VERSION}."
            )
        conn.executescript(_SCHEMA)
        if version < SCHEMA_VERSION:
            conn.execute(f"PRAGMA user_version = {SCHEMA_VERSION}")

    def _scalar(self, query: str) -> object:
        with self._connection() as conn:
            row = conn.execute(query).fetchone()
        return row[0] if row else None

    @staticmethod
    def _to_row(record: IndexRecord) -> tuple[object, ...]:
        return (
            record.path,
            record.size,
            record.content_digest,
            record.duration,
            record.last_modified_ns,
            record.scanned_at.isoformat(),
            record.category.value,
        )

    def _to_record(self, row: sqlite3.Row) -> IndexRecord:
        try:
            return IndexRecord(
                path=row["path"],
                size=row["size"],
                content_digest=row["content_digest"],
                duration=row["duration"],
                last_modified_ns=row["last_modified_ns"],
                scanned_at=datetime.fromisoformat(row["scanned_at"]),
                is_duplicate=bool(row["is_duplicate"]),
                category=row["category"],
            )
        except (ValidationError, ValueError) as exc:
            raise StoreSchemaError(f"Corrupt index row for {row['path']!r}: {exc}") from exc


__all__ = ["SCHEMA_VERSION", "SqliteIndexStore"]
