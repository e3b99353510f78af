"""Data models produced while walking and scanning directory roots."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from pydantic import BaseModel

from mediaindex.store.models import IndexRecord


class PendingFile(BaseModel):
    """A regular file found during discovery, before classification.

    Attributes:
        path: Absolute path as enumerated (symlinks are not resolved).
        size_bytes: File size reported by ``stat``.
        mtime_ns: Modification time in integer nanoseconds.
    """

    path: Path
    size_bytes: int
    mtime_ns: int


@dataclass(slots=True)
class ScanResult:
    """Records and counters produced by one incremental scan.

    Attributes:
        records: New records keyed by path; a later record for a path replaces
            an earlier one.
        cache_hits: Files whose digest and duration were reused.
        cache_misses: Files that were fingerprinted.
        hash_errors: Fingerprinted files that could not be read.
        skipped_roots: Configured roots that did not exist.
        errors: Per-root and per-directory failures, as readable messages.
    """

    records: dict[str, IndexRecord] = field(default_factory=dict)
    cache_hits: int = 0
    cache_misses: int = 0
    hash_errors: int = 0
    skipped_roots: list[Path] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    def add(self, record: IndexRecord) -> None:
        """Store ``record``, replacing any earlier record for the same path."""
        self.records[record.path] = record


__all__ = ["PendingFile", "ScanResult"]
