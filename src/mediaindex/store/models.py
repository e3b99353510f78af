"""Index record models persisted by the store."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, Field


class FileCategory(str, Enum):
    """Category assigned to an indexed file by the path classifier."""

    VIDEO = "video"
    IMAGE = "image"
    OTHER = "other"


class IndexRecord(BaseModel):
    """One indexed file.

    Attributes:
        path: Absolute filesystem path; unique within a snapshot.
        size: Byte length at scan time.
        content_digest: Lower-case hex SHA-256, or ``HASH_ERROR`` when unreadable.
        duration: Media duration in seconds; ``0.0`` when not applicable.
        last_modified_ns: Filesystem modification time in integer nanoseconds.
        scanned_at: When this record was produced.
        is_duplicate: Set by the duplicate classifier; never carried between scans.
        category: Classifier output.
    """

    path: str
    size: int = Field(ge=0)
    content_digest: str
    duration: float = 0.0
    last_modified_ns: int
    scanned_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    is_duplicate: bool = False
    category: FileCategory

    @property
    def last_modified(self) -> datetime:
        """Return the modification time as an aware UTC datetime."""
        return datetime.fromtimestamp(self.last_modified_ns / 1_000_000_000, tz=timezone.utc)


__all__ = ["FileCategory", "IndexRecord"]
