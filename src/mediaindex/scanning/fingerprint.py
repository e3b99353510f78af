"""Content hashing and media duration extraction."""

from __future__ import annotations

import hashlib
import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import mutagen

from mediaindex import HASH_ERROR
from mediaindex.store.models import FileCategory

from .errors import ScanCancelledError

LOGGER = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 1024 * 1024


@dataclass(frozen=True, slots=True)
class Fingerprint:
    """Digest and duration computed for one file."""

    digest: str
    duration: float = 0.0

    @property
    def failed(self) -> bool:
        return self.digest == HASH_ERROR


class HashComputer:
    """Compute sha256 content digests in fixed-size chunks."""

    def __init__(self, chunk_size: int = DEFAULT_CHUNK_SIZE) -> None:
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        self.chunk_size = chunk_size

    def compute(self, path: Path, cancel_event: Optional[threading.Event] = None) -> str:
        """Return the lowercase hex sha256 digest of ``path``.

        Raises:
            OSError: If the file cannot be opened or read.
            ScanCancelledError: If ``cancel_event`` is set between chunks.
        """
        digest = hashlib.sha256()
        with path.open("rb") as handle:
            while True:
                if cancel_event is not None and cancel_event.is_set():
                    raise ScanCancelledError(f"Hashing cancelled: {path}")
                chunk = handle.read(self.chunk_size)
                if not chunk:
                    break
                digest.update(chunk)
        return digest.hexdigest()


class DurationReader:
    """Read playback duration through mutagen."""

    def read(self, path: Path) -> float:
        """Return the duration of ``path`` in seconds, or 0.0 when unknown."""
        try:
            media = mutagen.File(str(path))
        except Exception as exc:  # mutagen raises a wide range of parser errors
            LOGGER.debug("Unable to read duration for %s: %s", path, exc)
            return 0.0
        if media is None or media.info is None:
            return 0.0
        length = getattr(media.info, "length", 0.0) or 0.0
        return max(0.0, float(length))


class ContentFingerprinter:
    """Produce the digest and duration stored for each indexed file."""

    def __init__(
        self,
        hasher: HashComputer | None = None,
        duration_reader: DurationReader | None = None,
    ) -> None:
        self.hasher = hasher or HashComputer()
        self.duration_reader = duration_reader or DurationReader()

    def fingerprint(
        self,
        path: Path,
        category: FileCategory,
        cancel_event: Optional[threading.Event] = None,
    ) -> Fingerprint:
        """Fingerprint ``path``.

        Read failures never escape: the digest becomes ``HASH_ERROR`` and the
        duration stays 0. Duration is only read for videos.
        """
        try:
            digest = self.hasher.compute(path, cancel_event)
        except OSError as exc:
            LOGGER.warning("Unable to hash %s: %s", path, exc)
            return Fingerprint(digest=HASH_ERROR)

        duration = 0.0
        if category is FileCategory.VIDEO:
            duration = self.duration_reader.read(path)
        return Fingerprint(digest=digest, duration=duration)


__all__ = [
    "DEFAULT_CHUNK_SIZE",
    "ContentFingerprinter",
    "DurationReader",
    "Fingerprint",
    "HashComputer",
]
