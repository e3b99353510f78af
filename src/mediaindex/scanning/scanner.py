"""Incremental scanning of directory roots against a previous snapshot."""

from __future__ import annotations

import logging
import os
import threading
from concurrent.futures import ALL_COMPLETED, FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Iterable, Mapping, Optional

from mediaindex import HASH_ERROR
from mediaindex.store.models import FileCategory, IndexRecord

from .classifier import PathClassifier
from .discovery import DirectoryScanner
from .errors import ScanCancelledError
from .fingerprint import ContentFingerprinter
from .models import PendingFile, ScanResult

LOGGER = logging.getLogger(__name__)

Emit = Callable[[str, int], object]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _discard(message: str, size_hint: int) -> None:
    return None


def _is_storable(path: Path) -> bool:
    try:
        str(path).encode("utf-8")
    except UnicodeEncodeError:
        return False
    return True


def _printable(path: Path | str) -> str:
    return os.fsencode(path).decode("utf-8", "backslashreplace")


class IncrementalScanner:
    """Walk roots and build a fresh record set, reusing cached fingerprints.

    A file is a cache hit when the previous snapshot holds a record for the
    same path with identical size and modification time; its digest and
    duration are reused without reading the file. Every other file is
    fingerprinted on a worker pool. Enumeration and result collection stay on
    the calling thread, so the result is only ever mutated from one thread.
    """

    def __init__(
        self,
        discovery: DirectoryScanner,
        classifier: PathClassifier,
        fingerprinter: ContentFingerprinter,
        *,
        workers: int = 0,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.discovery = discovery
        self.classifier = classifier
        self.fingerprinter = fingerprinter
        self.workers = workers if workers > 0 else (os.cpu_count() or 1)
        self._clock = clock

    def scan(
        self,
        roots: Iterable[Path | str],
        previous: Mapping[str, IndexRecord],
        *,
        emit: Optional[Emit] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> ScanResult:
        """Scan ``roots`` and return the new records with scan counters.

        Missing roots are skipped and reported; failures inside one root are
        recorded and the remaining roots are still scanned.

        Raises:
            ScanCancelledError: If ``cancel_event`` is set before the scan ends.
        """
        emit = emit or _discard
        cancel = cancel_event or threading.Event()
        result = ScanResult()
        pending: set[Future[IndexRecord]] = set()
        max_in_flight = self.workers * 4

        with ThreadPoolExecutor(
            max_workers=self.workers, thread_name_prefix="mediaindex-hash"
        ) as pool:
            try:
                for root in roots:
                    self._scan_root(
                        Path(root), previous, result, pool, pending, emit, cancel, max_in_flight
                    )
                self._drain(pending, result, emit, wait_all=True)
            except ScanCancelledError:
                for future in pending:
                    future.cancel()
                raise

        LOGGER.info(
            "Scanned %d file(s): %d cached, %d fingerprinted, %d unreadable.",
            len(result.records),
            result.cache_hits,
            result.cache_misses,
            result.hash_errors,
        )
        return result

    def _scan_root(
        self,
        root: Path,
        previous: Mapping[str, IndexRecord],
        result: ScanResult,
        pool: ThreadPoolExecutor,
        pending: set[Future[IndexRecord]],
        emit: Emit,
        cancel: threading.Event,
        max_in_flight: int,
    ) -> None:
        root_path = root.expanduser().absolute()
        if not root_path.is_dir():
            LOGGER.info("Skipping missing directory: %s", root_path)
            emit(f"Skipping missing directory: {root_path}", 0)
            result.skipped_roots.append(root_path)
            return

        emit(f"Scanning directory: {root_path}", 0)

        def on_error(exc: OSError) -> None:
            location = _printable(exc.filename or root_path)
            message = f"{location}: {exc.strerror or exc}"
            LOGGER.warning("Unable to read %s", message)
            result.errors.append(message)

        try:
            for item in self.discovery.scan(root_path, on_error=on_error):
                if cancel.is_set():
                    raise ScanCancelledError("Scan cancelled")
                category = self.classifier.classify(item.path)
                if category is None:
                    continue
                if not _is_storable(item.path):
                    message = f"{_printable(item.path)}: file name is not valid UTF-8"
                    LOGGER.warning("Skipping %s", message)
                    result.errors.append(message)
                    continue

                cached = previous.get(str(item.path))
                if (
                    cached is not None
                    and cached.size == item.size_bytes
                    and cached.last_modified_ns == item.mtime_ns
                ):
                    result.cache_hits += 1
                    result.add(self._reuse(cached, item, category))
                    continue

                result.cache_misses += 1
                pending.add(pool.submit(self._fingerprint, item, category, cancel))
                if len(pending) >= max_in_flight:
                    self._drain(pending, result, emit, wait_all=False)
        except OSError as exc:
            LOGGER.warning("Failed to scan %s: %s", root_path, exc)
            result.errors.append(f"{root_path}: {exc}")

    def _fingerprint(
        self, item: PendingFile, category: FileCategory, cancel: threading.Event
    ) -> IndexRecord:
        fingerprint = self.fingerprinter.fingerprint(item.path, category, cancel_event=cancel)
        return IndexRecord(
            path=str(item.path),
            size=item.size_bytes,
            content_digest=fingerprint.digest,
            duration=fingerprint.duration,
            last_modified_ns=item.mtime_ns,
            scanned_at=self._clock(),
            is_duplicate=False,
            category=category,
        )

    def _reuse(self, cached: IndexRecord, item: PendingFile, category: FileCategory) -> IndexRecord:
        return cached.model_copy(
            update={
                "path": str(item.path),
                "size": item.size_bytes,
                "last_modified_ns": item.mtime_ns,
                "scanned_at": self._clock(),
                "is_duplicate": False,
                "category": category,
            }
        )

    def _drain(
        self,
        pending: set[Future[IndexRecord]],
        result: ScanResult,
        emit: Emit,
        *,
        wait_all: bool,
    ) -> None:
        if not pending:
            return
        done, _ = wait(pending, return_when=ALL_COMPLETED if wait_all else FIRST_COMPLETED)
        for future in done:
            pending.discard(future)
            record = future.result()
            if record.content_digest == HASH_ERROR:
                result.hash_errors += 1
            result.add(record)
            emit(f"Found: {record.path} ({record.category.value})", record.size)


__all__ = ["IncrementalScanner"]
