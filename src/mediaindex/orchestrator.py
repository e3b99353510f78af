"""Sequencing of a full scan: load, scan, persist, classify duplicates."""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Iterable, Optional, Sequence

from mediaindex.config.models import MediaIndexConfig
from mediaindex.duplicates import DuplicateClassifier
from mediaindex.environment import Environment, UserEnvironment
from mediaindex.events import EventChannel
from mediaindex.scanning import (
    CategoryFilter,
    ContentFingerprinter,
    DirectoryScanner,
    HashComputer,
    IncrementalScanner,
    PathClassifier,
    ScanCancelledError,
    ScanFailedError,
    ScanInProgressError,
    ScanResult,
)
from mediaindex.store import IndexStore, SqliteIndexStore

LOGGER = logging.getLogger(__name__)


class ScanState(str, Enum):
    """Lifecycle of a scan run."""

    IDLE = "idle"
    LOADING_PREVIOUS = "loading_previous"
    SCANNING = "scanning"
    PERSISTING = "persisting"
    CLASSIFYING_DUPLICATES = "classifying_duplicates"
    COMPLETE = "complete"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def terminal(self) -> bool:
        return self in (ScanState.COMPLETE, ScanState.FAILED, ScanState.CANCELLED)


_TRANSITIONS: dict[ScanState, frozenset[ScanState]] = {
    ScanState.IDLE: frozenset({ScanState.LOADING_PREVIOUS}),
    ScanState.LOADING_PREVIOUS: frozenset(
        {ScanState.SCANNING, ScanState.FAILED, ScanState.CANCELLED}
    ),
    ScanState.SCANNING: frozenset({ScanState.PERSISTING, ScanState.FAILED, ScanState.CANCELLED}),
    ScanState.PERSISTING: frozenset({ScanState.CLASSIFYING_DUPLICATES, ScanState.FAILED}),
    ScanState.CLASSIFYING_DUPLICATES: frozenset({ScanState.COMPLETE, ScanState.FAILED}),
    ScanState.COMPLETE: frozenset({ScanState.LOADING_PREVIOUS}),
    ScanState.FAILED: frozenset({ScanState.LOADING_PREVIOUS}),
    ScanState.CANCELLED: frozenset({ScanState.LOADING_PREVIOUS}),
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True)
class ScanSummary:
    """Outcome of a single scan run."""

    state: ScanState
    roots: list[Path]
    started_at: datetime
    finished_at: datetime
    records: int = 0
    cache_hits: int = 0
    cache_misses: int = 0
    hash_errors: int = 0
    duplicates_marked: int = 0
    dropped_events: int = 0
    skipped_roots: list[Path] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    @property
    def duration_seconds(self) -> float:
        return max(0.0, (self.finished_at - self.started_at).total_seconds())

    def to_payload(self) -> dict[str, Any]:
        """Return a JSON-serializable representation."""
        return {
            "state": self.state.value,
            "roots": [str(root) for root in self.roots],
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat(),
            "duration_seconds": round(self.duration_seconds, 3),
            "counts": {
                "records": self.records,
                "cache_hits": self.cache_hits,
                "cache_misses": self.cache_misses,
                "hash_errors": self.hash_errors,
                "duplicates": self.duplicates_marked,
                "dropped_events": self.dropped_events,
            },
            "skipped_roots": [str(root) for root in self.skipped_roots],
            "errors": list(self.errors),
        }


class ScanOrchestrator:
    """Run scans against an index store and report progress through events.

    The orchestrator reads the previous snapshot, runs the incremental
    scanner, replaces the snapshot and recomputes duplicate flags, in that
    order. The store is only written after scanning finishes, so a failed or
    cancelled scan leaves the previous snapshot untouched.
    """

    def __init__(
        self,
        store: IndexStore,
        scanner: IncrementalScanner,
        duplicate_classifier: DuplicateClassifier,
        *,
        categories: CategoryFilter,
        environment: Optional[Environment] = None,
        roots: Sequence[Path | str] = (),
        events: Optional[EventChannel] = None,
    ) -> None:
        self.store = store
        self.scanner = scanner
        self.duplicate_classifier = duplicate_classifier
        self.categories = categories
        self.environment = environment or UserEnvironment()
        self.roots = [Path(root) for root in roots]
        self.events = events
        self._state = ScanState.IDLE
        self._lock = threading.Lock()
        self._cancels: set[threading.Event] = set()
        self._executor: Optional[ThreadPoolExecutor] = None

    @classmethod
    def from_config(
        cls,
        config: MediaIndexConfig,
        *,
        store: Optional[IndexStore] = None,
        environment: Optional[Environment] = None,
        events: Optional[EventChannel] = None,
    ) -> "ScanOrchestrator":
        """Build an orchestrator and its collaborators from configuration."""
        options = config.scan
        categories = CategoryFilter.from_options(options)
        scanner = IncrementalScanner(
            DirectoryScanner(
                include_hidden=options.include_hidden,
                follow_symlinks=options.follow_symlinks,
            ),
            PathClassifier(categories),
            ContentFingerprinter(HashComputer(chunk_size=options.chunk_size_kb * 1024)),
            workers=options.workers,
        )
        return cls(
            store or SqliteIndexStore(Path(config.storage.database_path).expanduser()),
            scanner,
            DuplicateClassifier(exclude_hash_errors=config.duplicates.exclude_hash_errors),
            categories=categories,
            environment=environment,
            roots=[Path(root) for root in options.roots],
            events=events,
        )

    @property
    def state(self) -> ScanState:
        with self._lock:
            return self._state

    def resolve_roots(self, roots: Optional[Iterable[Path | str]] = None) -> list[Path]:
        """Return the roots a scan would walk, deduplicated in order.

        Explicit ``roots`` win over configured roots; with neither, the
        environment's default roots for the enabled categories are used.
        """
        candidates = [Path(root) for root in roots] if roots is not None else []
        if not candidates:
            candidates = list(self.roots)
        if not candidates:
            candidates = self.environment.default_roots(self.categories)

        resolved: list[Path] = []
        seen: set[str] = set()
        for candidate in candidates:
            path = candidate.expanduser().absolute()
            if str(path) in seen:
                continue
            seen.add(str(path))
            resolved.append(path)
        return resolved

    def run(self, roots: Optional[Iterable[Path | str]] = None) -> ScanSummary:
        """Run a scan synchronously.

        Returns a summary whose state is ``COMPLETE`` or ``CANCELLED``.

        Raises:
            ScanInProgressError: If another scan is active.
            ScanFailedError: If any stage fails; the original error is chained.
        """
        return self._run(roots, self._claim_cancel())

    def _run(
        self, roots: Optional[Iterable[Path | str]], cancel: threading.Event
    ) -> ScanSummary:
        try:
            return self._execute(roots, cancel)
        finally:
            with self._lock:
                self._cancels.discard(cancel)

    def _execute(
        self, roots: Optional[Iterable[Path | str]], cancel: threading.Event
    ) -> ScanSummary:
        resolved = self.resolve_roots(roots)
        with self._lock:
            if not (self._state is ScanState.IDLE or self._state.terminal):
                raise ScanInProgressError(f"A scan is already running ({self._state.value}).")
            previous_state, self._state = self._state, ScanState.LOADING_PREVIOUS
        LOGGER.debug("Scan state %s -> %s", previous_state.value, ScanState.LOADING_PREVIOUS.value)

        started_at = _utcnow()
        dropped_before = self.events.dropped if self.events is not None else 0
        result: Optional[ScanResult] = None
        marked = 0

        try:
            previous = self.store.load_snapshot()
            self._check_cancelled(cancel)

            self._transition(ScanState.SCANNING)
            result = self.scanner.scan(
                resolved, previous, emit=self._emit, cancel_event=cancel
            )
            self._check_cancelled(cancel)

            self._transition(ScanState.PERSISTING)
            self._emit("Updating database...")
            self.store.replace_snapshot(result.records.values())

            self._transition(ScanState.CLASSIFYING_DUPLICATES)
            self._emit("Checking for duplicates...")
            marked = self.store.mark_duplicates(self.duplicate_classifier)

            self._transition(ScanState.COMPLETE)
            self._emit("Scan complete.")
        except ScanCancelledError:
            LOGGER.info("Scan cancelled; previous snapshot kept.")
            self._transition(ScanState.CANCELLED)
            self._emit("Scan cancelled.")
        except Exception as exc:
            failed_in = self.state
            with self._lock:
                self._state = ScanState.FAILED
            LOGGER.error("Scan failed while %s: %s", failed_in.value, exc)
            self._emit(f"Scan failed: {exc}")
            raise ScanFailedError(
                f"Scan failed while {failed_in.value}: {exc}", state=failed_in.value
            ) from exc

        dropped = (self.events.dropped if self.events is not None else 0) - dropped_before
        summary = ScanSummary(
            state=self.state,
            roots=resolved,
            started_at=started_at,
            finished_at=_utcnow(),
            duplicates_marked=marked,
            dropped_events=dropped,
        )
        if result is not None:
            summary.records = len(result.records)
            summary.cache_hits = result.cache_hits
            summary.cache_misses = result.cache_misses
            summary.hash_errors = result.hash_errors
            summary.skipped_roots = list(result.skipped_roots)
            summary.errors = list(result.errors)
        return summary

    def start(self, roots: Optional[Iterable[Path | str]] = None) -> "Future[ScanSummary]":
        """Run a scan on a background worker and return its future."""
        with self._lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(
                    max_workers=1, thread_name_prefix="mediaindex-scan"
                )
            executor = self._executor
        cancel = self._claim_cancel()
        return executor.submit(self._run, list(roots) if roots is not None else None, cancel)

    def cancel(self) -> None:
        """Ask the active and any queued scan to stop at the next file boundary."""
        with self._lock:
            pending = list(self._cancels)
        for event in pending:
            event.set()

    def shutdown(self) -> None:
        with self._lock:
            executor, self._executor = self._executor, None
        if executor is not None:
            executor.shutdown(wait=True)

    def _claim_cancel(self) -> threading.Event:
        cancel = threading.Event()
        with self._lock:
            self._cancels.add(cancel)
        return cancel

    def _check_cancelled(self, cancel: threading.Event) -> None:
        if cancel.is_set():
            raise ScanCancelledError("Scan cancelled")

    def _transition(self, new_state: ScanState) -> None:
        with self._lock:
            current = self._state
            if new_state not in _TRANSITIONS[current]:
                raise RuntimeError(f"Illegal scan transition {current.value} -> {new_state.value}")
            self._state = new_state
        LOGGER.debug("Scan state %s -> %s", current.value, new_state.value)

    def _emit(self, message: str, size_hint: int = 0) -> None:
        if self.events is not None:
            self.events.publish(message, size_hint)
        else:
            LOGGER.debug(message)


__all__ = ["ScanOrchestrator", "ScanState", "ScanSummary"]
