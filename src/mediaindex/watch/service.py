"""Filesystem watch service that re-runs incremental scans."""

from __future__ import annotations

import logging
import os
import queue
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable, Optional

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from mediaindex.config.models import WatchSettings
from mediaindex.orchestrator import ScanOrchestrator, ScanSummary
from mediaindex.scanning.errors import ScanFailedError

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class WatchBatchResult:
    """Outcome of one debounced rescan.

    Attributes:
        batch_id: Sequential identifier within this service.
        triggered_paths: Paths whose events caused the rescan; empty for
            ``process_once``.
        summary: Summary returned by the orchestrator.
    """

    batch_id: int
    triggered_paths: list[Path]
    summary: ScanSummary


class WatchService:
    """Monitor scan roots and rescan once events settle."""

    def __init__(
        self,
        orchestrator: ScanOrchestrator,
        *,
        settings: WatchSettings,
        roots: Optional[Iterable[Path]] = None,
        ignored_paths: Iterable[Path] = (),
        debounce_override: Optional[float] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """Initialize the watch service.

        Args:
            orchestrator: Orchestrator that performs each rescan.
            settings: Debounce and backoff settings.
            roots: Roots to monitor; defaults to the orchestrator's roots.
            ignored_paths: Files whose events never trigger a rescan, such as
                the index database.
            debounce_override: Optional debounce interval override in seconds.
            sleep: Sleep function used for failure backoff.
        """
        self._orchestrator = orchestrator
        self._roots = orchestrator.resolve_roots(roots)
        self._ignored = tuple(str(path.expanduser().absolute()) for path in ignored_paths)
        self._observer: Optional[Observer] = None  # type: ignore[valid-type]
        self._queue: queue.Queue[Optional[Path]] = queue.Queue()
        self._stop_event = threading.Event()
        self._sleep = sleep
        self._batch_counter = 0
        self._debounce_seconds = (
            max(0.1, debounce_override)
            if debounce_override and debounce_override > 0
            else max(0.1, settings.debounce_seconds)
        )
        self._initial_backoff = max(0.1, settings.error_backoff_seconds)
        self._max_backoff = max(self._initial_backoff, settings.max_error_backoff_seconds)
        self._backoff = self._initial_backoff

    @property
    def roots(self) -> list[Path]:
        return list(self._roots)

    def process_once(self) -> WatchBatchResult:
        """Run a single scan over the monitored roots."""
        return self._run_batch([])

    def watch(self, callback: Callable[[WatchBatchResult], None]) -> None:
        """Block, rescanning after each quiet period until :meth:`stop` is called."""
        if self._observer is not None:
            raise RuntimeError("WatchService is already running.")

        self._stop_event.clear()
        self._observer = Observer()
        for root in self._roots:
            if not root.is_dir():
                LOGGER.info("Not watching missing directory: %s", root)
                continue
            handler = _WatchEventHandler(self._queue, self._ignored)
            self._observer.schedule(handler, str(root), recursive=True)

        self._observer.start()
        try:
            self._run_loop(callback)
        finally:
            self.stop()

    def stop(self) -> None:
        self._stop_event.set()
        if self._observer is not None:
            self._observer.stop()
            self._observer.join(timeout=5)
            self._observer = None
        self._queue.put(None)

    def _run_loop(self, callback: Callable[[WatchBatchResult], None]) -> None:
        pending: set[Path] = set()
        flush_deadline: Optional[float] = None

        while not self._stop_event.is_set():
            timeout: Optional[float] = None
            if flush_deadline is not None:
                timeout = max(0.0, flush_deadline - time.monotonic())

            try:
                path = self._queue.get(timeout=timeout)
            except queue.Empty:
                if pending:
                    self._flush(sorted(pending), callback)
                    pending.clear()
                    flush_deadline = None
                continue

            if path is None:
                break
            pending.add(path)
            flush_deadline = time.monotonic() + self._debounce_seconds

    def _flush(self, paths: list[Path], callback: Callable[[WatchBatchResult], None]) -> None:
        try:
            batch = self._run_batch(paths)
        except ScanFailedError as exc:
            LOGGER.error("Watch rescan failed (%d path(s) pending): %s", len(paths), exc)
            backoff = self._backoff
            self._sleep(backoff)
            self._backoff = min(backoff * 2, self._max_backoff)
            return
        self._backoff = self._initial_backoff
        callback(batch)

    def _run_batch(self, paths: list[Path]) -> WatchBatchResult:
        summary = self._orchestrator.run(self._roots)
        self._batch_counter += 1
        return WatchBatchResult(
            batch_id=self._batch_counter,
            triggered_paths=list(paths),
            summary=summary,
        )


class _WatchEventHandler(FileSystemEventHandler):
    """Forward file events into the service queue."""

    def __init__(self, queue_handle: queue.Queue[Optional[Path]], ignored: tuple[str, ...]) -> None:
        self._queue = queue_handle
        self._ignored = ignored

    def on_created(self, event: FileSystemEvent) -> None:
        self._enqueue(event.src_path, event.is_directory)

    def on_modified(self, event: FileSystemEvent) -> None:
        self._enqueue(event.src_path, event.is_directory)

    def on_deleted(self, event: FileSystemEvent) -> None:
        self._enqueue(event.src_path, event.is_directory)

    def on_moved(self, event: FileSystemEvent) -> None:  # pragma: no cover - watchdog-specific
        self._enqueue(event.src_path, event.is_directory)
        self._enqueue(getattr(event, "dest_path", ""), event.is_directory)

    def _enqueue(self, raw_path: str | bytes, is_directory: bool) -> None:
        if is_directory or not raw_path:
            return
        text = os.fsdecode(raw_path)
        if any(text.startswith(ignored) for ignored in self._ignored):
            return
        self._queue.put(Path(text))


__all__ = ["WatchBatchResult", "WatchService"]
