"""Tests for the scan orchestrator."""

from __future__ import annotations

import os
import sys
import threading
from pathlib import Path
from typing import Iterable

import pytest

from mediaindex.config import MediaIndexConfig
from mediaindex.duplicates import DuplicateClassifier
from mediaindex.environment import StaticEnvironment
from mediaindex.events import EventChannel
from mediaindex.orchestrator import ScanOrchestrator, ScanState
from mediaindex.scanning import (
    CategoryFilter,
    ContentFingerprinter,
    DirectoryScanner,
    Fingerprint,
    IncrementalScanner,
    PathClassifier,
    ScanFailedError,
    ScanInProgressError,
)
from mediaindex.store import FileCategory, IndexRecord, SqliteIndexStore, StoreError


class RecordingObserver:
    def __init__(self) -> None:
        self.messages: list[str] = []

    def on_log_message(self, message: str, size_hint: int) -> None:
        self.messages.append(message)


class FailingStore(SqliteIndexStore):
    def replace_snapshot(self, records: Iterable[IndexRecord]) -> int:
        raise StoreError("disk full")


def _build(
    tmp_path: Path,
    *,
    store: SqliteIndexStore | None = None,
    fingerprinter: ContentFingerprinter | None = None,
    roots: list[Path] | None = None,
    events: EventChannel | None = None,
    environment: StaticEnvironment | None = None,
) -> ScanOrchestrator:
    categories = CategoryFilter()
    scanner = IncrementalScanner(
        DirectoryScanner(),
        PathClassifier(categories),
        fingerprinter or ContentFingerprinter(),
        workers=2,
    )
    return ScanOrchestrator(
        store or SqliteIndexStore(tmp_path / "index.db"),
        scanner,
        DuplicateClassifier(),
        categories=categories,
        environment=environment or StaticEnvironment(roots=roots or []),
        events=events,
    )


def _media(tmp_path: Path) -> Path:
    root = tmp_path / "media"
    root.mkdir()
    (root / "a.mp4").write_bytes(b"same")
    (root / "b.mp4").write_bytes(b"same")
    (root / "c.jpg").write_bytes(b"different")
    return root


def test_run_persists_snapshot_and_marks_duplicates(tmp_path: Path) -> None:
    root = _media(tmp_path)
    observer = RecordingObserver()
    channel = EventChannel()
    channel.subscribe(observer)
    orchestrator = _build(tmp_path, events=channel)

    summary = orchestrator.run([root])
    channel.close()

    assert summary.state is ScanState.COMPLETE
    assert orchestrator.state is ScanState.COMPLETE
    assert summary.records == 3
    assert summary.cache_misses == 3
    assert summary.duplicates_marked == 1
    snapshot = orchestrator.store.load_snapshot()
    assert snapshot[str(root / "a.mp4")].is_duplicate is False
    assert snapshot[str(root / "b.mp4")].is_duplicate is True

    stripped = [message.split("] ", 1)[1] for message in observer.messages]
    assert stripped.index("Updating database...") < stripped.index("Checking for duplicates...")
    assert stripped[-1] == "Scan complete."


def test_second_run_hits_the_cache(tmp_path: Path) -> None:
    root = _media(tmp_path)
    orchestrator = _build(tmp_path)
    orchestrator.run([root])

    summary = orchestrator.run([root])

    assert summary.cache_hits == 3
    assert summary.cache_misses == 0
    assert summary.duplicates_marked == 1


def test_default_roots_come_from_environment(tmp_path: Path) -> None:
    root = _media(tmp_path)
    orchestrator = _build(tmp_path, roots=[root, root])

    summary = orchestrator.run()

    assert summary.roots == [root]
    assert summary.records == 3


def test_missing_roots_are_reported_in_summary(tmp_path: Path) -> None:
    orchestrator = _build(tmp_path)

    summary = orchestrator.run([tmp_path / "absent"])

    assert summary.state is ScanState.COMPLETE
    assert summary.skipped_roots == [tmp_path / "absent"]
    assert summary.records == 0


def test_store_failure_raises_single_scan_failed_error(tmp_path: Path) -> None:
    root = _media(tmp_path)
    store = FailingStore(tmp_path / "index.db")
    orchestrator = _build(tmp_path, store=store)

    with pytest.raises(ScanFailedError) as excinfo:
        orchestrator.run([root])

    assert excinfo.value.state == ScanState.PERSISTING.value
    assert isinstance(excinfo.value.__cause__, StoreError)
    assert orchestrator.state is ScanState.FAILED
    assert store.load_snapshot() == {}


def test_cancel_keeps_previous_snapshot(tmp_path: Path) -> None:
    root = _media(tmp_path)
    store = SqliteIndexStore(tmp_path / "index.db")
    _build(tmp_path, store=store).run([root])
    (root / "new.mp4").write_bytes(b"new")

    holder: dict[str, ScanOrchestrator] = {}

    class CancellingFingerprinter(ContentFingerprinter):
        def fingerprint(
            self,
            path: Path,
            category: FileCategory,
            cancel_event: threading.Event | None = None,
        ) -> Fingerprint:
            holder["orchestrator"].cancel()
            return super().fingerprint(path, category, cancel_event=cancel_event)

    orchestrator = _build(tmp_path, store=store, fingerprinter=CancellingFingerprinter())
    holder["orchestrator"] = orchestrator

    summary = orchestrator.run([root])

    assert summary.state is ScanState.CANCELLED
    assert str(root / "new.mp4") not in store.load_snapshot()
    assert len(store.load_snapshot()) == 3


def test_concurrent_run_is_rejected(tmp_path: Path) -> None:
    root = _media(tmp_path)
    entered = threading.Event()
    release = threading.Event()

    class BlockingFingerprinter(ContentFingerprinter):
        def fingerprint(
            self,
            path: Path,
            category: FileCategory,
            cancel_event: threading.Event | None = None,
        ) -> Fingerprint:
            entered.set()
            release.wait(timeout=5)
            return super().fingerprint(path, category, cancel_event=cancel_event)

    orchestrator = _build(tmp_path, fingerprinter=BlockingFingerprinter())
    future = orchestrator.start([root])
    try:
        assert entered.wait(timeout=5)
        with pytest.raises(ScanInProgressError):
            orchestrator.run([root])
    finally:
        release.set()
    summary = future.result(timeout=10)
    orchestrator.shutdown()

    assert summary.state is ScanState.COMPLETE


def test_from_config_wires_configured_roots(tmp_path: Path) -> None:
    root = _media(tmp_path)
    config = MediaIndexConfig.model_validate(
        {
            "scan": {"roots": [str(root)], "include_images": False},
            "storage": {"database_path": str(tmp_path / "cfg.db")},
        }
    )

    orchestrator = ScanOrchestrator.from_config(config, environment=StaticEnvironment())
    summary = orchestrator.run()

    assert summary.roots == [root]
    assert summary.records == 2
    assert (tmp_path / "cfg.db").exists()


def test_cancel_issued_right_after_start_is_honoured(tmp_path: Path) -> None:
    root = _media(tmp_path)
    store = SqliteIndexStore(tmp_path / "index.db")
    resolving = threading.Event()
    release = threading.Event()

    class SlowEnvironment(StaticEnvironment):
        def default_roots(self, categories: CategoryFilter) -> list[Path]:
            resolving.set()
            release.wait(timeout=5)
            return super().default_roots(categories)

    orchestrator = _build(tmp_path, store=store, environment=SlowEnvironment(roots=[root]))
    future = orchestrator.start()
    try:
        assert resolving.wait(timeout=5)
        orchestrator.cancel()
    finally:
        release.set()
    summary = future.result(timeout=10)
    orchestrator.shutdown()

    assert summary.state is ScanState.CANCELLED
    assert store.load_snapshot() == {}


def test_cancel_does_not_leak_into_the_next_run(tmp_path: Path) -> None:
    root = _media(tmp_path)
    orchestrator = _build(tmp_path)
    orchestrator.cancel()

    summary = orchestrator.run([root])

    assert summary.state is ScanState.COMPLETE


@pytest.mark.skipif(sys.platform in ("darwin", "win32"), reason="file names must be valid UTF-8")
def test_undecodable_file_name_is_skipped_and_the_rest_persisted(tmp_path: Path) -> None:
    root = tmp_path / "media"
    root.mkdir()
    (root / "good.mp4").write_bytes(b"good")
    try:
        with open(os.fsencode(root) + b"/bad\xff.mp4", "wb") as handle:
            handle.write(b"bad")
    except OSError:
        pytest.skip("file system rejects non-UTF-8 names")
    orchestrator = _build(tmp_path)

    summary = orchestrator.run([root])

    assert summary.state is ScanState.COMPLETE
    assert set(orchestrator.store.load_snapshot()) == {str(root / "good.mp4")}
    assert summary.errors == [f"{root}/bad\\xff.mp4: file name is not valid UTF-8"]
