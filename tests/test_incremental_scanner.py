"""Tests for the incremental scanner."""

from __future__ import annotations

import os
import sys
import threading
from datetime import datetime, timezone
from pathlib import Path

import pytest

from mediaindex import HASH_ERROR
from mediaindex.scanning import (
    CategoryFilter,
    ContentFingerprinter,
    DirectoryScanner,
    Fingerprint,
    IncrementalScanner,
    PathClassifier,
    ScanCancelledError,
)
from mediaindex.store import FileCategory, IndexRecord

FIXED_NOW = datetime(2024, 5, 6, 7, 8, 9, tzinfo=timezone.utc)


class CountingFingerprinter(ContentFingerprinter):
    """Fingerprinter that records which paths it was asked to read."""

    def __init__(self) -> None:
        super().__init__()
        self.calls: list[Path] = []
        self._lock = threading.Lock()

    def fingerprint(
        self,
        path: Path,
        category: FileCategory,
        cancel_event: threading.Event | None = None,
    ) -> Fingerprint:
        with self._lock:
            self.calls.append(path)
        return super().fingerprint(path, category, cancel_event=cancel_event)


def _scanner(
    fingerprinter: ContentFingerprinter | None = None,
    categories: CategoryFilter | None = None,
) -> IncrementalScanner:
    return IncrementalScanner(
        DirectoryScanner(),
        PathClassifier(categories or CategoryFilter()),
        fingerprinter or ContentFingerprinter(),
        workers=2,
        clock=lambda: FIXED_NOW,
    )


def _write(path: Path, content: bytes) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(content)
    return path


def test_first_scan_fingerprints_every_media_file(tmp_path: Path) -> None:
    root = tmp_path / "media"
    video = _write(root / "clip.mp4", b"video")
    image = _write(root / "nested" / "photo.jpg", b"image")
    _write(root / "notes.txt", b"ignored")
    events: list[tuple[str, int]] = []

    result = _scanner().scan([root], {}, emit=lambda message, size: events.append((message, size)))

    assert set(result.records) == {str(video), str(image)}
    assert result.cache_hits == 0
    assert result.cache_misses == 2
    record = result.records[str(video)]
    assert record.size == 5
    assert record.category is FileCategory.VIDEO
    assert record.last_modified_ns == os.stat(video).st_mtime_ns
    assert record.scanned_at == FIXED_NOW
    assert record.is_duplicate is False
    assert (f"Scanning directory: {root}", 0) in events
    assert (f"Found: {video} (video)", 5) in events


def test_unchanged_files_reuse_cached_fingerprint(tmp_path: Path) -> None:
    root = tmp_path / "media"
    video = _write(root / "clip.mp4", b"video")
    first = _scanner().scan([root], {})

    cached = first.records[str(video)].model_copy(
        update={"content_digest": "cached-digest", "duration": 42.0, "is_duplicate": True}
    )
    fingerprinter = CountingFingerprinter()
    second = _scanner(fingerprinter).scan([root], {cached.path: cached})

    assert fingerprinter.calls == []
    assert second.cache_hits == 1
    assert second.cache_misses == 0
    reused = second.records[str(video)]
    assert reused.content_digest == "cached-digest"
    assert reused.duration == 42.0
    assert reused.is_duplicate is False
    assert reused.scanned_at == FIXED_NOW


def test_changed_modification_time_forces_rehash(tmp_path: Path) -> None:
    root = tmp_path / "media"
    video = _write(root / "clip.mp4", b"video")
    first = _scanner().scan([root], {})
    stale = first.records[str(video)].model_copy(update={"content_digest": "stale"})

    stat = os.stat(video)
    os.utime(video, ns=(stat.st_atime_ns, stat.st_mtime_ns + 1_000_000_000))
    fingerprinter = CountingFingerprinter()
    second = _scanner(fingerprinter).scan([root], {stale.path: stale})

    assert fingerprinter.calls == [video]
    assert second.records[str(video)].content_digest != "stale"


def test_changed_size_forces_rehash(tmp_path: Path) -> None:
    root = tmp_path / "media"
    video = _write(root / "clip.mp4", b"video")
    first = _scanner().scan([root], {})
    previous = first.records[str(video)]
    mtime_ns = os.stat(video).st_mtime_ns

    video.write_bytes(b"longer video")
    os.utime(video, ns=(mtime_ns, mtime_ns))
    fingerprinter = CountingFingerprinter()
    second = _scanner(fingerprinter).scan([root], {previous.path: previous})

    assert fingerprinter.calls == [video]
    assert second.records[str(video)].size == len(b"longer video")


def test_deleted_files_disappear_from_result(tmp_path: Path) -> None:
    root = tmp_path / "media"
    keep = _write(root / "keep.mp4", b"keep")
    gone = _write(root / "gone.mp4", b"gone")
    first = _scanner().scan([root], {})

    gone.unlink()
    second = _scanner().scan([root], first.records)

    assert set(second.records) == {str(keep)}


def test_disabled_category_drops_previous_records(tmp_path: Path) -> None:
    root = tmp_path / "media"
    video = _write(root / "clip.mp4", b"video")
    _write(root / "photo.jpg", b"image")
    first = _scanner().scan([root], {})

    second = _scanner(categories=CategoryFilter(include_images=False)).scan([root], first.records)

    assert set(second.records) == {str(video)}


def test_missing_root_is_skipped_and_others_still_scanned(tmp_path: Path) -> None:
    missing = tmp_path / "nope"
    root = tmp_path / "media"
    image = _write(root / "photo.png", b"png")
    events: list[str] = []

    result = _scanner().scan([missing, root], {}, emit=lambda message, size: events.append(message))

    assert result.skipped_roots == [missing]
    assert set(result.records) == {str(image)}
    assert f"Skipping missing directory: {missing}" in events


def test_overlapping_roots_do_not_duplicate_records(tmp_path: Path) -> None:
    root = tmp_path / "media"
    image = _write(root / "sub" / "photo.png", b"png")

    result = _scanner().scan([root, root / "sub"], {})

    assert list(result.records) == [str(image)]


def test_unreadable_files_are_recorded_with_hash_error(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    root = tmp_path / "media"
    video = _write(root / "locked.mp4", b"locked")
    original_open = Path.open

    def guarded_open(self: Path, *args: object, **kwargs: object):  # type: ignore[no-untyped-def]
        if self == video:
            raise PermissionError(13, "Permission denied", str(self))
        return original_open(self, *args, **kwargs)  # type: ignore[arg-type]

    monkeypatch.setattr(Path, "open", guarded_open)

    result = _scanner().scan([root], {})

    assert result.records[str(video)].content_digest == HASH_ERROR
    assert result.hash_errors == 1


def test_other_category_indexes_everything_outside_reserved_dirs(tmp_path: Path) -> None:
    root = tmp_path / "data"
    doc = _write(root / "report.pdf", b"pdf")
    _write(root / "node_modules" / "pkg" / "index.js", b"js")

    result = _scanner(
        categories=CategoryFilter(include_videos=False, include_images=False, include_other=True)
    ).scan([root], {})

    assert set(result.records) == {str(doc)}
    assert result.records[str(doc)].category is FileCategory.OTHER


def test_cancellation_raises_and_returns_nothing(tmp_path: Path) -> None:
    root = tmp_path / "media"
    for index in range(5):
        _write(root / f"clip{index}.mp4", b"video")
    cancel = threading.Event()
    cancel.set()

    with pytest.raises(ScanCancelledError):
        _scanner().scan([root], {}, cancel_event=cancel)


def test_fully_cached_rescan_emits_no_found_events(tmp_path: Path) -> None:
    root = tmp_path / "media"
    _write(root / "clip.mp4", b"video")
    first = _scanner().scan([root], {})
    events: list[str] = []

    second = _scanner().scan([root], first.records, emit=lambda message, size: events.append(message))

    assert second.cache_hits == 1
    assert events == [f"Scanning directory: {root}"]


@pytest.mark.skipif(sys.platform in ("darwin", "win32"), reason="file names must be valid UTF-8")
def test_undecodable_file_name_is_reported_and_skipped(tmp_path: Path) -> None:
    root = tmp_path / "media"
    good = _write(root / "good.mp4", b"good")
    try:
        _write(Path(os.fsdecode(os.fsencode(root) + b"/bad\xff.mp4")), b"bad")
    except OSError:
        pytest.skip("file system rejects non-UTF-8 names")

    result = _scanner().scan([root], {})

    assert set(result.records) == {str(good)}
    assert result.cache_misses == 1
    assert result.errors == [f"{root}/bad\\xff.mp4: file name is not valid UTF-8"]
