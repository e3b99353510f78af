"""Tests for directory discovery."""

from __future__ import annotations

import os
from pathlib import Path

import pytest

from mediaindex.scanning import DirectoryScanner


def _names(scanner: DirectoryScanner, root: Path) -> list[str]:
    return [pending.path.relative_to(root).as_posix() for pending in scanner.scan(root)]


def test_scan_yields_regular_files_recursively(tmp_path: Path) -> None:
    (tmp_path / "b").mkdir()
    (tmp_path / "a.mp4").write_bytes(b"12345")
    (tmp_path / "b" / "c.jpg").write_bytes(b"1")

    pending = list(DirectoryScanner().scan(tmp_path))

    assert [item.path.relative_to(tmp_path).as_posix() for item in pending] == ["a.mp4", "b/c.jpg"]
    assert pending[0].size_bytes == 5
    assert pending[0].mtime_ns == os.stat(tmp_path / "a.mp4").st_mtime_ns


def test_hidden_entries_can_be_excluded(tmp_path: Path) -> None:
    (tmp_path / ".cache").mkdir()
    (tmp_path / ".cache" / "thumb.jpg").write_bytes(b"1")
    (tmp_path / ".hidden.mp4").write_bytes(b"1")
    (tmp_path / "visible.mp4").write_bytes(b"1")

    assert _names(DirectoryScanner(include_hidden=False), tmp_path) == ["visible.mp4"]
    assert len(_names(DirectoryScanner(include_hidden=True), tmp_path)) == 3


@pytest.mark.skipif(not hasattr(os, "symlink"), reason="symlinks unsupported")
def test_symlinks_are_not_followed_by_default(tmp_path: Path) -> None:
    target = tmp_path / "real"
    target.mkdir()
    (target / "clip.mp4").write_bytes(b"1")
    root = tmp_path / "root"
    root.mkdir()
    try:
        (root / "link.mp4").symlink_to(target / "clip.mp4")
        (root / "linkdir").symlink_to(target, target_is_directory=True)
    except OSError:
        pytest.skip("symlink creation not permitted")

    assert _names(DirectoryScanner(), root) == []
    assert sorted(_names(DirectoryScanner(follow_symlinks=True), root)) == [
        "link.mp4",
        "linkdir/clip.mp4",
    ]


def test_unlistable_directories_are_reported(tmp_path: Path) -> None:
    errors: list[OSError] = []

    pending = list(DirectoryScanner().scan(tmp_path / "missing", on_error=errors.append))

    assert pending == []
    assert len(errors) == 1
