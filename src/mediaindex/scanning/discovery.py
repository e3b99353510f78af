"""File discovery utilities."""

from __future__ import annotations

import os
import stat
from pathlib import Path
from typing import Callable, Iterator, Optional

from .models import PendingFile

ErrorHandler = Callable[[OSError], None]


class DirectoryScanner:
    """Recursively discover regular files under a root directory."""

    def __init__(self, *, include_hidden: bool = True, follow_symlinks: bool = False) -> None:
        self.include_hidden = include_hidden
        self.follow_symlinks = follow_symlinks

    def scan(self, root: Path, on_error: Optional[ErrorHandler] = None) -> Iterator[PendingFile]:
        """Yield every regular file under ``root``.

        Directories that cannot be listed and files that vanish before they can
        be stat'ed are reported through ``on_error`` and skipped; the walk
        continues with the remaining entries.

        Args:
            root: Directory to walk. Paths are made absolute but not resolved.
            on_error: Optional callback receiving each ``OSError`` encountered.
        """
        root = root.expanduser().absolute()
        if root.is_file():
            pending = self._pending(root, on_error)
            if pending is not None:
                yield pending
            return

        for dirpath, dirnames, filenames in os.walk(
            root, onerror=on_error, followlinks=self.follow_symlinks
        ):
            if not self.include_hidden:
                dirnames[:] = [name for name in dirnames if not name.startswith(".")]
            dirnames.sort()
            for name in sorted(filenames):
                if not self.include_hidden and name.startswith("."):
                    continue
                pending = self._pending(Path(dirpath) / name, on_error)
                if pending is not None:
                    yield pending

    def _pending(self, path: Path, on_error: Optional[ErrorHandler]) -> PendingFile | None:
        try:
            info = path.stat(follow_symlinks=self.follow_symlinks)
        except OSError as exc:
            if on_error is not None:
                on_error(exc)
            return None
        if not stat.S_ISREG(info.st_mode):
            return None
        return PendingFile(path=path, size_bytes=info.st_size, mtime_ns=info.st_mtime_ns)


__all__ = ["DirectoryScanner"]
