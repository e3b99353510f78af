"""Map filesystem paths to index categories."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import PurePath
from typing import TYPE_CHECKING, Iterable

from mediaindex.store.models import FileCategory

if TYPE_CHECKING:
    from mediaindex.config.models import ScanOptions

VIDEO_EXTENSIONS = frozenset({".mp4", ".mkv", ".avi", ".mov", ".wmv", ".flv", ".webm"})
IMAGE_EXTENSIONS = frozenset({".jpg", ".jpeg", ".png", ".gif", ".bmp", ".webp", ".tiff"})

# Directory names whose contents are never indexed as "other".
SYSTEM_RESERVED_DIRS = frozenset(
    name.casefold()
    for name in (
        "Windows",
        "Program Files",
        "Program Files (x86)",
        "ProgramData",
        "$Recycle.Bin",
        "System Volume Information",
        "AppData",
        "Library",
        "node_modules",
        ".git",
    )
)


def _as_pure(path: str | PurePath) -> PurePath:
    return path if isinstance(path, PurePath) else PurePath(path)


@dataclass(frozen=True, slots=True)
class CategoryFilter:
    """Which categories a scan indexes."""

    include_videos: bool = True
    include_images: bool = True
    include_other: bool = False

    @classmethod
    def from_options(cls, options: "ScanOptions") -> "CategoryFilter":
        return cls(
            include_videos=options.include_videos,
            include_images=options.include_images,
            include_other=options.include_other,
        )

    @property
    def any_enabled(self) -> bool:
        return self.include_videos or self.include_images or self.include_other


class PathClassifier:
    """Classify paths by extension, honoring the enabled categories.

    Media tables are consulted first (videos, then images). A path falls back
    to ``other`` only when that category is enabled and no directory component
    is system-reserved. Anything else is skipped (``None``).
    """

    def __init__(
        self,
        categories: CategoryFilter,
        *,
        video_extensions: Iterable[str] = VIDEO_EXTENSIONS,
        image_extensions: Iterable[str] = IMAGE_EXTENSIONS,
        reserved_dirs: Iterable[str] = SYSTEM_RESERVED_DIRS,
    ) -> None:
        self.categories = categories
        self._video = frozenset(ext.lower() for ext in video_extensions)
        self._image = frozenset(ext.lower() for ext in image_extensions)
        self._reserved = frozenset(name.casefold() for name in reserved_dirs)

    def classify(self, path: str | PurePath) -> FileCategory | None:
        """Return the category for ``path`` or ``None`` when it must be skipped."""
        pure = _as_pure(path)
        suffix = pure.suffix.lower()
        if self.categories.include_videos and suffix in self._video:
            return FileCategory.VIDEO
        if self.categories.include_images and suffix in self._image:
            return FileCategory.IMAGE
        if self.categories.include_other and not self.is_system_reserved(pure):
            return FileCategory.OTHER
        return None

    def is_system_reserved(self, path: str | PurePath) -> bool:
        """Return True when any parent directory of ``path`` is on the exclusion list."""
        return any(part.casefold() in self._reserved for part in _as_pure(path).parent.parts)


__all__ = [
    "VIDEO_EXTENSIONS",
    "IMAGE_EXTENSIONS",
    "SYSTEM_RESERVED_DIRS",
    "CategoryFilter",
    "PathClassifier",
]
