"""Host environment lookups: default scan roots and well-known user folders."""

from __future__ import annotations

import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Protocol

from mediaindex.scanning.classifier import CategoryFilter


class Environment(Protocol):
    """Source of default roots and folder labels, injected for testability."""

    def default_roots(self, categories: CategoryFilter) -> list[Path]: ...

    def known_folders(self) -> dict[str, Path]: ...


class UserEnvironment:
    """Well-known folders under the current user's home directory."""

    def __init__(self, home: Optional[Path] = None, *, platform: str = sys.platform) -> None:
        self.home = (home or Path.home()).expanduser()
        self.platform = platform

    @property
    def videos(self) -> Path:
        return self.home / ("Movies" if self.platform == "darwin" else "Videos")

    @property
    def pictures(self) -> Path:
        return self.home / "Pictures"

    @property
    def desktop(self) -> Path:
        return self.home / "Desktop"

    @property
    def documents(self) -> Path:
        return self.home / "Documents"

    @property
    def downloads(self) -> Path:
        return self.home / "Downloads"

    def default_roots(self, categories: CategoryFilter) -> list[Path]:
        """Return roots to scan when none are configured.

        Media folders are included for their enabled category; Desktop,
        Documents and Downloads are included whenever any category is enabled.
        """
        roots: list[Path] = []
        if categories.include_videos:
            roots.append(self.videos)
        if categories.include_images:
            roots.append(self.pictures)
        if categories.any_enabled:
            roots.extend([self.desktop, self.documents, self.downloads])

        unique: list[Path] = []
        for root in roots:
            if root not in unique:
                unique.append(root)
        return unique

    def known_folders(self) -> dict[str, Path]:
        return {
            "Videos Folder": self.videos,
            "Desktop Folder": self.desktop,
            "Documents Folder": self.documents,
            "Pictures Folder": self.pictures,
            "Downloads Folder": self.downloads,
        }


@dataclass
class StaticEnvironment:
    """Fixed roots and folders, used when the host should not be consulted."""

    roots: list[Path] = field(default_factory=list)
    folders: dict[str, Path] = field(default_factory=dict)

    def default_roots(self, categories: CategoryFilter) -> list[Path]:
        return list(self.roots) if categories.any_enabled else []

    def known_folders(self) -> dict[str, Path]:
        return dict(self.folders)


__all__ = ["Environment", "StaticEnvironment", "UserEnvironment"]
