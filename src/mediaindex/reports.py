"""Read-only reports over the persisted index."""

from __future__ import annotations

import logging
import shutil
from collections import defaultdict
from pathlib import PurePath
from typing import Optional

from pydantic import BaseModel, computed_field

from mediaindex.environment import Environment, UserEnvironment
from mediaindex.store import SqliteIndexStore

LOGGER = logging.getLogger(__name__)

_GIB = 1024**3
_MIB = 1024**2


def format_size(num_bytes: int) -> str:
    """Render a byte count as ``N.NN GB`` from 1 GiB upwards, else ``N.NN MB``."""
    if num_bytes >= _GIB:
        return f"{num_bytes / _GIB:.2f} GB"
    return f"{num_bytes / _MIB:.2f} MB"


def format_duration(seconds: float) -> str:
    """Render seconds as ``HH:MM:SS``; zero or negative durations render empty."""
    if seconds <= 0:
        return ""
    total = int(seconds)
    hours, remainder = divmod(total, 3600)
    minutes, secs = divmod(remainder, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"


class StorageReport(BaseModel):
    total_count: int
    total_size: int
    duplicate_size: int

    @computed_field  # type: ignore[prop-decorator]
    @property
    def unique_size(self) -> int:
        return self.total_size - self.duplicate_size


class LocationReportItem(BaseModel):
    location: str
    size: int

    @property
    def display_size(self) -> str:
        return format_size(self.size)


class VolumeUsage(BaseModel):
    root: str
    total: int
    free: int


class StorageMetrics(BaseModel):
    """Disk usage of the volumes holding indexed files."""

    volumes: list[VolumeUsage]
    total_indexed_size: int
    duplicate_size: int

    @computed_field  # type: ignore[prop-decorator]
    @property
    def total_drive_space(self) -> int:
        return sum(volume.total for volume in self.volumes)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def free_drive_space(self) -> int:
        return sum(volume.free for volume in self.volumes)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def other_used_space(self) -> int:
        return max(0, self.total_drive_space - self.free_drive_space - self.total_indexed_size)


class DuplicateGroup(BaseModel):
    digest: str
    survivor: str
    duplicates: list[str]
    size: int
    duration: float = 0.0

    @computed_field  # type: ignore[prop-decorator]
    @property
    def reclaimable_size(self) -> int:
        return self.size * len(self.duplicates)


class ReportService:
    """Aggregate views over a :class:`SqliteIndexStore`."""

    def __init__(
        self, store: SqliteIndexStore, environment: Optional[Environment] = None
    ) -> None:
        self.store = store
        self.environment = environment or UserEnvironment()

    def storage_report(self) -> StorageReport:
        return StorageReport(
            total_count=self.store.record_count(),
            total_size=self.store.total_size(),
            duplicate_size=self.store.duplicate_size(),
        )

    def location_breakdown(self) -> list[LocationReportItem]:
        """Return indexed bytes per location, largest first.

        A file belongs to the first well-known folder containing it (compared
        case-insensitively); otherwise to its drive or filesystem root.
        """
        folders = [
            (label, PurePath(path).parts) for label, path in self.environment.known_folders().items()
        ]
        totals: dict[str, int] = defaultdict(int)
        for path, size in self.store.iter_path_sizes():
            totals[self._location_for(path, folders)] += size
        items = [LocationReportItem(location=label, size=size) for label, size in totals.items()]
        items.sort(key=lambda item: (-item.size, item.location))
        return items

    def storage_metrics(self) -> StorageMetrics:
        """Return usage for each volume referenced by the index.

        Volumes are approximated by path anchor; unreadable ones are skipped.
        """
        anchors = sorted(
            {PurePath(path).anchor for path, _ in self.store.iter_path_sizes()} - {""}
        )
        volumes: list[VolumeUsage] = []
        for anchor in anchors:
            try:
                usage = shutil.disk_usage(anchor)
            except OSError as exc:
                LOGGER.debug("Unable to read disk usage for %s: %s", anchor, exc)
                continue
            volumes.append(VolumeUsage(root=anchor, total=usage.total, free=usage.free))
        return StorageMetrics(
            volumes=volumes,
            total_indexed_size=self.store.total_size(),
            duplicate_size=self.store.duplicate_size(),
        )

    def duplicate_groups(self, limit: Optional[int] = None) -> list[DuplicateGroup]:
        """Return flagged duplicate groups ordered by reclaimable bytes."""
        groups: list[DuplicateGroup] = []
        for digest, records in self.store.duplicate_groups().items():
            flagged = [record.path for record in records if record.is_duplicate]
            kept = [record.path for record in records if not record.is_duplicate]
            if not flagged or not kept:
                continue
            groups.append(
                DuplicateGroup(
                    digest=digest,
                    survivor=kept[0],
                    duplicates=flagged,
                    size=records[0].size,
                    duration=records[0].duration,
                )
            )
        groups.sort(key=lambda group: (-group.reclaimable_size, group.digest))
        if limit is not None:
            groups = groups[: max(0, limit)]
        return groups

    @staticmethod
    def _location_for(path: str, folders: list[tuple[str, tuple[str, ...]]]) -> str:
        parent = PurePath(path).parent
        parent_parts = tuple(part.casefold() for part in parent.parts)
        if not parent_parts or parent_parts == (".",):
            return "Unknown"
        for label, folder_parts in folders:
            folded = tuple(part.casefold() for part in folder_parts)
            if folded and parent_parts[: len(folded)] == folded:
                return label
        return parent.anchor or "Unknown"


__all__ = [
    "DuplicateGroup",
    "LocationReportItem",
    "ReportService",
    "StorageMetrics",
    "StorageReport",
    "VolumeUsage",
    "format_duration",
    "format_size",
]
