"""Configuration models describing mediaindex settings."""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class MediaIndexBaseModel(BaseModel):
    """Shared configuration for mediaindex Pydantic models."""

    model_config = ConfigDict(extra="forbid")


class ScanOptions(MediaIndexBaseModel):
    """Options governing which files a scan visits and how they are hashed.

    Attributes:
        roots: Directory roots to scan. Empty means the environment defaults.
        include_videos: Whether video extensions are indexed.
        include_images: Whether image extensions are indexed.
        include_other: Whether files outside the media tables are indexed.
        workers: Fingerprinting threads; 0 uses the CPU count.
        chunk_size_kb: Read size used while streaming files through the hash.
        follow_symlinks: Whether symbolic links are traversed.
        include_hidden: Whether dot-files and dot-directories are indexed.
    """

    roots: List[str] = Field(default_factory=list)
    include_videos: bool = True
    include_images: bool = True
    include_other: bool = False
    workers: int = Field(default=0, ge=0)
    chunk_size_kb: int = Field(default=1024, gt=0)
    follow_symlinks: bool = False
    include_hidden: bool = True


class DuplicateOptions(MediaIndexBaseModel):
    """Settings for duplicate classification.

    Attributes:
        exclude_hash_errors: Keep unreadable files (``HASH_ERROR`` digests) out
            of duplicate groups.
    """

    exclude_hash_errors: bool = False


class StorageSettings(MediaIndexBaseModel):
    """Location of the persistent index.

    Attributes:
        database_path: SQLite database file holding the snapshot.
    """

    database_path: str = "~/.mediaindex/index.db"


class EventSettings(MediaIndexBaseModel):
    """Progress event channel settings.

    Attributes:
        queue_size: Maximum number of undelivered events before new ones are dropped.
    """

    queue_size: int = Field(default=1_000, gt=0)


class WatchSettings(MediaIndexBaseModel):
    """Watch-mode timing settings.

    Attributes:
        debounce_seconds: Quiet period required before a rescan starts.
        error_backoff_seconds: Initial delay after a failed rescan.
        max_error_backoff_seconds: Upper bound for the failure backoff.
    """

    debounce_seconds: float = 2.0
    error_backoff_seconds: float = 5.0
    max_error_backoff_seconds: float = 60.0


class LoggingSettings(MediaIndexBaseModel):
    """Runtime logging configuration.

    Attributes:
        level: Logging verbosity level.
        file: Optional log file path; ``None`` disables file logging.
        max_size_mb: Maximum log size before rotation.
        backup_count: Number of historical log files to retain.
    """

    level: str = "WARNING"
    file: Optional[str] = "~/.mediaindex/mediaindex.log"
    max_size_mb: int = 10
    backup_count: int = 3


class CLIOptions(MediaIndexBaseModel):
    """CLI behavior defaults and presentation preferences.

    Attributes:
        quiet_default: Whether commands suppress non-error output by default.
        summary_default: Whether commands only print summary lines by default.
        breakdown_limit: Number of locations shown in the report breakdown.
    """

    quiet_default: bool = False
    summary_default: bool = False
    breakdown_limit: int = 10


class MediaIndexConfig(MediaIndexBaseModel):
    """Top-level configuration struct for mediaindex.

    Attributes:
        scan: Scan and fingerprint settings.
        duplicates: Duplicate classification settings.
        storage: Persistent index settings.
        events: Progress event channel settings.
        watch: Watch-mode settings.
        logging: Logging configuration.
        cli: CLI presentation defaults.
    """

    scan: ScanOptions = Field(default_factory=ScanOptions)
    duplicates: DuplicateOptions = Field(default_factory=DuplicateOptions)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    events: EventSettings = Field(default_factory=EventSettings)
    watch: WatchSettings = Field(default_factory=WatchSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    cli: CLIOptions = Field(default_factory=CLIOptions)


__all__ = [
    "MediaIndexBaseModel",
    "ScanOptions",
    "DuplicateOptions",
    "StorageSettings",
    "EventSettings",
    "WatchSettings",
    "LoggingSettings",
    "CLIOptions",
    "MediaIndexConfig",
]
