"""Directory discovery, classification, fingerprinting and incremental scanning."""

from .classifier import (
    IMAGE_EXTENSIONS,
    SYSTEM_RESERVED_DIRS,
    VIDEO_EXTENSIONS,
    CategoryFilter,
    PathClassifier,
)
from .discovery import DirectoryScanner
from .errors import ScanCancelledError, ScanError, ScanFailedError, ScanInProgressError
from .fingerprint import ContentFingerprinter, DurationReader, Fingerprint, HashComputer
from .models import PendingFile, ScanResult
from .scanner import IncrementalScanner

__all__ = [
    "IMAGE_EXTENSIONS",
    "SYSTEM_RESERVED_DIRS",
    "VIDEO_EXTENSIONS",
    "CategoryFilter",
    "PathClassifier",
    "DirectoryScanner",
    "ScanError",
    "ScanCancelledError",
    "ScanFailedError",
    "ScanInProgressError",
    "ContentFingerprinter",
    "DurationReader",
    "Fingerprint",
    "HashComputer",
    "PendingFile",
    "ScanResult",
    "IncrementalScanner",
]
