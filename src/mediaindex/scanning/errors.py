"""Scan engine errors."""

from __future__ import annotations


class ScanError(Exception):
    """Base exception for scan operations."""


class ScanCancelledError(ScanError):
    """Raised inside the engine when the caller abandons a scan."""


class ScanInProgressError(ScanError):
    """Raised when a scan is requested while another one is still running."""


class ScanFailedError(ScanError):
    """Single aggregate error surfaced to the caller when a scan cannot complete.

    Attributes:
        state: Orchestrator state the scan was in when it failed.
    """

    def __init__(self, message: str, *, state: str) -> None:
        super().__init__(message)
        self.state = state
