"""Watch mode support."""

from .service import WatchBatchResult, WatchService

__all__ = ["WatchBatchResult", "WatchService"]
