"""Fire-and-forget progress events delivered to observers on a background thread."""

from __future__ import annotations

import logging
import queue
import threading
from datetime import datetime
from typing import Callable, Optional, Protocol

LOGGER = logging.getLogger(__name__)

DEFAULT_QUEUE_SIZE = 1000


class LogObserver(Protocol):
    """Receives timestamped progress messages."""

    def on_log_message(self, message: str, size_hint: int) -> None:
        """Handle a message; ``size_hint`` is a byte count or 0."""
        ...


class EventChannel:
    """Bounded, non-blocking channel from the scan engine to its observers.

    ``publish`` never blocks the producer. When the queue is full the event is
    dropped and counted. Observers run on a single daemon dispatcher thread
    and an observer that raises is logged and skipped.
    """

    def __init__(
        self,
        maxsize: int = DEFAULT_QUEUE_SIZE,
        *,
        clock: Callable[[], datetime] = datetime.now,
        poll_interval: float = 0.05,
    ) -> None:
        self._queue: queue.Queue[tuple[str, int]] = queue.Queue(maxsize=maxsize)
        self._observers: list[LogObserver] = []
        self._lock = threading.Lock()
        self._clock = clock
        self._poll_interval = poll_interval
        self._dropped = 0
        self._closing = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def dropped(self) -> int:
        """Number of events discarded because the queue was full or closed."""
        with self._lock:
            return self._dropped

    def subscribe(self, observer: LogObserver) -> None:
        with self._lock:
            self._observers.append(observer)
        self._ensure_started()

    def publish(self, message: str, size_hint: int = 0) -> bool:
        """Queue ``message`` prefixed with ``[HH:MM:SS]``; return False if dropped."""
        stamped = f"[{self._clock():%H:%M:%S}] {message}"
        LOGGER.debug(stamped)
        if self._closing.is_set():
            self._count_drop()
            return False
        self._ensure_started()
        try:
            self._queue.put_nowait((stamped, size_hint))
        except queue.Full:
            self._count_drop()
            return False
        return True

    def close(self, timeout: float = 5.0) -> None:
        """Deliver queued events, then stop the dispatcher thread."""
        self._closing.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)

    def __enter__(self) -> "EventChannel":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _count_drop(self) -> None:
        with self._lock:
            self._dropped += 1

    def _ensure_started(self) -> None:
        with self._lock:
            if self._thread is not None or self._closing.is_set():
                return
            self._thread = threading.Thread(
                target=self._dispatch, name="mediaindex-events", daemon=True
            )
            self._thread.start()

    def _dispatch(self) -> None:
        while True:
            try:
                message, size_hint = self._queue.get(timeout=self._poll_interval)
            except queue.Empty:
                if self._closing.is_set():
                    return
                continue
            with self._lock:
                observers = list(self._observers)
            for observer in observers:
                try:
                    observer.on_log_message(message, size_hint)
                except Exception:
                    LOGGER.exception("Log observer %r failed", observer)


__all__ = ["DEFAULT_QUEUE_SIZE", "EventChannel", "LogObserver"]
