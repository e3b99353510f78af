"""Tests for the progress event channel."""

from __future__ import annotations

import threading
from datetime import datetime

from mediaindex.events import EventChannel


class RecordingObserver:
    def __init__(self) -> None:
        self.messages: list[tuple[str, int]] = []

    def on_log_message(self, message: str, size_hint: int) -> None:
        self.messages.append((message, size_hint))


class BlockingObserver:
    def __init__(self) -> None:
        self.release = threading.Event()
        self.entered = threading.Event()

    def on_log_message(self, message: str, size_hint: int) -> None:
        self.entered.set()
        self.release.wait(timeout=5)


class FailingObserver:
    def on_log_message(self, message: str, size_hint: int) -> None:
        raise RuntimeError("observer bug")


def _clock() -> datetime:
    return datetime(2024, 1, 1, 9, 5, 7)


def test_messages_are_timestamped_and_delivered_in_order() -> None:
    observer = RecordingObserver()
    channel = EventChannel(clock=_clock)
    channel.subscribe(observer)

    channel.publish("Scanning directory: /media", 0)
    channel.publish("Found: /media/a.mp4 (video)", 2048)
    channel.close()

    assert observer.messages == [
        ("[09:05:07] Scanning directory: /media", 0),
        ("[09:05:07] Found: /media/a.mp4 (video)", 2048),
    ]
    assert channel.dropped == 0


def test_full_queue_drops_instead_of_blocking() -> None:
    observer = BlockingObserver()
    channel = EventChannel(maxsize=1, clock=_clock)
    channel.subscribe(observer)

    assert channel.publish("first") is True
    assert observer.entered.wait(timeout=5)
    assert channel.publish("second") is True
    assert channel.publish("third") is False
    assert channel.publish("fourth") is False

    assert channel.dropped == 2
    observer.release.set()
    channel.close()


def test_failing_observer_does_not_stop_delivery() -> None:
    observer = RecordingObserver()
    channel = EventChannel(clock=_clock)
    channel.subscribe(FailingObserver())
    channel.subscribe(observer)

    channel.publish("one")
    channel.publish("two")
    channel.close()

    assert [message for message, _ in observer.messages] == ["[09:05:07] one", "[09:05:07] two"]


def test_publish_after_close_is_dropped() -> None:
    channel = EventChannel(clock=_clock)
    channel.close()

    assert channel.publish("late") is False
    assert channel.dropped == 1


def test_context_manager_delivers_pending_events_on_exit() -> None:
    observer = RecordingObserver()
    with EventChannel(clock=_clock) as channel:
        channel.subscribe(observer)
        channel.publish("Scan complete.")

    assert observer.messages == [("[09:05:07] Scan complete.", 0)]
    assert channel.publish("late") is False
