"""One-shot timers used for the scan window."""

from __future__ import annotations

import threading
from collections.abc import Callable
from typing import Protocol


class Cancellable(Protocol):
    def cancel(self) -> None:
        """Cancel the pending call. Idempotent."""


class Scheduler(Protocol):
    def call_later(self, delay_s: float, callback: Callable[[], None]) -> Cancellable:
        """Invoke `callback` once after `delay_s` seconds unless cancelled."""


class ThreadingScheduler:
    def call_later(self, delay_s: float, callback: Callable[[], None]) -> Cancellable:
        timer = threading.Timer(delay_s, callback)
        timer.daemon = True
        timer.name = "thermolink-timer"
        timer.start()
        return timer
