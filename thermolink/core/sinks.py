"""Telemetry sinks: consumers of the ordered status/value event stream."""

from __future__ import annotations

import queue
from typing import Protocol

from thermolink.core.model import TelemetryEvent


class TelemetrySink(Protocol):
    def emit(self, event: TelemetryEvent) -> None:
        """Receive the next event. Called in transition order."""


class QueueSink:
    """Hands events to a consumer thread through a FIFO queue."""

    def __init__(self) -> None:
        self._queue: queue.Queue[TelemetryEvent] = queue.Queue()

    def emit(self, event: TelemetryEvent) -> None:
        self._queue.put(event)

    def get(self, timeout_s: float | None = None) -> TelemetryEvent | None:
        try:
            return self._queue.get(timeout=timeout_s)
        except queue.Empty:
            return None
