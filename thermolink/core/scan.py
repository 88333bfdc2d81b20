"""Bounded-duration discovery scan resolving to one matched device or a failure."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from threading import Lock

from thermolink.core.errors import (
    AdapterUnavailableError,
    ScanFailedError,
    ScanInProgressError,
    ScanTimedOutError,
    ThermolinkError,
)
from thermolink.core.gate import CapabilityGate, check
from thermolink.core.mailbox import SerialMailbox
from thermolink.core.model import DeviceIdentity, Operation, ScanOutcome, ScanResultKind
from thermolink.core.timers import Cancellable, Scheduler
from thermolink.transports.base import SCAN_FAILED_ADAPTER_UNAVAILABLE, Scanner

LOGGER = logging.getLogger(__name__)

OutcomeCallback = Callable[[ScanOutcome], None]


class ScanWindow:
    """One scan invocation. Resolves exactly once; `found` is written at most once."""

    def __init__(self, target_name: str, duration_s: float, on_outcome: OutcomeCallback) -> None:
        self.target_name = target_name
        self.duration_s = duration_s
        self.started_at = time.monotonic()
        self._on_outcome = on_outcome
        self._found = False
        self._outcome: ScanOutcome | None = None
        self.scanning = False
        self.timer: Cancellable | None = None

    @property
    def found(self) -> bool:
        return self._found

    @property
    def elapsed_s(self) -> float:
        return time.monotonic() - self.started_at

    @property
    def outcome(self) -> ScanOutcome | None:
        return self._outcome

    @property
    def resolved(self) -> bool:
        return self._outcome is not None

    def mark_found(self) -> None:
        if self._found:
            raise RuntimeError("scan window already marked found")
        self._found = True

    def resolve(self, outcome: ScanOutcome) -> None:
        if self._outcome is not None:
            return
        self._outcome = outcome
        self._on_outcome(outcome)


@dataclass(frozen=True)
class _Begin:
    window: ScanWindow


@dataclass(frozen=True)
class _Advertisement:
    window: ScanWindow
    device: DeviceIdentity
    advertised_name: str | None


@dataclass(frozen=True)
class _StartFailed:
    window: ScanWindow
    code: int | str


@dataclass(frozen=True)
class _Expired:
    window: ScanWindow


@dataclass(frozen=True)
class _Stop:
    pass


class ScanController:
    def __init__(self, scanner: Scanner, gate: CapabilityGate, scheduler: Scheduler) -> None:
        self._scanner = scanner
        self._gate = gate
        self._scheduler = scheduler
        self._lock = Lock()
        self._window: ScanWindow | None = None
        self._mailbox: SerialMailbox[object] = SerialMailbox(self._handle)

    @property
    def active(self) -> bool:
        window = self._window
        return window is not None and not window.resolved

    def start_scan(self, target_name: str, duration_s: float, on_outcome: OutcomeCallback) -> ScanWindow:
        """Open a scan window; `on_outcome` fires exactly once with its result.

        Raises ScanInProgressError if a previous window has not resolved yet.
        """
        with self._lock:
            if self._window is not None and not self._window.resolved:
                raise ScanInProgressError(
                    f"A scan for '{self._window.target_name}' is already in progress"
                )
            window = ScanWindow(target_name, duration_s, on_outcome)
            self._window = window
        self._mailbox.post(_Begin(window))
        return window

    def stop_scan(self) -> None:
        """Stop the active scan, if any. Safe to call any number of times."""
        self._mailbox.post(_Stop())

    def _handle(self, event: object) -> None:
        if isinstance(event, _Stop):
            self._on_stop()
            return
        window = getattr(event, "window", None)
        if window is not self._window or window is None or window.resolved:
            LOGGER.debug("Ignoring stale scan event %s", type(event).__name__)
            return
        if isinstance(event, _Begin):
            self._on_begin(window)
        elif isinstance(event, _Advertisement):
            self._on_advertisement(window, event.device, event.advertised_name)
        elif isinstance(event, _StartFailed):
            self._on_start_failed(window, event.code)
        elif isinstance(event, _Expired):
            self._on_expired(window)

    def _on_begin(self, window: ScanWindow) -> None:
        denied = check(self._gate, Operation.SCAN)
        if denied is not None:
            self._fail(window, denied)
            return

        LOGGER.debug("Starting scan for '%s' (%.1fs)", window.target_name, window.duration_s)
        window.scanning = True
        self._scanner.start_scan(
            lambda device, name: self._mailbox.post(_Advertisement(window, device, name)),
            lambda code: self._mailbox.post(_StartFailed(window, code)),
        )
        # A synchronous start failure is still queued, so the timer is armed first
        # and cancelled by the failure handler.
        window.timer = self._scheduler.call_later(
            window.duration_s,
            lambda: self._mailbox.post(_Expired(window)),
        )

    def _on_advertisement(self, window: ScanWindow, device: DeviceIdentity, advertised_name: str | None) -> None:
        name = advertised_name if advertised_name is not None else device.name
        if name is None or name != window.target_name:
            return
        window.mark_found()
        self._stop_radio(window)
        self._cancel_timer(window)
        LOGGER.debug("Matched '%s' at %s after %.1fs", name, device.address, window.elapsed_s)
        window.resolve(ScanOutcome(kind=ScanResultKind.MATCHED, device=device))

    def _on_start_failed(self, window: ScanWindow, code: int | str) -> None:
        window.scanning = False
        self._cancel_timer(window)
        if code == SCAN_FAILED_ADAPTER_UNAVAILABLE:
            self._fail(window, AdapterUnavailableError())
        else:
            self._fail(window, ScanFailedError(code))

    def _on_expired(self, window: ScanWindow) -> None:
        self._stop_radio(window)
        if not window.found:
            self._fail(
                window,
                ScanTimedOutError(window.target_name, window.duration_s),
                kind=ScanResultKind.TIMED_OUT,
            )

    def _on_stop(self) -> None:
        window = self._window
        if window is None or window.resolved:
            return
        self._stop_radio(window)
        self._cancel_timer(window)
        self._fail(
            window,
            ScanTimedOutError(window.target_name, window.duration_s, cancelled=True),
            kind=ScanResultKind.TIMED_OUT,
        )

    def _stop_radio(self, window: ScanWindow) -> None:
        if not window.scanning:
            return
        window.scanning = False
        self._scanner.stop_scan()

    def _cancel_timer(self, window: ScanWindow) -> None:
        if window.timer is not None:
            window.timer.cancel()

    def _fail(
        self,
        window: ScanWindow,
        error: ThermolinkError,
        *,
        kind: ScanResultKind = ScanResultKind.FAILED,
    ) -> None:
        LOGGER.warning("Scan ended after %.1fs: %s", window.elapsed_s, error)
        window.resolve(ScanOutcome(kind=kind, error=error))
