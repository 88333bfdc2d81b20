"""Service layer: scan for the configured peripheral, then hand it to a session."""

from __future__ import annotations

import logging
from threading import Lock

from thermolink.core.config import ThermoConfig
from thermolink.core.errors import ScanInProgressError, SessionStateError
from thermolink.core.gate import CapabilityGate, PolicyGate
from thermolink.core.model import EventKind, ScanOutcome, ScanResultKind, SessionState, TelemetryEvent
from thermolink.core.scan import ScanController
from thermolink.core.session import ConnectionSession
from thermolink.core.sinks import TelemetrySink
from thermolink.core.timers import Scheduler, ThreadingScheduler
from thermolink.transports.base import Radio

LOGGER = logging.getLogger(__name__)


class ThermoService:
    def __init__(
        self,
        config: ThermoConfig,
        radio: Radio,
        sink: TelemetrySink,
        *,
        gate: CapabilityGate | None = None,
        scheduler: Scheduler | None = None,
    ) -> None:
        self.config = config
        self.radio = radio
        self.sink = sink
        self.gate = gate or PolicyGate(config.permissions)
        self.scanner = ScanController(radio, self.gate, scheduler or ThreadingScheduler())
        self._lock = Lock()
        self._start_lock = Lock()
        self._session: ConnectionSession | None = None

    @property
    def session(self) -> ConnectionSession | None:
        return self._session

    @property
    def session_state(self) -> SessionState | None:
        return self._session.state if self._session else None

    def start(self, target_name: str | None = None) -> None:
        """Scan for the target and stream its readings into the sink.

        Returns immediately; progress is reported through the sink. Raises
        ScanInProgressError if a previous scan has not resolved and
        SessionStateError if the previous session has not ended.
        """
        name = target_name or self.config.device_name
        with self._start_lock:
            if self.scanner.active:
                raise ScanInProgressError("A scan is already in progress")
            with self._lock:
                session = self._session
            if session is not None and not session.state.is_terminal:
                raise SessionStateError(f"The current session is still {session.state.value}")
            self.sink.emit(TelemetryEvent(kind=EventKind.SCANNING, text=name))
            self.scanner.start_scan(name, self.config.scan_timeout_s, self._on_scan_outcome)

    def stop(self) -> None:
        """Stop any scan and close any active link."""
        self.scanner.stop_scan()
        with self._lock:
            session = self._session
        if session is not None:
            session.close()

    def _on_scan_outcome(self, outcome: ScanOutcome) -> None:
        if outcome.kind is not ScanResultKind.MATCHED or outcome.device is None:
            self.sink.emit(TelemetryEvent(kind=EventKind.ERROR, error=outcome.error))
            return

        device = outcome.device
        LOGGER.info("Found %s (%s)", device.name, device.address)
        self.sink.emit(TelemetryEvent(kind=EventKind.DEVICE_FOUND, device=device))
        session = ConnectionSession(
            self.radio,
            self.gate,
            self.sink,
            self.config.profile,
            encoding=self.config.encoding,
        )
        with self._lock:
            self._session = session
        session.connect(device)
