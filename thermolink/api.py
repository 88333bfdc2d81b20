"""Stable public API for building tooling on top of thermolink.

This module is the supported integration surface for third-party callers.
Avoid importing from private/internal modules unless intentionally depending on
non-stable internals.
"""

from __future__ import annotations

from collections.abc import Iterator
from typing import TYPE_CHECKING, Any

from thermolink.core.config import LoadedConfig, ThermoConfig, load_config
from thermolink.core.errors import (
    AdapterUnavailableError,
    ConfigLoadError,
    ConfigValidationError,
    LinkError,
    NotificationSetupError,
    PermissionDeniedError,
    ScanFailedError,
    ScanInProgressError,
    ScanTimedOutError,
    SessionStateError,
    TargetNotFoundError,
    ThermolinkError,
    ValueDecodeError,
)
from thermolink.core.gate import CapabilityGate, PolicyGate
from thermolink.core.model import (
    DeviceIdentity,
    EventKind,
    GattProfile,
    Operation,
    SessionState,
    TelemetryEvent,
)
from thermolink.core.service import ThermoService
from thermolink.core.sinks import QueueSink, TelemetrySink
from thermolink.core.timers import Scheduler
from thermolink.transports.base import Radio

if TYPE_CHECKING:
    from thermolink.transports.ble_gatt import BleakRadio

__all__ = [
    "ThermolinkError",
    "AdapterUnavailableError",
    "ConfigLoadError",
    "ConfigValidationError",
    "LinkError",
    "NotificationSetupError",
    "PermissionDeniedError",
    "ScanFailedError",
    "ScanInProgressError",
    "ScanTimedOutError",
    "SessionStateError",
    "TargetNotFoundError",
    "ValueDecodeError",
    "DeviceIdentity",
    "EventKind",
    "GattProfile",
    "Operation",
    "SessionState",
    "TelemetryEvent",
    "CapabilityGate",
    "PolicyGate",
    "QueueSink",
    "TelemetrySink",
    "ThermoService",
    "LoadedConfig",
    "ThermoConfig",
    "Client",
]

_POLL_INTERVAL_S = 0.5


class Client:
    """Public client for streaming readings from the configured thermometer.

    A `Client` wraps configuration loading, radio setup, and the scan/session
    pipeline behind an iterator of telemetry events intended for third-party
    tools (GUI/TUI/services/scripts).
    """

    def __init__(
        self,
        *,
        overrides: dict[str, Any] | None = None,
        radio: Radio | None = None,
        gate: CapabilityGate | None = None,
        scheduler: Scheduler | None = None,
    ) -> None:
        loaded = load_config(overrides)
        self.config = loaded.config
        self.load_warnings = loaded.warnings
        self._radio = radio
        self._gate = gate
        self._scheduler = scheduler

    def _make_radio(self) -> BleakRadio:
        from thermolink.transports.ble_gatt import BleakRadio

        return BleakRadio(connect_timeout_s=self.config.connect_timeout_s)

    def events(self, target_name: str | None = None) -> Iterator[TelemetryEvent]:
        """Yield events in order until the first terminal one, then release the radio."""
        owned = None if self._radio is not None else self._make_radio()
        radio = self._radio or owned
        sink = QueueSink()
        service = ThermoService(
            self.config,
            radio,
            sink,
            gate=self._gate,
            scheduler=self._scheduler,
        )
        try:
            service.start(target_name)
            while True:
                event = sink.get(timeout_s=_POLL_INTERVAL_S)
                if event is None:
                    continue
                yield event
                if event.is_terminal:
                    return
        finally:
            service.stop()
            if owned is not None:
                owned.close()
