"""GATT connection lifecycle as an explicit state machine.

Every link-layer callback is wrapped in a typed event and posted to one
`SerialMailbox`, so transitions are applied one at a time in arrival order.
Events that do not belong to the current state or link handle are logged and
dropped rather than reprocessed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from threading import Lock
from typing import Any

from thermolink.core.errors import (
    LinkError,
    NotificationSetupError,
    SessionStateError,
    TargetNotFoundError,
    ThermolinkError,
    ValueDecodeError,
)
from thermolink.core.gate import CapabilityGate, check
from thermolink.core.mailbox import SerialMailbox
from thermolink.core.model import (
    ENABLE_NOTIFICATION_VALUE,
    GATT_SUCCESS,
    DeviceIdentity,
    EventKind,
    GattDescriptor,
    GattProfile,
    GattService,
    LinkState,
    Operation,
    SessionState,
    TelemetryEvent,
    find_service,
)
from thermolink.core.sinks import TelemetrySink
from thermolink.transports.base import Radio

LOGGER = logging.getLogger(__name__)

_TRANSITIONS: dict[SessionState, frozenset[SessionState]] = {
    SessionState.IDLE: frozenset({SessionState.CONNECTING, SessionState.ERROR}),
    SessionState.CONNECTING: frozenset({SessionState.SERVICE_DISCOVERY, SessionState.ERROR}),
    SessionState.SERVICE_DISCOVERY: frozenset(
        {SessionState.ENABLING_NOTIFICATIONS, SessionState.DISCONNECTED, SessionState.ERROR}
    ),
    SessionState.ENABLING_NOTIFICATIONS: frozenset(
        {SessionState.STREAMING, SessionState.DISCONNECTED, SessionState.ERROR}
    ),
    SessionState.STREAMING: frozenset({SessionState.DISCONNECTED, SessionState.ERROR}),
    SessionState.DISCONNECTED: frozenset(),
    SessionState.ERROR: frozenset(),
}


@dataclass(frozen=True)
class _Connect:
    device: DeviceIdentity


@dataclass(frozen=True)
class _StateChanged:
    handle: Any
    status: int
    state: LinkState


@dataclass(frozen=True)
class _ServicesDiscovered:
    handle: Any
    status: int
    services: tuple[GattService, ...]


@dataclass(frozen=True)
class _DescriptorWritten:
    handle: Any
    descriptor: GattDescriptor
    status: int


@dataclass(frozen=True)
class _ValueChanged:
    handle: Any
    characteristic_uuid: str
    value: bytes


class ConnectionSession:
    """Single-attempt pipeline: connect, discover, subscribe, then stream readings."""

    def __init__(
        self,
        radio: Radio,
        gate: CapabilityGate,
        sink: TelemetrySink,
        profile: GattProfile,
        *,
        encoding: str = "utf-8",
    ) -> None:
        self._radio = radio
        self._gate = gate
        self._sink = sink
        self._profile = profile
        self._encoding = encoding
        self._lock = Lock()
        self._state = SessionState.IDLE
        self._last_error: ThermolinkError | None = None
        self._device: DeviceIdentity | None = None
        self._handle: Any = None
        self._mailbox: SerialMailbox[object] = SerialMailbox(self._dispatch)

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def last_error(self) -> ThermolinkError | None:
        return self._last_error

    @property
    def device(self) -> DeviceIdentity | None:
        return self._device

    @property
    def handle(self) -> Any:
        return self._handle

    def connect(self, device: DeviceIdentity) -> None:
        """Start the pipeline for `device`. Returns before the link is up."""
        with self._lock:
            if self._state is not SessionState.IDLE or self._device is not None:
                raise SessionStateError(f"connect() requires an idle session, state is {self._state.value}")
            self._device = device
        self._mailbox.post(_Connect(device))

    def close(self) -> None:
        """Ask the radio to drop the link; the session ends on the resulting disconnect."""
        handle = self._handle
        if handle is not None and not self._state.is_terminal:
            self._radio.disconnect(handle)

    def reset(self) -> None:
        """Return a finished session to Idle so it can be reused."""
        with self._lock:
            if not self._state.is_terminal:
                raise SessionStateError(f"reset() requires a terminal session, state is {self._state.value}")
            self._state = SessionState.IDLE
            self._last_error = None
            self._device = None
            self._handle = None

    # LinkCallback

    def on_connection_state_change(self, handle: Any, status: int, state: LinkState) -> None:
        self._mailbox.post(_StateChanged(handle, status, state))

    def on_services_discovered(self, handle: Any, status: int, services: tuple[GattService, ...]) -> None:
        self._mailbox.post(_ServicesDiscovered(handle, status, tuple(services)))

    def on_descriptor_write(self, handle: Any, descriptor: GattDescriptor, status: int) -> None:
        self._mailbox.post(_DescriptorWritten(handle, descriptor, status))

    def on_characteristic_changed(self, handle: Any, characteristic_uuid: str, value: bytes) -> None:
        self._mailbox.post(_ValueChanged(handle, characteristic_uuid, bytes(value)))

    # Event handling

    def _dispatch(self, event: object) -> None:
        if isinstance(event, _Connect):
            self._on_connect(event.device)
            return
        if self._state.is_terminal or event.handle is not self._handle:
            LOGGER.debug("Ignoring stale %s in state %s", type(event).__name__, self._state.value)
            return
        if isinstance(event, _StateChanged):
            self._on_state_changed(event.status, event.state)
        elif isinstance(event, _ServicesDiscovered):
            self._on_services_discovered(event.status, event.services)
        elif isinstance(event, _DescriptorWritten):
            self._on_descriptor_written(event.descriptor, event.status)
        elif isinstance(event, _ValueChanged):
            self._on_value_changed(event.characteristic_uuid, event.value)

    def _on_connect(self, device: DeviceIdentity) -> None:
        denied = check(self._gate, Operation.CONNECT)
        if denied is not None:
            self._fail(denied)
            return
        self._transition(SessionState.CONNECTING)
        self._emit(EventKind.CONNECTING, text=device.address)
        self._handle = self._radio.connect(device, self)

    def _on_state_changed(self, status: int, state: LinkState) -> None:
        if self._state is SessionState.CONNECTING:
            if status != GATT_SUCCESS or state is LinkState.DISCONNECTED:
                self._fail(LinkError(status))
                return
            denied = check(self._gate, Operation.CONNECT)
            if denied is not None:
                self._fail(denied)
                return
            self._transition(SessionState.SERVICE_DISCOVERY)
            self._emit(EventKind.DISCOVERING_SERVICES)
            self._radio.discover_services(self._handle)
            return

        if state is LinkState.DISCONNECTED:
            self._transition(SessionState.DISCONNECTED)
            self._emit(EventKind.DISCONNECTED, text=f"status {status}")
        elif status != GATT_SUCCESS:
            self._fail(LinkError(status))
        else:
            LOGGER.debug("Ignoring repeated connected callback in state %s", self._state.value)

    def _on_services_discovered(self, status: int, services: tuple[GattService, ...]) -> None:
        if self._state is not SessionState.SERVICE_DISCOVERY:
            LOGGER.debug("Ignoring services discovered in state %s", self._state.value)
            return
        if status != GATT_SUCCESS:
            self._fail(LinkError(status))
            return

        profile = self._profile
        service = find_service(services, profile.service_uuid)
        characteristic = service.characteristic(profile.characteristic_uuid) if service else None
        if characteristic is None:
            self._fail(TargetNotFoundError(profile.service_uuid, profile.characteristic_uuid))
            return

        self._transition(SessionState.ENABLING_NOTIFICATIONS)
        self._emit(EventKind.ENABLING_NOTIFICATIONS, text=characteristic.uuid)

        denied = check(self._gate, Operation.SUBSCRIBE)
        if denied is not None:
            self._fail(denied)
            return
        if not self._radio.enable_notification(self._handle, characteristic, True):
            self._fail(NotificationSetupError("local notification flag rejected"))
            return

        descriptor = characteristic.descriptor(profile.cccd_uuid)
        if descriptor is None:
            self._fail(NotificationSetupError(f"descriptor {profile.cccd_uuid} missing"))
            return

        denied = check(self._gate, Operation.SUBSCRIBE)
        if denied is not None:
            self._fail(denied)
            return
        if not self._radio.write_descriptor(self._handle, descriptor, ENABLE_NOTIFICATION_VALUE):
            self._fail(NotificationSetupError("descriptor write was not queued"))
            return
        self._transition(SessionState.STREAMING)

    def _on_descriptor_written(self, descriptor: GattDescriptor, status: int) -> None:
        if status == GATT_SUCCESS:
            LOGGER.debug("Descriptor %s written", descriptor.uuid)
            return
        self._fail(NotificationSetupError(f"descriptor {descriptor.uuid} write status {status}"))

    def _on_value_changed(self, characteristic_uuid: str, value: bytes) -> None:
        if self._state is not SessionState.STREAMING:
            LOGGER.debug("Ignoring value change in state %s", self._state.value)
            return
        if characteristic_uuid != self._profile.characteristic_uuid:
            LOGGER.debug("Ignoring value change on %s", characteristic_uuid)
            return
        try:
            text = value.decode(self._encoding)
        except (UnicodeDecodeError, LookupError):
            error = ValueDecodeError(value, self._encoding)
            LOGGER.info("%s", error)
            self._emit(EventKind.ERROR, error=error)
            return
        self._emit(EventKind.READING, text=text.strip("\x00").strip())

    def _transition(self, new_state: SessionState) -> None:
        with self._lock:
            old_state = self._state
            if new_state not in _TRANSITIONS[old_state]:
                raise SessionStateError(f"Invalid transition {old_state.value} -> {new_state.value}")
            self._state = new_state
        LOGGER.debug("Session %s -> %s", old_state.value, new_state.value)

    def _fail(self, error: ThermolinkError) -> None:
        self._transition(SessionState.ERROR)
        self._last_error = error
        LOGGER.warning("Session failed: %s", error)
        self._emit(EventKind.ERROR, error=error)
        if self._handle is not None:
            self._radio.disconnect(self._handle)

    def _emit(self, kind: EventKind, *, text: str | None = None, error: ThermolinkError | None = None) -> None:
        self._sink.emit(TelemetryEvent(kind=kind, text=text, device=self._device, error=error))
