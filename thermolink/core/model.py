"""Core data models shared by the scan controller, session, service, and CLI."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from thermolink.core.errors import ThermolinkError

GATT_SUCCESS = 0
GATT_CONN_TIMEOUT = 8
GATT_ERROR = 133
GATT_FAILURE = 257

ENABLE_NOTIFICATION_VALUE = b"\x01\x00"


class Operation(str, Enum):
    SCAN = "scan"
    CONNECT = "connect"
    SUBSCRIBE = "subscribe"


class LinkState(Enum):
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"


class SessionState(Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    SERVICE_DISCOVERY = "service_discovery"
    ENABLING_NOTIFICATIONS = "enabling_notifications"
    STREAMING = "streaming"
    DISCONNECTED = "disconnected"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (SessionState.DISCONNECTED, SessionState.ERROR)


class EventKind(Enum):
    SCANNING = "scanning"
    DEVICE_FOUND = "device_found"
    CONNECTING = "connecting"
    DISCOVERING_SERVICES = "discovering_services"
    ENABLING_NOTIFICATIONS = "enabling_notifications"
    READING = "reading"
    DISCONNECTED = "disconnected"
    ERROR = "error"


class ScanResultKind(Enum):
    MATCHED = "matched"
    TIMED_OUT = "timed_out"
    FAILED = "failed"


@dataclass(frozen=True)
class DeviceIdentity:
    address: str
    name: str
    handle: Any = field(default=None, compare=False, repr=False)


@dataclass(frozen=True)
class GattProfile:
    """UUIDs of the telemetry service, its characteristic, and the CCCD."""

    service_uuid: str
    characteristic_uuid: str
    cccd_uuid: str


@dataclass(frozen=True)
class GattDescriptor:
    uuid: str
    characteristic_uuid: str
    handle: Any = field(default=None, compare=False, repr=False)


@dataclass(frozen=True)
class GattCharacteristic:
    uuid: str
    descriptors: tuple[GattDescriptor, ...] = ()
    handle: Any = field(default=None, compare=False, repr=False)

    def descriptor(self, uuid: str) -> GattDescriptor | None:
        for descriptor in self.descriptors:
            if descriptor.uuid == uuid:
                return descriptor
        return None


@dataclass(frozen=True)
class GattService:
    uuid: str
    characteristics: tuple[GattCharacteristic, ...] = ()

    def characteristic(self, uuid: str) -> GattCharacteristic | None:
        for characteristic in self.characteristics:
            if characteristic.uuid == uuid:
                return characteristic
        return None


def find_service(services: tuple[GattService, ...], uuid: str) -> GattService | None:
    for service in services:
        if service.uuid == uuid:
            return service
    return None


@dataclass(frozen=True)
class TelemetryEvent:
    kind: EventKind
    text: str | None = None
    device: DeviceIdentity | None = None
    error: ThermolinkError | None = None

    @property
    def is_terminal(self) -> bool:
        if self.kind is EventKind.DISCONNECTED:
            return True
        return self.kind is EventKind.ERROR and not (self.error and self.error.recoverable)

    def describe(self) -> str:
        if self.kind is EventKind.READING:
            return f"Reading: {self.text}"
        if self.kind is EventKind.ERROR:
            return f"Error [{self.error.reason if self.error else 'error'}]: {self.error}"
        if self.kind is EventKind.DEVICE_FOUND and self.device is not None:
            return f"Device found: {self.device.name} ({self.device.address})"
        label = self.kind.value.replace("_", " ").capitalize()
        return f"{label}: {self.text}" if self.text else label


@dataclass(frozen=True)
class ScanOutcome:
    kind: ScanResultKind
    device: DeviceIdentity | None = None
    error: ThermolinkError | None = None
