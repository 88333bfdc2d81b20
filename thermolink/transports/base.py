"""Radio primitive interfaces consumed by the scan controller and sessions."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any, Protocol

from thermolink.core.model import DeviceIdentity, GattCharacteristic, GattDescriptor, GattService, LinkState

SCAN_FAILED_ADAPTER_UNAVAILABLE = "adapter-unavailable"
SCAN_FAILED_INTERNAL_ERROR = 3

CCCD_UUID = "00002902-0000-1000-8000-00805f9b34fb"

ScanResultCallback = Callable[[DeviceIdentity, "str | None"], None]
ScanFailureCallback = Callable[["int | str"], None]


class LinkCallback(Protocol):
    def on_connection_state_change(self, handle: Any, status: int, state: LinkState) -> None:
        """Link came up or went down. Non-zero `status` signals a link-layer failure."""

    def on_services_discovered(self, handle: Any, status: int, services: tuple[GattService, ...]) -> None:
        """Service discovery finished for `handle`."""

    def on_descriptor_write(self, handle: Any, descriptor: GattDescriptor, status: int) -> None:
        """A descriptor write issued on `handle` completed."""

    def on_characteristic_changed(self, handle: Any, characteristic_uuid: str, value: bytes) -> None:
        """A notification arrived for `characteristic_uuid`."""


class Scanner(Protocol):
    def start_scan(self, on_result: ScanResultCallback, on_failure: ScanFailureCallback) -> None:
        """Begin delivering advertisements; report start failures through `on_failure`."""

    def stop_scan(self) -> None:
        """Stop the running scan."""


class Radio(Scanner, Protocol):
    def connect(self, device: DeviceIdentity, callback: LinkCallback) -> Any:
        """Request a GATT link and return its handle without waiting for the outcome."""

    def discover_services(self, handle: Any) -> None:
        """Request service discovery; completion arrives via the link callback."""

    def enable_notification(self, handle: Any, characteristic: GattCharacteristic, enabled: bool) -> bool:
        """Toggle local delivery of value changes for `characteristic`."""

    def write_descriptor(self, handle: Any, descriptor: GattDescriptor, value: bytes) -> bool:
        """Issue a descriptor write. Returns False when the request could not be queued."""

    def disconnect(self, handle: Any) -> None:
        """Close the link; the link callback observes it as a disconnect."""
