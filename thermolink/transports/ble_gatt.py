"""BLE GATT radio implementation on top of bleak.

bleak is asyncio-based; the radio owns a private event loop running on a
daemon thread. Every primitive schedules a coroutine on that loop and returns
immediately, and outcomes are reported through the scan and link callbacks
from the loop thread.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Coroutine, Iterable
from concurrent.futures import Future
from functools import partial
from typing import Any

from bleak import BleakClient, BleakScanner
from bleak.backends.device import BLEDevice
from bleak.backends.scanner import AdvertisementData
from bleak.exc import BleakBluetoothNotAvailableError, BleakError

from thermolink.core.model import (
    ENABLE_NOTIFICATION_VALUE,
    GATT_CONN_TIMEOUT,
    GATT_ERROR,
    GATT_FAILURE,
    GATT_SUCCESS,
    DeviceIdentity,
    GattCharacteristic,
    GattDescriptor,
    GattService,
    LinkState,
)
from thermolink.transports.base import (
    CCCD_UUID,
    SCAN_FAILED_ADAPTER_UNAVAILABLE,
    SCAN_FAILED_INTERNAL_ERROR,
    LinkCallback,
    ScanFailureCallback,
    ScanResultCallback,
)

LOGGER = logging.getLogger(__name__)

_THREAD_JOIN_TIMEOUT_S = 2.0


def services_from_bleak(collection: Iterable[Any]) -> tuple[GattService, ...]:
    """Convert a bleak service collection into immutable GATT models."""
    services: list[GattService] = []
    for service in collection:
        characteristics = tuple(
            GattCharacteristic(
                uuid=str(characteristic.uuid).lower(),
                descriptors=tuple(
                    GattDescriptor(
                        uuid=str(descriptor.uuid).lower(),
                        characteristic_uuid=str(characteristic.uuid).lower(),
                        handle=descriptor.handle,
                    )
                    for descriptor in characteristic.descriptors
                ),
                handle=characteristic,
            )
            for characteristic in service.characteristics
        )
        services.append(GattService(uuid=str(service.uuid).lower(), characteristics=characteristics))
    return tuple(services)


class BleakLink:
    """Link handle returned by `BleakRadio.connect`."""

    def __init__(self, device: DeviceIdentity, callback: LinkCallback) -> None:
        self.device = device
        self.callback = callback
        self.client: BleakClient | None = None
        self.connected = False
        self.closed = False
        self.notifying: dict[str, Any] = {}

    def __repr__(self) -> str:
        return f"BleakLink({self.device.address}, connected={self.connected})"


class _LoopThread:
    def __init__(self) -> None:
        self.loop = asyncio.new_event_loop()
        self._thread = threading.Thread(target=self._run, name="thermolink-ble", daemon=True)
        self._thread.start()

    def _run(self) -> None:
        asyncio.set_event_loop(self.loop)
        self.loop.run_forever()

    def submit(self, coro: Coroutine[Any, Any, Any], what: str) -> Future[Any]:
        future = asyncio.run_coroutine_threadsafe(coro, self.loop)
        future.add_done_callback(partial(_log_failure, what))
        return future

    def close(self) -> None:
        if self.loop.is_closed():
            return
        self.loop.call_soon_threadsafe(self.loop.stop)
        if self._thread is not threading.current_thread():
            self._thread.join(timeout=_THREAD_JOIN_TIMEOUT_S)
        if not self._thread.is_alive():
            self.loop.close()


def _log_failure(what: str, future: Future[Any]) -> None:
    if future.cancelled():
        return
    exc = future.exception()
    if exc is not None:
        LOGGER.error("BLE %s failed unexpectedly: %s", what, exc, exc_info=exc)


class BleakRadio:
    def __init__(self, *, connect_timeout_s: float = 10.0) -> None:
        self._connect_timeout_s = connect_timeout_s
        self._runner = _LoopThread()
        self._scan_lock = asyncio.Lock()
        self._scanner: BleakScanner | None = None

    # Scanner

    def start_scan(self, on_result: ScanResultCallback, on_failure: ScanFailureCallback) -> None:
        def _detected(device: BLEDevice, advertisement: AdvertisementData) -> None:
            identity = DeviceIdentity(address=device.address, name=device.name or "", handle=device)
            on_result(identity, advertisement.local_name)

        self._runner.submit(self._start_scan(_detected, on_failure), "scan start")

    async def _start_scan(self, detected: Any, on_failure: ScanFailureCallback) -> None:
        async with self._scan_lock:
            if self._scanner is not None:
                await self._scanner.stop()
                self._scanner = None
            scanner = BleakScanner(detection_callback=detected)
            try:
                await scanner.start()
            except BleakBluetoothNotAvailableError as exc:
                LOGGER.warning("Bluetooth adapter not available: %s", exc)
                on_failure(SCAN_FAILED_ADAPTER_UNAVAILABLE)
                return
            except (BleakError, OSError) as exc:
                LOGGER.warning("BLE scan failed to start: %s", exc)
                on_failure(SCAN_FAILED_INTERNAL_ERROR)
                return
            self._scanner = scanner

    def stop_scan(self) -> None:
        self._runner.submit(self._stop_scan(), "scan stop")

    async def _stop_scan(self) -> None:
        async with self._scan_lock:
            scanner, self._scanner = self._scanner, None
            if scanner is not None:
                await scanner.stop()

    # Link / GATT

    def connect(self, device: DeviceIdentity, callback: LinkCallback) -> BleakLink:
        link = BleakLink(device, callback)
        self._runner.submit(self._connect(link), f"connect {device.address}")
        return link

    async def _connect(self, link: BleakLink) -> None:
        def _disconnected(_client: BleakClient) -> None:
            if link.connected:
                link.connected = False
                link.callback.on_connection_state_change(link, GATT_SUCCESS, LinkState.DISCONNECTED)

        target = link.device.handle if link.device.handle is not None else link.device.address
        link.client = BleakClient(
            target,
            disconnected_callback=_disconnected,
            timeout=self._connect_timeout_s,
        )
        try:
            await link.client.connect()
        except TimeoutError:
            LOGGER.warning("BLE connect to %s timed out", link.device.address)
            link.callback.on_connection_state_change(link, GATT_CONN_TIMEOUT, LinkState.DISCONNECTED)
            return
        except (BleakError, OSError) as exc:
            LOGGER.warning("BLE connect to %s failed: %s", link.device.address, exc)
            link.callback.on_connection_state_change(link, GATT_ERROR, LinkState.DISCONNECTED)
            return

        link.connected = True
        if link.closed:
            await self._disconnect(link)
            return
        link.callback.on_connection_state_change(link, GATT_SUCCESS, LinkState.CONNECTED)

    def discover_services(self, handle: BleakLink) -> None:
        self._runner.submit(self._discover_services(handle), "service discovery")

    async def _discover_services(self, link: BleakLink) -> None:
        # bleak resolves the service table while connecting.
        try:
            if link.client is None:
                raise BleakError("not connected")
            services = services_from_bleak(link.client.services)
        except BleakError as exc:
            LOGGER.warning("Service discovery failed: %s", exc)
            link.callback.on_services_discovered(link, GATT_FAILURE, ())
            return
        link.callback.on_services_discovered(link, GATT_SUCCESS, services)

    def enable_notification(self, handle: BleakLink, characteristic: GattCharacteristic, enabled: bool) -> bool:
        if enabled:
            handle.notifying[characteristic.uuid] = characteristic.handle
        else:
            handle.notifying.pop(characteristic.uuid, None)
        return True

    def write_descriptor(self, handle: BleakLink, descriptor: GattDescriptor, value: bytes) -> bool:
        if handle.client is None or not handle.connected:
            return False
        self._runner.submit(self._write_descriptor(handle, descriptor, value), "descriptor write")
        return True

    async def _write_descriptor(self, link: BleakLink, descriptor: GattDescriptor, value: bytes) -> None:
        client = link.client
        char_uuid = descriptor.characteristic_uuid
        try:
            if client is None:
                raise BleakError("not connected")
            if descriptor.uuid == CCCD_UUID and value == ENABLE_NOTIFICATION_VALUE:
                # Backends such as BlueZ refuse raw CCCD writes; start_notify performs it.
                specifier = link.notifying.get(char_uuid) or char_uuid
                await client.start_notify(specifier, partial(self._notified, link, char_uuid))
            else:
                await client.write_gatt_descriptor(descriptor.handle, value)
        except (BleakError, OSError) as exc:
            LOGGER.warning("Descriptor %s write failed: %s", descriptor.uuid, exc)
            link.callback.on_descriptor_write(link, descriptor, GATT_FAILURE)
            return
        link.callback.on_descriptor_write(link, descriptor, GATT_SUCCESS)

    def _notified(self, link: BleakLink, char_uuid: str, _sender: Any, data: bytearray) -> None:
        if char_uuid in link.notifying:
            link.callback.on_characteristic_changed(link, char_uuid, bytes(data))

    def disconnect(self, handle: BleakLink) -> None:
        handle.closed = True
        self._runner.submit(self._disconnect(handle), "disconnect")

    async def _disconnect(self, link: BleakLink) -> None:
        if link.client is None or not link.connected:
            return
        try:
            await link.client.disconnect()
        except (BleakError, OSError) as exc:
            LOGGER.warning("BLE disconnect from %s failed: %s", link.device.address, exc)
        if link.connected:
            link.connected = False
            link.callback.on_connection_state_change(link, GATT_SUCCESS, LinkState.DISCONNECTED)

    def close(self) -> None:
        """Stop scanning and shut down the radio's event loop."""
        future = self._runner.submit(self._stop_scan(), "scan stop")
        try:
            future.result(timeout=_THREAD_JOIN_TIMEOUT_S)
        except (BleakError, OSError, TimeoutError) as exc:
            LOGGER.warning("BLE scan stop during close failed: %s", exc)
        self._runner.close()
