from __future__ import annotations

from collections.abc import Callable

import pytest

from thermolink.core.gate import PolicyGate
from thermolink.core.model import (
    GATT_SUCCESS,
    DeviceIdentity,
    EventKind,
    GattCharacteristic,
    GattDescriptor,
    GattProfile,
    GattService,
    LinkState,
    TelemetryEvent,
)

SERVICE_UUID = "12345678-1234-1234-1234-1234567890ab"
CHARACTERISTIC_UUID = "abcd1234-ab12-cd34-ef56-abcdef123456"
CCCD_UUID = "00002902-0000-1000-8000-00805f9b34fb"


def thermo_services(*, characteristic: bool = True, cccd: bool = True) -> tuple[GattService, ...]:
    descriptors = (GattDescriptor(uuid=CCCD_UUID, characteristic_uuid=CHARACTERISTIC_UUID),) if cccd else ()
    characteristics = (GattCharacteristic(uuid=CHARACTERISTIC_UUID, descriptors=descriptors),) if characteristic else ()
    return (
        GattService(uuid="00001800-0000-1000-8000-00805f9b34fb"),
        GattService(uuid=SERVICE_UUID, characteristics=characteristics),
    )


class FakeHandle:
    def __init__(self, device: DeviceIdentity) -> None:
        self.device = device


class FakeRadio:
    """Scripted radio. With `auto` set, link callbacks fire synchronously from inside each call."""

    def __init__(self) -> None:
        self.calls: list[str] = []
        self.auto = True
        self.scan_failure: int | str | None = None
        self.connect_status = GATT_SUCCESS
        self.connect_state = LinkState.CONNECTED
        self.discovery_status = GATT_SUCCESS
        self.services = thermo_services()
        self.write_ok = True
        self.on_result: Callable[[DeviceIdentity, str | None], None] | None = None
        self.on_failure: Callable[[int | str], None] | None = None
        self.callback = None
        self.handle: FakeHandle | None = None
        self.notifications: dict[str, bool] = {}

    def count(self, name: str) -> int:
        return self.calls.count(name)

    def start_scan(self, on_result, on_failure) -> None:
        self.calls.append("start_scan")
        self.on_result = on_result
        self.on_failure = on_failure
        if self.scan_failure is not None:
            on_failure(self.scan_failure)

    def stop_scan(self) -> None:
        self.calls.append("stop_scan")

    def advertise(self, name: str | None, address: str = "24:0A:C4:00:11:22") -> DeviceIdentity:
        device = DeviceIdentity(address=address, name=name or "")
        assert self.on_result is not None
        self.on_result(device, name)
        return device

    def connect(self, device: DeviceIdentity, callback) -> FakeHandle:
        self.calls.append("connect")
        self.callback = callback
        self.handle = FakeHandle(device)
        if self.auto:
            callback.on_connection_state_change(self.handle, self.connect_status, self.connect_state)
        return self.handle

    def discover_services(self, handle) -> None:
        self.calls.append("discover_services")
        if self.auto:
            self.callback.on_services_discovered(handle, self.discovery_status, self.services)

    def enable_notification(self, handle, characteristic, enabled: bool) -> bool:
        self.calls.append("enable_notification")
        self.notifications[characteristic.uuid] = enabled
        return True

    def write_descriptor(self, handle, descriptor, value: bytes) -> bool:
        self.calls.append("write_descriptor")
        return self.write_ok

    def disconnect(self, handle) -> None:
        self.calls.append("disconnect")
        if self.auto:
            self.callback.on_connection_state_change(handle, GATT_SUCCESS, LinkState.DISCONNECTED)

    def notify(self, value: bytes, characteristic_uuid: str = CHARACTERISTIC_UUID) -> None:
        self.callback.on_characteristic_changed(self.handle, characteristic_uuid, value)

    def drop_link(self, status: int = GATT_SUCCESS) -> None:
        self.callback.on_connection_state_change(self.handle, status, LinkState.DISCONNECTED)


class ManualTimer:
    def __init__(self, delay_s: float, callback: Callable[[], None]) -> None:
        self.delay_s = delay_s
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    def __init__(self) -> None:
        self.timers: list[ManualTimer] = []

    def call_later(self, delay_s: float, callback: Callable[[], None]) -> ManualTimer:
        timer = ManualTimer(delay_s, callback)
        self.timers.append(timer)
        return timer

    def fire_all(self) -> None:
        for timer in list(self.timers):
            if not timer.cancelled:
                timer.callback()


class RecordingSink:
    def __init__(self) -> None:
        self.events: list[TelemetryEvent] = []

    def emit(self, event: TelemetryEvent) -> None:
        self.events.append(event)

    @property
    def kinds(self) -> list[EventKind]:
        return [event.kind for event in self.events]


@pytest.fixture
def profile() -> GattProfile:
    return GattProfile(
        service_uuid=SERVICE_UUID,
        characteristic_uuid=CHARACTERISTIC_UUID,
        cccd_uuid=CCCD_UUID,
    )


@pytest.fixture
def radio() -> FakeRadio:
    return FakeRadio()


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def gate() -> PolicyGate:
    return PolicyGate()


@pytest.fixture
def device() -> DeviceIdentity:
    return DeviceIdentity(address="24:0A:C4:00:11:22", name="ESP32-Thermo")


@pytest.fixture
def isolated_config(monkeypatch: pytest.MonkeyPatch, tmp_path):
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "cfg"))
    return tmp_path / "cfg" / "thermolink" / "config.yaml"


@pytest.fixture
def make_services():
    return thermo_services
