"""Shared fakes for the scheduler and radio tests."""

from __future__ import annotations

import struct
from typing import Any, Callable, Optional

import pytest

from ibswatch.models import RawAdvertisement


def reference_modbus_crc(data: bytes) -> int:
    """Plain bitwise CRC-16/MODBUS (reflected polynomial 0xA001)."""
    crc = 0xFFFF
    for byte in data:
        crc ^= byte
        for _ in range(8):
            if crc & 0x0001:
                crc = (crc >> 1) ^ 0xA001
            else:
                crc >>= 1
    return crc


def build_frame(
    temperature: int = 1813,
    humidity: int = 5230,
    external: bool = False,
    battery: int = 80,
    crc: Optional[int] = None,
    second_temperature: Optional[int] = None,
) -> bytes:
    """Build a 9-byte Inkbird manufacturer data frame (raw values in hundredths).

    second_temperature replaces the CRC, as dual-view sensors do in external mode.
    """
    head = struct.pack("<hHB", temperature, humidity, 1 if external else 0)
    if second_temperature is not None:
        tail = struct.pack("<h", second_temperature)
    else:
        tail = struct.pack("<H", reference_modbus_crc(head) if crc is None else crc)
    return head + tail + bytes([battery, 0x08])


def build_advertisement(
    manufacturer_data: Optional[bytes] = None,
    address: str = "49:42:08:00:12:34",
    local_name: Optional[str] = "sps",
    service_data: Any = None,
    service_uuids: tuple[str, ...] = ("fff0",),
) -> RawAdvertisement:
    return RawAdvertisement(
        address=address,
        local_name=local_name,
        manufacturer_data=build_frame() if manufacturer_data is None else manufacturer_data,
        service_data=service_data,
        service_uuids=service_uuids,
    )


class FakeTimerHandle:
    def __init__(self, when: float, callback: Callable[..., None], args: tuple) -> None:
        self.when = when
        self.callback = callback
        self.args = args
        self.cancelled = False
        self.fired = False

    def cancel(self) -> None:
        self.cancelled = True


class FakeTimers:
    """Manual clock with the call_later interface of an event loop."""

    def __init__(self) -> None:
        self.now = 0.0
        self.handles: list[FakeTimerHandle] = []

    def call_later(self, delay: float, callback: Callable[..., None], *args: Any) -> FakeTimerHandle:
        handle = FakeTimerHandle(self.now + delay, callback, args)
        self.handles.append(handle)
        return handle

    @property
    def active(self) -> list[FakeTimerHandle]:
        return [h for h in self.handles if not h.cancelled and not h.fired]

    def advance(self, seconds: float) -> None:
        """Move the clock forward, firing due timers in order."""
        target = self.now + seconds
        while True:
            due = sorted((h for h in self.active if h.when <= target), key=lambda h: h.when)
            if not due:
                break
            handle = due[0]
            self.now = handle.when
            handle.fired = True
            handle.callback(*handle.args)
        self.now = target


class FakeRadio:
    """Stand-in for BleRadio driven by the test."""

    def __init__(self, powered: bool = True) -> None:
        self.powered = powered
        self.owners: set[object] = set()
        self.listeners: list[Any] = []
        self.start_calls = 0
        self.stop_calls = 0

    @property
    def is_scanning(self) -> bool:
        return bool(self.owners)

    def add_listener(self, listener: Any) -> None:
        self.listeners.append(listener)

    def remove_listener(self, listener: Any) -> None:
        if listener in self.listeners:
            self.listeners.remove(listener)

    def start_scan(self, owner: object) -> None:
        self.owners.add(owner)
        self.start_calls += 1

    def stop_scan(self, owner: object) -> None:
        if owner in self.owners:
            self.owners.discard(owner)
            self.stop_calls += 1

    def set_powered(self, powered: bool) -> None:
        self.powered = powered
        for listener in list(self.listeners):
            listener.on_power_change(powered)

    def discover(self, advertisement: RawAdvertisement) -> None:
        for listener in list(self.listeners):
            listener.on_discover(advertisement)


class Recorder:
    """Collects (error, value) pairs passed to a continuation."""

    def __init__(self) -> None:
        self.calls: list[tuple[Any, Any]] = []

    def __call__(self, error: Any, value: Any) -> None:
        self.calls.append((error, value))

    @property
    def value(self) -> Any:
        assert len(self.calls) == 1, f"expected one call, got {self.calls}"
        return self.calls[0][1]


@pytest.fixture
def timers() -> FakeTimers:
    return FakeTimers()


@pytest.fixture
def radio() -> FakeRadio:
    return FakeRadio()


@pytest.fixture
def make_frame() -> Callable[..., bytes]:
    return build_frame


@pytest.fixture
def make_advertisement() -> Callable[..., RawAdvertisement]:
    return build_advertisement


@pytest.fixture
def recorder() -> Callable[[], Recorder]:
    return Recorder


@pytest.fixture
def reference_crc() -> Callable[[bytes], int]:
    return reference_modbus_crc


@pytest.fixture
def radio_off() -> FakeRadio:
    return FakeRadio(powered=False)
