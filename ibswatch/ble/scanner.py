"""Shared BLE radio built on Bleak, with adapter supervision."""

from __future__ import annotations

import asyncio
import logging
import subprocess
import sys
from abc import ABC, abstractmethod
from typing import Any, Callable, Optional

from bleak import BleakScanner as BleakScannerLib
from bleak.backends.device import BLEDevice
from bleak.backends.scanner import AdvertisementData
from bleak.exc import BleakError

from ..models import RawAdvertisement

logger = logging.getLogger(__name__)

IS_MACOS = sys.platform == "darwin"

# Bluetooth base UUID; 16-bit UUIDs are reported in short form
_BASE_UUID_PREFIX = "0000"
_BASE_UUID_SUFFIX = "-0000-1000-8000-00805f9b34fb"


def short_uuid(uuid: str) -> str:
    """Shorten a 128-bit UUID built on the Bluetooth base UUID to 4 hex digits."""
    uuid = uuid.lower()
    if len(uuid) == 36 and uuid.startswith(_BASE_UUID_PREFIX) and uuid.endswith(_BASE_UUID_SUFFIX):
        return uuid[4:8]
    return uuid


def _current_entry(entries: dict[int, bytes], previous: Optional[dict[int, bytes]]) -> tuple[int, bytes]:
    """Pick the manufacturer data entry carried by this advertisement.

    BlueZ accumulates entries per device, and an Inkbird "company id" changes
    with the temperature, so older frames stay in the dict. The last entry
    that is new or changed since the previous advertisement wins; with
    nothing changed (or no history) the last entry is used.
    """
    items = list(entries.items())
    if previous:
        changed = [(key, value) for key, value in items if previous.get(key) != value]
        if changed:
            return changed[-1]
    return items[-1]


def advertisement_from_bleak(
    device: BLEDevice,
    advertisement_data: AdvertisementData,
    previous: Optional[dict[int, bytes]] = None,
) -> RawAdvertisement:
    """Convert a Bleak detection into a RawAdvertisement.

    Bleak splits manufacturer data into a company id (bytes 0-1) and the
    rest. Inkbird sensors put the temperature where the company id would
    be, so the current entry is joined back into the full frame. previous
    is the manufacturer data dict of the same device seen last time.
    """
    manufacturer_data = b""
    if advertisement_data.manufacturer_data:
        company_id, payload = _current_entry(advertisement_data.manufacturer_data, previous)
        manufacturer_data = company_id.to_bytes(2, "little") + bytes(payload)

    return RawAdvertisement(
        address=device.address.lower(),
        local_name=advertisement_data.local_name,
        manufacturer_data=manufacturer_data,
        service_data=advertisement_data.service_data or None,
        service_uuids=tuple(short_uuid(u) for u in advertisement_data.service_uuids or ()),
        rssi=advertisement_data.rssi,
    )


class RadioListener(ABC):
    """Receiver of radio power and discovery events."""

    @abstractmethod
    def on_power_change(self, powered: bool) -> None:
        """Called when the adapter is found powered on or lost."""
        pass

    @abstractmethod
    def on_discover(self, advertisement: RawAdvertisement) -> None:
        """Called for every advertisement seen while the radio scans."""
        pass


class BleRadio:
    """One BLE adapter shared by every sensor in the process.

    Scanning is scoped per owner: the underlying scanner runs while at
    least one owner holds a scan, and only an owner can release its own
    hold. A supervisor task applies start/stop requests and probes the
    adapter while it is powered off.
    """

    # Probe interval while the adapter is off
    POWER_CHECK_INTERVAL_SECONDS = 5

    # Timeout for stop() operation - don't let it hang forever
    STOP_TIMEOUT_SECONDS = 10

    # Power cycle the adapter after this many failed probes
    RESET_AFTER_FAILURES = 3

    def __init__(
        self,
        scanner_factory: Optional[Callable[[Callable[..., None]], Any]] = None,
    ) -> None:
        self._scanner_factory = scanner_factory or (
            lambda callback: BleakScannerLib(detection_callback=callback)
        )
        self._scanner: Optional[Any] = None
        self._listeners: list[RadioListener] = []
        self._owners: set[object] = set()
        self._powered = False
        self._running = False
        self._wakeup: Optional[asyncio.Event] = None
        # Last manufacturer data dict per device address
        self._seen_manufacturer_data: dict[str, dict[int, bytes]] = {}

    @property
    def powered(self) -> bool:
        """True while the adapter accepts scan requests."""
        return self._powered

    @property
    def is_scanning(self) -> bool:
        """True while the underlying scanner runs."""
        return self._scanner is not None

    @property
    def owners(self) -> frozenset:
        return frozenset(self._owners)

    def add_listener(self, listener: RadioListener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def remove_listener(self, listener: RadioListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def start_scan(self, owner: object) -> None:
        """Hold a scan on behalf of owner."""
        if owner not in self._owners:
            self._owners.add(owner)
            logger.debug("Scan requested (%d holders)", len(self._owners))
        self._request_sync()

    def stop_scan(self, owner: object) -> None:
        """Release the scan held by owner; no-op for non-holders."""
        if owner not in self._owners:
            return
        self._owners.discard(owner)
        logger.debug("Scan released (%d holders)", len(self._owners))
        self._request_sync()

    def _request_sync(self) -> None:
        if self._wakeup is not None:
            self._wakeup.set()

    def _set_powered(self, powered: bool) -> None:
        if powered == self._powered:
            return
        self._powered = powered
        if powered:
            logger.info("Bluetooth adapter powered on")
        else:
            logger.critical("Bluetooth adapter went off")

        for listener in list(self._listeners):
            listener.on_power_change(powered)

    def _detection_callback(
        self,
        device: BLEDevice,
        advertisement_data: AdvertisementData,
    ) -> None:
        """Forward a detected advertisement to all listeners."""
        previous = self._seen_manufacturer_data.get(device.address)
        try:
            advertisement = advertisement_from_bleak(device, advertisement_data, previous)
        except Exception as e:
            logger.warning("Error converting advertisement from %s: %s", device.address, e)
            return
        if advertisement_data.manufacturer_data:
            self._seen_manufacturer_data[device.address] = dict(advertisement_data.manufacturer_data)

        for listener in list(self._listeners):
            try:
                listener.on_discover(advertisement)
            except Exception:
                logger.exception(
                    "Listener failed on advertisement from %s (%s)",
                    advertisement.address,
                    advertisement.manufacturer_data.hex(),
                )

    async def _start_scanner(self) -> None:
        """Create a fresh scanner instance and start it."""
        scanner = self._scanner_factory(self._detection_callback)
        await scanner.start()
        self._scanner = scanner

    async def _stop_scanner_safe(self) -> None:
        """Stop scanner with timeout protection."""
        if self._scanner is None:
            return

        try:
            await asyncio.wait_for(
                self._scanner.stop(),
                timeout=self.STOP_TIMEOUT_SECONDS,
            )
        except asyncio.TimeoutError:
            logger.warning("Scanner stop() timed out after %ds", self.STOP_TIMEOUT_SECONDS)
        except Exception as e:
            logger.debug("Error stopping scanner: %s", e)
        finally:
            self._scanner = None

    async def _reset_bluetooth_adapter(self) -> None:
        """Reset Bluetooth adapter to recover from stuck state.

        Uses bluetoothctl (D-Bus) which works without sudo when user
        is in bluetooth group. Skipped on macOS where Core Bluetooth
        manages the adapter.
        """
        if IS_MACOS:
            logger.debug("Skipping adapter reset on macOS")
            return

        try:
            subprocess.run(
                ["bluetoothctl", "power", "off"],
                capture_output=True,
                timeout=5,
            )
            await asyncio.sleep(1)

            subprocess.run(
                ["bluetoothctl", "power", "on"],
                capture_output=True,
                timeout=5,
            )
            await asyncio.sleep(2)

            logger.info("Bluetooth adapter power cycled via bluetoothctl")
        except (subprocess.TimeoutExpired, OSError) as e:
            logger.debug("bluetoothctl failed: %s", e)

    async def _probe(self) -> None:
        """Check whether the adapter can scan; raises BleakError if not."""
        await self._start_scanner()
        if not self._owners:
            await self._stop_scanner_safe()
        self._set_powered(True)

    async def _apply_scan_state(self) -> None:
        """Start or stop the scanner to match the current holders."""
        if self._owners and self._scanner is None:
            await self._start_scanner()
            logger.debug("BLE scan started")
        elif not self._owners and self._scanner is not None:
            await self._stop_scanner_safe()
            logger.debug("BLE scan stopped")

    async def _wait_for_change(self, timeout: float) -> None:
        assert self._wakeup is not None
        try:
            await asyncio.wait_for(self._wakeup.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            pass

    async def run_with_restart(self) -> None:
        """Supervise the adapter until stopped.

        While powered off the adapter is probed every
        POWER_CHECK_INTERVAL_SECONDS; a failing start marks it off
        again and repeated failures power cycle it.
        """
        self._wakeup = asyncio.Event()
        self._running = True
        failures = 0

        while self._running:
            self._wakeup.clear()
            try:
                if not self._powered:
                    await self._probe()
                else:
                    await self._apply_scan_state()
                failures = 0

            except asyncio.CancelledError:
                logger.info("BLE radio cancelled")
                await self._stop_scanner_safe()
                return

            except Exception as e:
                failures += 1
                if not isinstance(e, BleakError):
                    logger.error("BLE radio error: %s", e)
                elif self._powered or failures == 1:
                    logger.warning("Bluetooth adapter not available: %s", e)
                await self._stop_scanner_safe()
                self._set_powered(False)

                if failures >= self.RESET_AFTER_FAILURES:
                    await self._reset_bluetooth_adapter()
                    failures = 0

            if not self._running:
                break

            try:
                if self._powered:
                    # Idle until a holder changes; re-check now and then
                    await self._wait_for_change(self.POWER_CHECK_INTERVAL_SECONDS * 12)
                else:
                    await asyncio.sleep(self.POWER_CHECK_INTERVAL_SECONDS)
            except asyncio.CancelledError:
                logger.info("BLE radio cancelled")
                await self._stop_scanner_safe()
                return

        await self._stop_scanner_safe()
        logger.info("BLE radio stopped")

    async def stop(self) -> None:
        """Stop supervision and scanning."""
        self._running = False
        self._request_sync()
        await self._stop_scanner_safe()
