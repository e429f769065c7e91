"""Poll scheduler: the discovery/decode state machine of one sensor."""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Any, Callable, Optional

from .ble.parsers import InkbirdParser
from .ble.plausibility import Reason, accept
from .ble.reading_cache import ReadingCache
from .ble.scanner import BleRadio, RadioListener
from .models import (
    MODELS,
    UNCHECKED,
    DecodedReading,
    Quantity,
    RawAdvertisement,
    SchedulerState,
    SensorConfig,
    is_known_model,
)

# Retry interval while the radio is off
RADIO_RETRY_SECONDS = 5
# Maximum time a scan waits for the sensor
SCAN_TIMEOUT_SECONDS = 15
# A decoded reading stays current for at least this long
MIN_FRESHNESS_SECONDS = 10
# Lower bound of the auto-refresh interval
MIN_UPDATE_INTERVAL_SECONDS = 5

# loglevel setting (0-4) to logging level
LOG_LEVELS = [logging.CRITICAL, logging.ERROR, logging.WARNING, logging.INFO, logging.DEBUG]
DEFAULT_LOG_LEVEL = 3

Callback = Callable[[Optional[Exception], Any], None]


class Trigger(Enum):
    """Input fed into one run of the state machine."""

    NONE = "none"
    TIMEOUT = "timeout"
    DISCOVERED = "discovered"
    REQUEST = "request"
    POWER = "power"


class PollScheduler(RadioListener):
    """Discovery/decode state machine for one sensor.

    Callers request quantities; each request is a one-shot continuation
    called as callback(None, value) where value is None when no reading
    is available. One slot is held per quantity, a newer request for the
    same quantity replaces the older one.

    All methods run on the event loop. After every state change the new
    state is evaluated immediately until the state settles.
    """

    def __init__(
        self,
        config: SensorConfig,
        radio: BleRadio,
        timers: Optional[Any] = None,
        on_update: Optional[Callable[[str, DecodedReading], None]] = None,
    ) -> None:
        self._config = config
        self._radio = radio
        # Anything with call_later(delay, callback) returning a cancellable handle
        self._timers = timers
        self._on_update = on_update
        self._log = logging.getLogger(f"{__name__}.{config.name}")
        self._log_level = DEFAULT_LOG_LEVEL
        self.set_log_level(config.loglevel)

        self._variant = config.variant
        if not is_known_model(config.model):
            self._log.error(
                "Invalid sensor type %r, checks disabled. Valid types: %s",
                config.model,
                ", ".join(name for name, variant in MODELS.items() if variant is not UNCHECKED),
            )

        self._parser = InkbirdParser(
            self._variant,
            offsets=config.offsets,
            selection=config.sensor,
            log=self._log,
        )
        self._log.debug("Using sensor: %s", self._parser.selection.value)

        self._address = config.mac_address
        self._update_interval: Optional[int] = None
        if config.update_interval is not None:
            self._update_interval = max(MIN_UPDATE_INTERVAL_SECONDS, int(config.update_interval))
            self._log.info("Update interval %ds", self._update_interval)

        self._cache = ReadingCache()
        self._state = SchedulerState.RADIO_OFF
        self._timer: Optional[Any] = None
        self._pending: dict[Quantity, Callback] = {}
        # Futures awaiting the reading of the next completed cycle
        self._cycle_waiters: list[asyncio.Future] = []
        self._query_started = False
        self._raw: Optional[bytes] = None
        self._busy = False
        self._started = False

        self._handlers = {
            SchedulerState.RADIO_OFF: self._run_radio_off,
            SchedulerState.IDLE: self._run_idle,
            SchedulerState.SCANNING: self._run_scanning,
            SchedulerState.READING_READY: self._run_reading_ready,
        }

    @property
    def name(self) -> str:
        return self._config.name

    @property
    def config(self) -> SensorConfig:
        return self._config

    @property
    def state(self) -> SchedulerState:
        return self._state

    @property
    def cache(self) -> ReadingCache:
        return self._cache

    @property
    def reading(self) -> Optional[DecodedReading]:
        """The cached reading, None before the first scan cycle."""
        return self._cache.latest

    @property
    def log_level(self) -> int:
        return self._log_level

    def set_log_level(self, level: int) -> int:
        """Set the loglevel (0 = fatal .. 4 = debug), clamped to range."""
        level = int(level)
        if level < 0:
            self._log.warning("Log level %d too low. Setting to 0 (fatal)", level)
            level = 0
        elif level >= len(LOG_LEVELS):
            self._log.warning("Log level %d too high. Setting to %d (debug)", level, len(LOG_LEVELS) - 1)
            level = len(LOG_LEVELS) - 1

        self._log_level = level
        self._log.setLevel(LOG_LEVELS[level])
        return level

    def start(self) -> None:
        """Subscribe to the radio and run the state machine once."""
        if self._started:
            return
        if self._timers is None:
            self._timers = asyncio.get_running_loop()
        self._started = True
        self._radio.add_listener(self)
        self._run(Trigger.NONE)

    def close(self) -> None:
        """Unsubscribe, release the radio and cancel the timer.

        Requests still pending are answered with no value.
        """
        self._started = False
        self._radio.remove_listener(self)
        self._radio.stop_scan(self)
        self._cancel_timer()
        self._query_started = False
        self._answer_empty()

    def request(self, quantity: Quantity, callback: Callback) -> None:
        """Ask for a fresh value of quantity; callback is called exactly once."""
        self._log.debug("Start getting %s", quantity.value)
        if quantity in self._pending:
            self._log.debug("Replacing pending %s request", quantity.value)
        self._pending[quantity] = callback
        self._start_query()

    def _start_query(self) -> None:
        self._query_started = True
        # A callback issuing a new request: the running pass picks it up
        if self._started and not self._busy:
            self._run(Trigger.REQUEST)

    def get_temperature(self, callback: Callback) -> None:
        self.request(Quantity.TEMPERATURE, callback)

    def get_humidity(self, callback: Callback) -> None:
        self.request(Quantity.HUMIDITY, callback)

    def get_external_sensor(self, callback: Callback) -> None:
        self.request(Quantity.EXTERNAL_SENSOR, callback)

    def get_battery_level(self, callback: Callback) -> None:
        self.request(Quantity.BATTERY_LEVEL, callback)

    def get_low_battery(self, callback: Callback) -> None:
        self.request(Quantity.LOW_BATTERY, callback)

    async def read(self, quantity: Quantity) -> Any:
        """Await a fresh value of quantity (None when unavailable)."""
        future = asyncio.get_running_loop().create_future()
        previous = self._pending.get(quantity)

        def _resolve(error: Optional[Exception], value: Any) -> None:
            # Keep an earlier caller of the same slot answered as well
            if previous is not None:
                previous(error, value)
            if not future.done():
                future.set_result(value)

        self.request(quantity, _resolve)
        return await future

    async def refresh(self) -> DecodedReading:
        """Start a scan cycle and await its reading.

        Unlike read(), a cached reading is never returned: the result comes
        from the cycle started (or already running) after the call. While
        the radio is off the result is an empty reading.
        """
        future = asyncio.get_running_loop().create_future()
        self._cycle_waiters.append(future)
        self._start_query()
        return await future

    def on_power_change(self, powered: bool) -> None:
        self._run(Trigger.POWER)

    def on_discover(self, advertisement: RawAdvertisement) -> None:
        self._run(Trigger.DISCOVERED, advertisement)

    def _on_timer(self) -> None:
        self._timer = None
        self._run(Trigger.TIMEOUT)

    def _arm_timer(self, delay: float) -> None:
        self._cancel_timer()
        self._timer = self._timers.call_later(delay, self._on_timer)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _run(
        self,
        trigger: Trigger,
        advertisement: Optional[RawAdvertisement] = None,
    ) -> None:
        """Run the state machine until the state settles."""
        self._busy = True
        try:
            if not self._radio.powered and self._state is not SchedulerState.RADIO_OFF:
                self._log.critical("Bluetooth low energy hardware went off")
                self._radio.stop_scan(self)
                self._state = SchedulerState.RADIO_OFF

            while True:
                old_state = self._state
                self._handlers[old_state](trigger, advertisement)
                # Events are consumed by the first pass
                trigger = Trigger.NONE
                advertisement = None

                if self._state is old_state:
                    break
                self._log.debug("State %s -> %s", old_state.value, self._state.value)
        finally:
            self._busy = False

    def _run_radio_off(self, trigger: Trigger, advertisement: Optional[RawAdvertisement]) -> None:
        self._cancel_timer()

        if self._radio.powered:
            self._log.debug("Bluetooth low energy hardware powered on")
            self._state = SchedulerState.IDLE
            return

        # Cleared first so a request issued from a callback starts a new query
        self._query_started = False
        self._answer_empty()

        self._log.warning("Waiting for bluetooth low energy hardware to power on")
        self._arm_timer(RADIO_RETRY_SECONDS)

    def _run_idle(self, trigger: Trigger, advertisement: Optional[RawAdvertisement]) -> None:
        self._cancel_timer()

        if self._query_started or self._update_interval is not None:
            self._log.debug("Start scanning for bluetooth sensor")
            self._radio.start_scan(self)
            self._arm_timer(SCAN_TIMEOUT_SECONDS)
            self._state = SchedulerState.SCANNING

    def _run_scanning(self, trigger: Trigger, advertisement: Optional[RawAdvertisement]) -> None:
        self._raw = None

        if trigger is Trigger.DISCOVERED and advertisement is not None:
            self._check_advertisement(advertisement)

        if trigger is not Trigger.TIMEOUT and self._raw is None:
            return

        if self._raw is None:
            self._log.warning("Peripheral NOT found - stop scanning")
            reading = DecodedReading()
        else:
            reading = self._parser.decode(self._raw)

        self._radio.stop_scan(self)
        self._cancel_timer()
        self._cache.update(reading)
        self._query_started = False

        freshness = max(self._update_interval or 0, MIN_FRESHNESS_SECONDS)
        self._arm_timer(freshness)
        self._state = SchedulerState.READING_READY

        self._resolve_waiters(reading)
        if self._on_update:
            self._on_update(self.name, reading)

    def _check_advertisement(self, advertisement: RawAdvertisement) -> None:
        result = accept(advertisement, self._variant, self._address)

        if result:
            self._raw = advertisement.manufacturer_data
            self._log.info("Peripheral with MAC %s found - stop scanning", advertisement.address)
            self._log.debug("ManufacturerData is %s", advertisement.manufacturer_data.hex())
        elif result.reason is Reason.SHAPE_MISMATCH:
            if self._address:
                self._log.error(
                    "Peripheral with MAC %s found, but plausibility check failed. Expected %s, but found %s",
                    advertisement.address,
                    result.expected,
                    result.found,
                )
            else:
                self._log.debug(
                    "Ignoring peripheral %s %s, ManufacturerData is %s",
                    advertisement.address,
                    result.found,
                    advertisement.manufacturer_data.hex(),
                )

    def _run_reading_ready(self, trigger: Trigger, advertisement: Optional[RawAdvertisement]) -> None:
        self._service_pending(self._cache.latest or DecodedReading())

        # A new query while a reading is current forces an extra refresh,
        # also when the cyclic update is active.
        if trigger is Trigger.TIMEOUT or self._query_started:
            self._state = SchedulerState.IDLE

    def _service_pending(self, reading: DecodedReading) -> None:
        """Answer every pending request once, in Quantity order."""
        for quantity in Quantity:
            callback = self._pending.pop(quantity, None)
            if callback is None:
                continue
            value = reading.value(quantity)
            self._log.info("Sending %s %s", quantity.value, value)
            callback(None, value)

    def _resolve_waiters(self, reading: DecodedReading) -> None:
        waiters, self._cycle_waiters = self._cycle_waiters, []
        for future in waiters:
            if not future.done():
                future.set_result(reading)

    def _answer_empty(self) -> None:
        """Answer every pending request and cycle waiter with no value."""
        reading = DecodedReading()
        self._service_pending(reading)
        self._resolve_waiters(reading)
