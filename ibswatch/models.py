"""Data models for ibswatch."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional, Union

# Battery level (%) below which the sensor reports low battery
LOW_BATTERY_THRESHOLD = 10


class SensorSelection(Enum):
    """Which temperature probe is reported as "the" temperature."""

    AUTO = "auto"
    INTERNAL = "internal"
    EXTERNAL = "external"


class Quantity(Enum):
    """Quantities a caller can request from a sensor."""

    TEMPERATURE = "temperature"
    HUMIDITY = "humidity"
    EXTERNAL_SENSOR = "external_sensor"
    BATTERY_LEVEL = "battery_level"
    LOW_BATTERY = "low_battery"


class SchedulerState(Enum):
    """States of the poll scheduler."""

    RADIO_OFF = "radio_off"
    IDLE = "idle"
    SCANNING = "scanning"
    READING_READY = "reading_ready"


class CrcOutcome(Enum):
    """Result of the checksum step of a decode."""

    OK = "ok"
    MISMATCH = "mismatch"
    # Dual-view frames in external mode carry a second temperature instead of a CRC
    NOT_CHECKED = "not_checked"
    # Unlisted model: mismatch tolerated, data kept
    SKIPPED = "skipped"


@dataclass(frozen=True)
class SensorVariant:
    """Static advertisement shape of a supported sensor model."""

    data_length: int
    local_name: str
    service_data: Optional[Any]
    service_uuids: tuple[str, ...]
    dual_view: bool = False

    def shape(self) -> tuple:
        """Tuple compared by the plausibility filter."""
        return (self.data_length, self.local_name, self.service_data, self.service_uuids)


class Unchecked(Enum):
    """Sentinel variant: no plausibility and no CRC checking."""

    UNCHECKED = "not in list - try it anyway"


UNCHECKED = Unchecked.UNCHECKED

Variant = Union[SensorVariant, Unchecked]

_INKBIRD_SINGLE = SensorVariant(9, "sps", None, ("fff0",), dual_view=False)
_INKBIRD_DUAL = SensorVariant(9, "sps", None, ("fff0",), dual_view=True)

MODELS: dict[str, Variant] = {
    "IBS-TH1": _INKBIRD_SINGLE,
    "IBS-TH1-Plus": _INKBIRD_DUAL,
    "IBS-TH2": _INKBIRD_SINGLE,
    "IBS-TH2-Plus": _INKBIRD_DUAL,
    UNCHECKED.value: UNCHECKED,
}


def is_known_model(model: str) -> bool:
    """Check if the model name is listed (the unchecked entry counts as listed)."""
    return model in MODELS


def resolve_variant(model: str) -> Variant:
    """Look up a model name; unknown names fall back to UNCHECKED."""
    return MODELS.get(model, UNCHECKED)


@dataclass(frozen=True)
class RawAdvertisement:
    """One advertisement as delivered by the radio."""

    address: str
    local_name: Optional[str]
    manufacturer_data: bytes
    service_data: Optional[Any] = None
    service_uuids: tuple[str, ...] = ()
    rssi: Optional[int] = None

    def shape(self) -> tuple:
        return (len(self.manufacturer_data), self.local_name, self.service_data, self.service_uuids)


@dataclass
class DecodedReading:
    """Sensor state decoded from one advertisement.

    Temperatures are absent when the frame failed its CRC check.
    """

    crc: Optional[CrcOutcome] = None
    internal_temperature: Optional[float] = None
    external_temperature: Optional[float] = None
    temperature: Optional[float] = None
    humidity: Optional[float] = None
    external_sensor: Optional[bool] = None
    battery: Optional[int] = None
    timestamp: datetime = field(default_factory=datetime.now, compare=False)

    @property
    def low_battery(self) -> Optional[bool]:
        if self.battery is None:
            return None
        return self.battery < LOW_BATTERY_THRESHOLD

    @property
    def has_data(self) -> bool:
        """True if the reading carries at least one measured value."""
        return self.temperature is not None or self.humidity is not None

    def value(self, quantity: Quantity) -> Any:
        """Return the value delivered to a caller asking for quantity."""
        if quantity is Quantity.TEMPERATURE:
            return self.temperature
        if quantity is Quantity.HUMIDITY:
            return self.humidity
        if quantity is Quantity.EXTERNAL_SENSOR:
            return self.external_sensor
        if quantity is Quantity.BATTERY_LEVEL:
            return self.battery
        return self.low_battery


@dataclass(frozen=True)
class CalibrationOffsets:
    """Per-channel offsets in hundredths of the native unit."""

    int_temperature: int = 0
    ext_temperature: int = 0
    int_humidity: int = 0


@dataclass
class SensorConfig:
    """Configuration for a single sensor."""

    name: str
    model: str = ""
    mac_address: str = ""
    update_interval: Optional[int] = None
    sensor: SensorSelection = SensorSelection.AUTO
    offsets: CalibrationOffsets = field(default_factory=CalibrationOffsets)
    loglevel: int = 3

    def __post_init__(self) -> None:
        self.mac_address = (self.mac_address or "").lower()
        if isinstance(self.sensor, str):
            self.sensor = SensorSelection(self.sensor)

    @property
    def variant(self) -> Variant:
        return resolve_variant(self.model)


@dataclass
class AppConfig:
    """Application configuration."""

    sensors: list[SensorConfig] = field(default_factory=list)
    api_port: Optional[int] = None
