"""Inkbird IBS-TH1/TH2 (and Plus) manufacturer data decoder."""

from __future__ import annotations

import logging
import struct
from datetime import datetime
from typing import Optional

from ...models import (
    UNCHECKED,
    CalibrationOffsets,
    CrcOutcome,
    DecodedReading,
    SensorSelection,
    SensorVariant,
    Variant,
)
from ..crc import crc16_modbus

logger = logging.getLogger(__name__)

FRAME_LENGTH = 9

# Bytes 0-4 (temperature, humidity, sensor flag) are covered by the CRC
CRC_OFFSET = 0
CRC_LENGTH = 5

# Absolute zero and humidity bounds in hundredths
MIN_TEMPERATURE_RAW = -27315
MIN_HUMIDITY_RAW = 0
MAX_HUMIDITY_RAW = 10000


def _to_celsius(raw: int) -> float:
    return max(raw, MIN_TEMPERATURE_RAW) / 100


def _to_percent(raw: int) -> float:
    return min(max(raw, MIN_HUMIDITY_RAW), MAX_HUMIDITY_RAW) / 100


class InkbirdParser:
    """Decoder for the 9-byte Inkbird advertisement frame.

    Format (little-endian):
    - Bytes 0-1: Temperature (int16, 0.01°C per unit)
    - Bytes 2-3: Humidity (uint16, 0.01% per unit)
    - Byte 4: Sensor flag (0 = internal, 1 = external probe)
    - Bytes 5-6: CRC-16/MODBUS over bytes 0-4 (uint16)
    - Byte 7: Battery (%)
    - Byte 8: Unused

    Dual-view models in external mode put the internal temperature in
    bytes 0-1 and the external temperature (int16) in bytes 5-6 instead
    of a CRC.
    """

    def __init__(
        self,
        variant: Variant,
        offsets: Optional[CalibrationOffsets] = None,
        selection: SensorSelection = SensorSelection.AUTO,
        log: Optional[logging.Logger] = None,
    ) -> None:
        self._variant = variant
        self._offsets = offsets or CalibrationOffsets()
        self._dual_view = isinstance(variant, SensorVariant) and variant.dual_view
        # Probe selection only makes sense when both probes can be reported
        self._selection = selection if self._dual_view else SensorSelection.AUTO
        self._log = log or logger

    @property
    def selection(self) -> SensorSelection:
        return self._selection

    def decode(self, data: bytes) -> DecodedReading:
        """Decode one manufacturer data buffer.

        Returns a reading whose crc outcome is MISMATCH (and no values)
        when a listed model fails its checksum.

        Raises:
            IndexError: if data is shorter than the frame
        """
        if len(data) < FRAME_LENGTH:
            raise IndexError(
                f"Inkbird frame needs {FRAME_LENGTH} bytes, got {len(data)}"
            )

        now = datetime.now()
        temp_raw, humidity_raw, sensor_flag = struct.unpack_from("<hHB", data, 0)
        external = sensor_flag == 1
        offsets = self._offsets

        internal_temperature: Optional[float] = None
        external_temperature: Optional[float] = None

        if self._dual_view and external:
            second_raw = struct.unpack_from("<h", data, 5)[0]
            internal_temperature = _to_celsius(temp_raw + offsets.int_temperature)
            external_temperature = _to_celsius(second_raw + offsets.ext_temperature)
            crc_outcome = CrcOutcome.NOT_CHECKED
            self._log.debug(
                "Dual view sensor - no CRC, internal temperature %s°C, external temperature %s°C",
                internal_temperature,
                external_temperature,
            )
        else:
            expected = crc16_modbus(data, CRC_OFFSET, CRC_LENGTH)
            found = struct.unpack_from("<H", data, 5)[0]

            if expected == found:
                crc_outcome = CrcOutcome.OK
                self._log.debug("CRC ok (%04x)", expected)
            elif self._variant is UNCHECKED:
                crc_outcome = CrcOutcome.SKIPPED
                self._log.debug("CRC not matching (expected %04x, found %04x), model unchecked", expected, found)
            else:
                self._log.warning(
                    "CRC error (expected %04x, found %04x). Ignoring data",
                    expected,
                    found,
                )
                return DecodedReading(crc=CrcOutcome.MISMATCH, timestamp=now)

            if external:
                external_temperature = _to_celsius(temp_raw + offsets.ext_temperature)
            else:
                internal_temperature = _to_celsius(temp_raw + offsets.int_temperature)

        reading = DecodedReading(
            crc=crc_outcome,
            internal_temperature=internal_temperature,
            external_temperature=external_temperature,
            humidity=_to_percent(humidity_raw + offsets.int_humidity),
            external_sensor=external,
            battery=data[7],
            timestamp=now,
        )
        self._select_temperature(reading)

        self._log.debug(
            "Temperature %s°C (%s sensor), humidity %s%%, battery %d%% (%s)",
            reading.temperature,
            "external" if reading.external_sensor else "internal",
            reading.humidity,
            reading.battery,
            "low" if reading.low_battery else "ok",
        )
        return reading

    def _select_temperature(self, reading: DecodedReading) -> None:
        """Resolve the reported temperature according to the selection policy."""
        if self._selection is SensorSelection.AUTO:
            if reading.external_sensor:
                reading.temperature = reading.external_temperature
            else:
                reading.temperature = reading.internal_temperature
        elif self._selection is SensorSelection.INTERNAL:
            reading.external_sensor = False
            reading.temperature = reading.internal_temperature
        else:
            reading.external_sensor = True
            reading.temperature = reading.external_temperature
