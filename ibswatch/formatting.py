"""Shared formatting helpers for console and API output."""

from __future__ import annotations

from typing import Optional

from .models import DecodedReading


def format_age(seconds: Optional[float]) -> str:
    """Format age in seconds to short human-readable string (e.g. '5min', '2h')."""
    if seconds is None:
        return "-"
    if seconds < 60:
        return f"{int(seconds)}s"
    elif seconds < 3600:
        return f"{int(seconds / 60)}min"
    else:
        return f"{int(seconds / 3600)}h"


def format_temperature(value: Optional[float]) -> str:
    if value is None:
        return "-"
    return f"{value:.1f}C"


def format_humidity(value: Optional[float]) -> str:
    if value is None:
        return "-"
    return f"{value:.0f}%"


def format_battery(reading: Optional[DecodedReading]) -> str:
    """Battery level with a marker when low."""
    if reading is None or reading.battery is None:
        return "-"
    if reading.low_battery:
        return f"{reading.battery}%!"
    return f"{reading.battery}%"


def format_probe(reading: Optional[DecodedReading]) -> str:
    """Which probe the reported temperature comes from."""
    if reading is None or reading.external_sensor is None:
        return "-"
    return "ext" if reading.external_sensor else "int"
