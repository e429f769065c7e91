"""BLE radio, decoding and caching module."""

from .reading_cache import ReadingCache
from .scanner import BleRadio, RadioListener

__all__ = ["BleRadio", "RadioListener", "ReadingCache"]
