"""BLE advertisement parsers."""

from .inkbird import FRAME_LENGTH, InkbirdParser

__all__ = ["FRAME_LENGTH", "InkbirdParser"]
