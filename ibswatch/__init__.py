"""ibswatch - Inkbird BLE thermo-hygrometer poller."""

__version__ = "0.5.0"
