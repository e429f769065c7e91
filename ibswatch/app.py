"""Wires the shared radio, the per-sensor schedulers and the outputs together."""

from __future__ import annotations

import asyncio
import logging
import signal
from pathlib import Path
from typing import Optional

from .api import ApiServer
from .ble.scanner import BleRadio
from .config import load_config
from .console import DEFAULT_INTERVAL_SECONDS, ConsoleReporter
from .models import DecodedReading
from .scheduler import PollScheduler

logger = logging.getLogger(__name__)


class IbsWatchApp:
    """Runs every configured sensor on one BLE radio.

    The console reporter runs when an interval was given on the command
    line or when no API port is configured, so the process always has at
    least one output.
    """

    def __init__(
        self,
        config_path: Path,
        console_interval: Optional[int] = None,
        api_port: Optional[int] = None,
    ) -> None:
        self._config_path = config_path
        self._console_interval = console_interval
        self._api_port_override = api_port
        self._radio = BleRadio()
        self._radio_task: Optional[asyncio.Task] = None
        self._schedulers: dict[str, PollScheduler] = {}
        # Started outputs (api, console), stopped in reverse order
        self._outputs: list = []
        self._stopping: Optional[asyncio.Event] = None

    @property
    def schedulers(self) -> dict[str, PollScheduler]:
        return self._schedulers

    def _on_update(self, name: str, reading: DecodedReading) -> None:
        if not reading.has_data:
            logger.debug("%s: no reading (%s)", name, reading.crc.value if reading.crc else "not found")
            return
        logger.debug(
            "%s: %s°C, %s%%, battery %s%%",
            name,
            reading.temperature,
            reading.humidity,
            reading.battery,
        )

    def _on_radio_done(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error("BLE radio task failed: %s", error)
            if self._stopping is not None:
                self._stopping.set()

    async def start(self) -> None:
        config = load_config(self._config_path)
        if not config.sensors:
            logger.warning("No sensors configured")

        for sensor_config in config.sensors:
            scheduler = PollScheduler(sensor_config, self._radio, on_update=self._on_update)
            scheduler.start()
            self._schedulers[scheduler.name] = scheduler

        self._radio_task = asyncio.create_task(self._radio.run_with_restart(), name="ble_radio")
        self._radio_task.add_done_callback(self._on_radio_done)

        # --api-port overrides the configuration file
        api_port = self._api_port_override or config.api_port
        if api_port:
            api = ApiServer(self._schedulers, api_port)
            await api.start()
            self._outputs.append(api)

        if self._console_interval is not None or not api_port:
            interval = DEFAULT_INTERVAL_SECONDS if self._console_interval is None else self._console_interval
            console = ConsoleReporter(list(self._schedulers.values()), interval=interval)
            await console.start()
            self._outputs.append(console)

        logger.info("ibswatch started with %d sensors", len(self._schedulers))

    async def stop(self) -> None:
        logger.info("Stopping ibswatch...")

        while self._outputs:
            await self._outputs.pop().stop()

        for scheduler in self._schedulers.values():
            scheduler.close()
        self._schedulers.clear()

        if self._radio_task is not None:
            self._radio_task.cancel()
            try:
                await self._radio_task
            except asyncio.CancelledError:
                pass
            self._radio_task = None
        await self._radio.stop()

        logger.info("ibswatch stopped")

    async def run(self) -> None:
        """Run until SIGINT/SIGTERM or until the radio task dies."""
        self._stopping = asyncio.Event()

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, self._request_stop, sig)

        try:
            await self.start()
            await self._stopping.wait()
        finally:
            await self.stop()

    def _request_stop(self, sig: signal.Signals) -> None:
        logger.info("Received %s, shutting down", sig.name)
        if self._stopping is not None:
            self._stopping.set()
