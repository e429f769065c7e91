"""Console reporter printing fresh sensor readings."""

from __future__ import annotations

import asyncio
import logging
import sys
from datetime import datetime
from typing import Optional

from .formatting import format_age, format_battery, format_humidity, format_probe, format_temperature
from .scheduler import PollScheduler

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_SECONDS = 30

_COLUMNS = (("Temp", 7), ("Probe", 5), ("Hum", 5), ("Batt", 5), ("Age", 6))


class ConsoleReporter:
    """Prints a table of all sensors.

    With interval > 0 the table is printed every interval seconds, with
    interval 0 whenever Enter is pressed. Each print first waits for a scan
    cycle of every sensor started after the print was due, also when a
    cached reading is still current. While the radio is off the cycle ends
    at once and the last cached values are shown.
    """

    def __init__(
        self,
        schedulers: list[PollScheduler],
        interval: int = DEFAULT_INTERVAL_SECONDS,
    ) -> None:
        self._schedulers = schedulers
        self._interval = interval
        self._keypress: Optional[asyncio.Event] = None
        self._task: Optional[asyncio.Task] = None

    async def start(self) -> None:
        if self._interval == 0:
            self._keypress = self._watch_stdin()
        if self._keypress is not None:
            print("Press Enter to read the sensors")
            logger.info("Console reporter started (keypress mode)")
        else:
            logger.info("Console reporter started (every %ds)", self._interval)
        self._task = asyncio.create_task(self._run(), name="console_reporter")

    async def stop(self) -> None:
        if self._keypress is not None:
            asyncio.get_running_loop().remove_reader(sys.stdin)
            self._keypress = None

        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

    def _watch_stdin(self) -> Optional[asyncio.Event]:
        """Register a stdin reader; None where the loop cannot watch stdin."""
        event = asyncio.Event()

        def _on_stdin() -> None:
            sys.stdin.readline()
            event.set()

        try:
            asyncio.get_running_loop().add_reader(sys.stdin, _on_stdin)
        except NotImplementedError:
            logger.warning(
                "Keypress mode not supported on this platform, using %ds interval",
                DEFAULT_INTERVAL_SECONDS,
            )
            self._interval = DEFAULT_INTERVAL_SECONDS
            return None
        return event

    async def _wait_for_trigger(self) -> None:
        if self._keypress is None:
            await asyncio.sleep(self._interval)
        else:
            await self._keypress.wait()
            self._keypress.clear()

    async def _run(self) -> None:
        # Timed mode prints once right away
        if self._keypress is not None:
            await self._wait_for_trigger()

        while True:
            try:
                await asyncio.gather(*(s.refresh() for s in self._schedulers))
                print(self.render_table())
            except Exception as e:
                logger.warning("Console reporter error: %s", e)
            await self._wait_for_trigger()

    def render_table(self) -> str:
        """Render the cached readings of all sensors as a text table."""
        stamp = datetime.now().strftime("%H:%M:%S")
        if not self._schedulers:
            return f"\n[{stamp}] No sensors configured"

        rows = []
        for scheduler in self._schedulers:
            reading = scheduler.reading
            age = scheduler.cache.get_age()
            rows.append((
                scheduler.name,
                format_temperature(reading.temperature if reading else None),
                format_probe(reading),
                format_humidity(reading.humidity if reading else None),
                format_battery(reading),
                format_age(age.total_seconds() if age is not None else None),
            ))

        name_width = max(len("Sensor"), *(len(row[0]) for row in rows))

        def _line(cells) -> str:
            parts = [f"{cells[0]:<{name_width}}"]
            parts.extend(f"{cell:>{width}}" for cell, (_, width) in zip(cells[1:], _COLUMNS))
            return "  ".join(parts)

        header = _line(["Sensor"] + [title for title, _ in _COLUMNS])
        rule = "-" * len(header)
        lines = ["", f"[{stamp}] {len(rows)} sensors", rule, header, rule]
        lines.extend(_line(row) for row in rows)
        lines.append(rule)
        return "\n".join(lines)
