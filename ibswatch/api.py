"""HTTP API server exposing sensor readings as JSON."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from aiohttp import web

from . import __version__
from .models import DecodedReading, Quantity
from .scheduler import PollScheduler

logger = logging.getLogger(__name__)

# History is kept in memory for one day
HISTORY_HOURS = 24


def reading_payload(reading: Optional[DecodedReading]) -> dict:
    """Serialize a reading; all values None when there is none."""
    if reading is None:
        reading = DecodedReading()
        timestamp = None
    else:
        timestamp = reading.timestamp.strftime("%Y-%m-%d %H:%M:%S")

    return {
        "temperature": reading.temperature,
        "internal_temperature": reading.internal_temperature,
        "external_temperature": reading.external_temperature,
        "humidity": reading.humidity,
        "external_sensor": reading.external_sensor,
        "battery_level": reading.battery,
        "low_battery": reading.low_battery,
        "crc": reading.crc.value if reading.crc else None,
        "timestamp": timestamp,
    }


def build_status_payload(schedulers: dict[str, PollScheduler]) -> dict:
    """Build the status JSON payload from cached readings (no scan)."""
    now = datetime.now()
    sensors = []
    for name, scheduler in schedulers.items():
        age = scheduler.cache.get_age()
        entry: dict = {
            "name": name,
            "model": scheduler.config.model,
            "mac": scheduler.config.mac_address or None,
            "state": scheduler.state.value,
            "age_seconds": int(age.total_seconds()) if age is not None else None,
        }
        entry.update(reading_payload(scheduler.reading))
        sensors.append(entry)

    return {
        "timestamp": now.strftime("%Y-%m-%d %H:%M:%S"),
        "sensors": sensors,
    }


class ApiServer:
    """aiohttp web server exposing sensor readings as JSON."""

    def __init__(
        self,
        schedulers: dict[str, PollScheduler],
        port: int,
    ) -> None:
        self._schedulers = schedulers
        self._port = port
        self._runner: Optional[web.AppRunner] = None

    def create_app(self) -> web.Application:
        """Build the aiohttp application with all routes."""
        app = web.Application()
        app.router.add_get("/api/v1/health", self._handle_health)
        app.router.add_get("/api/v1/status", self._handle_status)
        app.router.add_get("/api/v1/sensors/{name}", self._handle_sensor)
        app.router.add_get("/api/v1/sensors/{name}/history", self._handle_history)
        app.router.add_put("/api/v1/sensors/{name}/loglevel", self._handle_loglevel)
        return app

    async def start(self) -> None:
        """Start the API server."""
        self._runner = web.AppRunner(self.create_app())
        await self._runner.setup()
        site = web.TCPSite(self._runner, "0.0.0.0", self._port)
        await site.start()
        logger.info("API server started on port %d", self._port)

    async def stop(self) -> None:
        """Stop the API server."""
        if self._runner:
            await self._runner.cleanup()
            self._runner = None
            logger.info("API server stopped")

    def _get_scheduler(self, request: web.Request) -> PollScheduler:
        name = request.match_info["name"]
        scheduler = self._schedulers.get(name)
        if scheduler is None:
            raise web.HTTPNotFound(
                text=f'{{"error": "unknown sensor {name}"}}',
                content_type="application/json",
            )
        return scheduler

    async def _handle_health(self, request: web.Request) -> web.Response:
        """Health check endpoint."""
        return web.json_response({"status": "ok", "version": __version__})

    async def _handle_status(self, request: web.Request) -> web.Response:
        """Return cached sensor readings as JSON."""
        return web.json_response(build_status_payload(self._schedulers))

    async def _handle_sensor(self, request: web.Request) -> web.Response:
        """Read one sensor; answers with the reading of a fresh scan cycle."""
        scheduler = self._get_scheduler(request)
        reading = await scheduler.refresh()

        output: dict = {"name": scheduler.name}
        output.update({q.value: reading.value(q) for q in Quantity})
        output["reading"] = reading_payload(reading)
        return web.json_response(output)

    async def _handle_history(self, request: web.Request) -> web.Response:
        """Readings with data from the last ?hours=N (default 24)."""
        scheduler = self._get_scheduler(request)
        try:
            hours = int(request.query.get("hours", HISTORY_HOURS))
        except ValueError:
            return web.json_response({"error": "hours must be an integer"}, status=400)
        hours = min(max(hours, 1), HISTORY_HOURS)

        readings = scheduler.cache.get_history(hours)
        return web.json_response({
            "name": scheduler.name,
            "hours": hours,
            "readings": [reading_payload(r) for r in readings],
        })

    async def _handle_loglevel(self, request: web.Request) -> web.Response:
        """Change the log level of one sensor: {"level": 0-4}."""
        scheduler = self._get_scheduler(request)
        try:
            body = await request.json()
            level = int(body["level"])
        except (ValueError, KeyError, TypeError):
            return web.json_response({"error": "expected {\"level\": 0-4}"}, status=400)

        applied = scheduler.set_log_level(level)
        logger.info("Log level of %s set to %d", scheduler.name, applied)
        return web.json_response({"name": scheduler.name, "level": applied})
