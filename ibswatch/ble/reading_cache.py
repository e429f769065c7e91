"""Latest decoded reading of one sensor, with a 24h in-memory history."""

from __future__ import annotations

import logging
from collections import deque
from datetime import datetime, timedelta
from typing import Optional

from ..models import DecodedReading

logger = logging.getLogger(__name__)

# Keep readings for 24 hours
HISTORY_DURATION = timedelta(hours=24)
# One reading per 10s scan cycle at most = 8640 per day
MAX_HISTORY_READINGS = 8640


class ReadingCache:
    """Holds the last decoded reading of a sensor.

    Replaced wholesale on every decode. Not locked: only the scheduler
    running on the event loop mutates it.
    """

    def __init__(self) -> None:
        self._latest: Optional[DecodedReading] = None
        self._history: deque[DecodedReading] = deque(maxlen=MAX_HISTORY_READINGS)

    @property
    def latest(self) -> Optional[DecodedReading]:
        """The most recent reading, None before the first scan cycle."""
        return self._latest

    def update(self, reading: DecodedReading) -> None:
        """Replace the cached reading."""
        self._latest = reading

        if reading.has_data:
            self._history.append(reading)
        self._cleanup_old_readings()

        logger.debug(
            "Cached reading: temperature=%s, humidity=%s",
            reading.temperature,
            reading.humidity,
        )

    def _cleanup_old_readings(self) -> None:
        """Remove readings older than HISTORY_DURATION."""
        cutoff = datetime.now() - HISTORY_DURATION
        while self._history and self._history[0].timestamp < cutoff:
            self._history.popleft()

    def get_history(self, hours: int = 24) -> list[DecodedReading]:
        """Get readings with data from the last hours."""
        cutoff = datetime.now() - timedelta(hours=hours)
        return [r for r in self._history if r.timestamp >= cutoff]

    def get_age(self) -> Optional[timedelta]:
        """Get the age of the latest reading."""
        if self._latest:
            return datetime.now() - self._latest.timestamp
        return None
