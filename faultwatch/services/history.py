"""
Per-entity bounded history of recent sensor readings.

Each entity gets a deque capped at a fixed capacity, so memory is bounded by
``capacity * entity_count`` and the oldest readings fall off first.
"""

from collections import deque
from itertools import islice

import structlog

from faultwatch.domain.models import SensorReading

logger = structlog.get_logger(__name__)


class ReadingHistory:
    """Append-only ring buffers of readings, keyed by entity id."""

    def __init__(self, capacity: int = 1000) -> None:
        if capacity <= 0:
            raise ValueError("History capacity must be positive")
        self.capacity = capacity
        self._buffers: dict[str, deque[SensorReading]] = {}
        self.logger = logger.bind(component="reading_history")

    def record(self, entity_id: str, reading: SensorReading) -> None:
        buffer = self._buffers.get(entity_id)
        if buffer is None:
            buffer = deque(maxlen=self.capacity)
            self._buffers[entity_id] = buffer
            self.logger.debug("history_buffer_created", entity_id=entity_id)
        buffer.append(reading)

    def recent(self, entity_id: str, n: int) -> list[SensorReading]:
        """Return up to the last ``n`` readings for an entity, oldest first."""
        buffer = self._buffers.get(entity_id)
        if not buffer or n <= 0:
            return []
        start = max(0, len(buffer) - n)
        return list(islice(buffer, start, None))

    def latest_values(self, entity_id: str) -> dict[str, float]:
        """Most recent value per sensor type for an entity."""
        latest: dict[str, float] = {}
        for reading in reversed(self._buffers.get(entity_id, ())):
            latest.setdefault(reading.sensor_type.value, reading.value)
        return latest

    def size(self, entity_id: str) -> int:
        return len(self._buffers.get(entity_id, ()))

    def entities(self) -> list[str]:
        return list(self._buffers)
