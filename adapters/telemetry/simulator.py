"""
Simulated device telemetry for demos and tests.

Each source stands in for the devices attached to one monitored entity and
produces a batch per call. Scenarios push specific parameters out of their
normal band:

- normal: every parameter inside its normal band
- overheating: temperature well above the critical threshold
- vibration: sustained structural vibration
- degraded_link: weak signal strength

In production this is where MQTT, websocket or REST-polling telemetry would
plug in.
"""

import asyncio
import random
from datetime import UTC, datetime
from typing import Literal

import structlog

from faultwatch.domain.models import ReadingStatus, SensorReading, SensorType
from faultwatch.services.result import Result

logger = structlog.get_logger(__name__)

Scenario = Literal["normal", "overheating", "vibration", "degraded_link"]

# sensor type -> (unit, normal band)
NORMAL_BANDS: dict[SensorType, tuple[str, tuple[float, float]]] = {
    SensorType.TEMPERATURE: ("°C", (18.0, 32.0)),
    SensorType.HUMIDITY: ("%", (35.0, 55.0)),
    SensorType.VIBRATION: ("mm/s", (0.5, 4.0)),
    SensorType.SIGNAL_STRENGTH: ("%", (60.0, 95.0)),
    SensorType.CPU_USAGE: ("%", (10.0, 60.0)),
    SensorType.MEMORY_USAGE: ("%", (30.0, 70.0)),
}

SCENARIO_BANDS: dict[str, dict[SensorType, tuple[float, float]]] = {
    "normal": {},
    "overheating": {SensorType.TEMPERATURE: (88.0, 96.0)},
    "vibration": {SensorType.VIBRATION: (9.0, 14.0)},
    "degraded_link": {SensorType.SIGNAL_STRENGTH: (5.0, 15.0)},
}

# sensor type -> (warning, critical); signal strength degrades downwards
STATUS_THRESHOLDS: dict[SensorType, tuple[float, float]] = {
    SensorType.TEMPERATURE: (75.0, 85.0),
    SensorType.VIBRATION: (6.0, 8.0),
    SensorType.SIGNAL_STRENGTH: (30.0, 20.0),
    SensorType.CPU_USAGE: (80.0, 90.0),
    SensorType.MEMORY_USAGE: (75.0, 85.0),
}


def classify_reading(sensor_type: SensorType, value: float) -> ReadingStatus:
    """Status tag a device would attach to its own reading."""
    thresholds = STATUS_THRESHOLDS.get(sensor_type)
    if thresholds is None:
        return ReadingStatus.NORMAL

    warning, critical = thresholds
    if sensor_type is SensorType.SIGNAL_STRENGTH:
        if value < critical:
            return ReadingStatus.CRITICAL
        if value < warning:
            return ReadingStatus.WARNING
        return ReadingStatus.NORMAL

    if value > critical:
        return ReadingStatus.CRITICAL
    if value > warning:
        return ReadingStatus.WARNING
    return ReadingStatus.NORMAL


class SimulatedTelemetrySource:
    """
    Simulated telemetry for one entity.

    Has a configurable failure rate to simulate flaky device links.
    """

    def __init__(
        self,
        entity_id: str,
        scenario: Scenario = "normal",
        device_id: str | None = None,
        failure_rate: float = 0.05,
        max_latency_seconds: float = 0.2,
        rng: random.Random | None = None,
    ) -> None:
        if scenario not in SCENARIO_BANDS:
            raise ValueError(f"Unknown telemetry scenario: {scenario}")

        self.entity_id = entity_id
        self.device_id = device_id or f"{entity_id}-gateway"
        self.source_name = f"telemetry:{entity_id}"
        self.scenario = scenario
        self.failure_rate = failure_rate
        self.max_latency_seconds = max_latency_seconds
        self._rng = rng or random.Random()
        self.logger = logger.bind(source=self.source_name, scenario=scenario)

    def _sample(self, sensor_type: SensorType) -> float:
        low, high = SCENARIO_BANDS[self.scenario].get(sensor_type, NORMAL_BANDS[sensor_type][1])
        return round(self._rng.uniform(low, high), 2)

    async def collect_readings(self) -> Result[list[SensorReading], Exception]:
        """
        Simulate one telemetry poll.

        Returns:
            Result[list[SensorReading], Exception]: one reading per sensor, or the link failure.
        """
        try:
            if self.max_latency_seconds > 0:
                await asyncio.sleep(self._rng.uniform(0.0, self.max_latency_seconds))

            if self._rng.random() < self.failure_rate:
                raise ConnectionError(f"Lost telemetry link to {self.entity_id}")

            now = datetime.now(UTC)
            readings = []
            for sensor_type, (unit, _) in NORMAL_BANDS.items():
                value = self._sample(sensor_type)
                readings.append(
                    SensorReading(
                        entity_id=self.entity_id,
                        device_id=self.device_id,
                        sensor_type=sensor_type,
                        value=value,
                        unit=unit,
                        timestamp=now,
                        status=classify_reading(sensor_type, value),
                    )
                )

            self.logger.debug("telemetry_collected", count=len(readings))
            return Result.ok(readings)

        except Exception as e:
            self.logger.warning("telemetry_collection_failed", error=str(e))
            return Result.err(e)
