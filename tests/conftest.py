"""Shared fixtures: a controllable clock and a reading factory."""

from collections.abc import Callable
from datetime import UTC, datetime, timedelta

import pytest

from faultwatch.domain.models import SensorReading, SensorType

T0 = datetime(2024, 5, 1, 12, 0, tzinfo=UTC)

UNITS = {
    SensorType.TEMPERATURE: "°C",
    SensorType.VIBRATION: "mm/s",
    SensorType.SIGNAL_STRENGTH: "%",
    SensorType.CPU_USAGE: "%",
    SensorType.MEMORY_USAGE: "%",
}


class FakeClock:
    """Deterministic clock; call it to read, ``advance`` to move forward."""

    def __init__(self, start: datetime = T0) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now += timedelta(seconds=seconds)
        return self.now


ReadingFactory = Callable[..., SensorReading]


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def make_reading(clock: FakeClock) -> ReadingFactory:
    """Build a reading stamped with the fake clock's current time."""

    def _make(
        entity_id: str = "twin-1",
        sensor_type: SensorType = SensorType.TEMPERATURE,
        value: float = 25.0,
        **overrides: object,
    ) -> SensorReading:
        fields: dict[str, object] = {
            "entity_id": entity_id,
            "sensor_type": sensor_type,
            "value": value,
            "unit": UNITS.get(sensor_type, ""),
            "timestamp": clock(),
        }
        fields.update(overrides)
        return SensorReading(**fields)  # type: ignore[arg-type]

    return _make
