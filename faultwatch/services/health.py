"""
Per-entity health aggregation.

Health is a derived projection: every pass rebuilds each entity's
``ModelHealthStatus`` from its currently active faults and replaces the
previous record wholesale. Two inputs feed it:

1. Active faults -> numeric score and healthy/warning/critical state
2. Device reachability -> offline override when every device has gone dark
"""

from collections.abc import Callable, Iterable
from datetime import datetime, timedelta

import structlog

from faultwatch.domain.models import (
    DetectedFault,
    FaultType,
    HealthState,
    ModelHealthStatus,
    PerformanceMetrics,
    PredictiveInsight,
    ReadingStatus,
    SensorReading,
    SensorType,
    Severity,
    utc_now,
)
from faultwatch.services.devices import DeviceRegistry
from faultwatch.services.faults import FaultStore
from faultwatch.services.history import ReadingHistory
from faultwatch.services.notifications import SubscriberList

logger = structlog.get_logger(__name__)

MAX_HEALTH_SCORE = 100.0

SEVERITY_PENALTY: dict[Severity, float] = {
    Severity.CRITICAL: 30.0,
    Severity.HIGH: 20.0,
    Severity.MEDIUM: 10.0,
    Severity.LOW: 5.0,
}


def compute_health_score(faults: Iterable[DetectedFault]) -> float:
    """100 minus the severity penalties of the given faults, clamped to [0, 100]."""
    score = MAX_HEALTH_SCORE - sum(SEVERITY_PENALTY[fault.severity] for fault in faults)
    return min(MAX_HEALTH_SCORE, max(0.0, score))


def derive_health_state(faults: Iterable[DetectedFault]) -> HealthState:
    """Any critical fault wins; high or medium means warning; low alone stays healthy."""
    state = HealthState.HEALTHY
    for fault in faults:
        if fault.severity is Severity.CRITICAL:
            return HealthState.CRITICAL
        if fault.severity in (Severity.HIGH, Severity.MEDIUM):
            state = HealthState.WARNING
    return state


def derive_performance_metrics(
    readings: list[SensorReading], now: datetime
) -> PerformanceMetrics:
    """Heuristic snapshot from an entity's retained readings."""
    if not readings:
        return PerformanceMetrics()

    latest: dict[SensorType, float] = {}
    for reading in readings:
        latest[reading.sensor_type] = reading.value

    window_start = now - timedelta(minutes=1)
    last_minute = sum(1 for reading in readings if reading.timestamp >= window_start)
    abnormal = sum(1 for reading in readings if reading.status is not ReadingStatus.NORMAL)

    return PerformanceMetrics(
        cpu_usage=latest.get(SensorType.CPU_USAGE),
        memory_usage=latest.get(SensorType.MEMORY_USAGE),
        readings_per_minute=float(last_minute),
        abnormal_reading_ratio=abnormal / len(readings),
        readings_retained=len(readings),
    )


def predictive_insights(faults: Iterable[DetectedFault]) -> list[PredictiveInsight]:
    insights: list[PredictiveInsight] = []

    if any(fault.fault_type is FaultType.STRUCTURAL for fault in faults):
        insights.append(
            PredictiveInsight(
                type="maintenance",
                title="Preventive Maintenance Recommended",
                description="Structural issues detected that may require maintenance",
                probability=0.75,
                timeframe="within 14 days",
                impact=Severity.MEDIUM,
                recommended_actions=[
                    "Schedule maintenance inspection",
                    "Check structural components",
                ],
            )
        )

    return insights


class HealthAggregator:
    """Recomputes and publishes health for every entity with a known device."""

    def __init__(
        self,
        faults: FaultStore,
        history: ReadingHistory,
        devices: DeviceRegistry,
        subscribers: SubscriberList[ModelHealthStatus],
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.faults = faults
        self.history = history
        self.devices = devices
        self.subscribers = subscribers
        self.clock = clock
        self._statuses: dict[str, ModelHealthStatus] = {}
        self.logger = logger.bind(component="health_aggregator")

    def build_status(self, entity_id: str, now: datetime) -> ModelHealthStatus:
        active = self.faults.active_for(entity_id)

        overall = derive_health_state(active)
        if self.devices.is_offline(entity_id, now):
            overall = HealthState.OFFLINE

        return ModelHealthStatus(
            entity_id=entity_id,
            overall_health=overall,
            health_score=compute_health_score(active),
            last_updated=now,
            components=[],
            active_faults=active,
            performance_metrics=derive_performance_metrics(
                self.history.recent(entity_id, self.history.capacity), now
            ),
            predictive_insights=predictive_insights(active),
        )

    def recompute(self, entity_ids: Iterable[str] | None = None) -> list[ModelHealthStatus]:
        """Rebuild, store and publish health for the given entities (default: all known)."""
        now = self.clock()
        targets = list(entity_ids) if entity_ids is not None else self.devices.entities()
        statuses: list[ModelHealthStatus] = []

        for entity_id in targets:
            status = self.build_status(entity_id, now)
            previous = self._statuses.get(entity_id)
            self._statuses[entity_id] = status
            statuses.append(status)

            if previous is not None and previous.overall_health != status.overall_health:
                self.logger.info(
                    "health_state_changed",
                    entity_id=entity_id,
                    previous=previous.overall_health.value,
                    current=status.overall_health.value,
                    health_score=status.health_score,
                )

            self.subscribers.notify(status)

        self.logger.debug("health_recomputed", entities=len(statuses))
        return statuses

    def get(self, entity_id: str) -> ModelHealthStatus | None:
        return self._statuses.get(entity_id)

    def all(self) -> list[ModelHealthStatus]:
        return list(self._statuses.values())
