"""
Cross-entity fault statistics, computed fresh on every call.

Nothing is cached or maintained incrementally, so the counts always agree
with the fault and health stores at the moment of the call.

Reliability figures are derived from fault timestamps:
- average resolution time / MTTR: mean of ``resolved_at - detected_at``
  over resolved faults
- MTBF: mean gap between consecutive detections on the same entity
A figure with no data behind it is reported as None rather than guessed.
"""

from collections import Counter, defaultdict
from collections.abc import Iterable
from statistics import mean

from faultwatch.domain.models import (
    DetectedFault,
    FaultDetectionStatistics,
    FaultStatus,
    HealthState,
    ModelHealthStatus,
)
from faultwatch.services.faults import FaultStore
from faultwatch.services.health import HealthAggregator

SECONDS_PER_HOUR = 3600.0


def mean_time_to_repair_hours(faults: Iterable[DetectedFault]) -> float | None:
    durations = [
        (fault.resolved_at - fault.detected_at).total_seconds() / SECONDS_PER_HOUR
        for fault in faults
        if fault.status is FaultStatus.RESOLVED and fault.resolved_at is not None
    ]
    return mean(durations) if durations else None


def mean_time_between_failures_hours(faults: Iterable[DetectedFault]) -> float | None:
    detections: dict[str, list] = defaultdict(list)
    for fault in faults:
        detections[fault.entity_id].append(fault.detected_at)

    gaps: list[float] = []
    for timestamps in detections.values():
        timestamps.sort()
        gaps.extend(
            (later - earlier).total_seconds() / SECONDS_PER_HOUR
            for earlier, later in zip(timestamps, timestamps[1:])
        )
    return mean(gaps) if gaps else None


def compute_statistics(
    faults: list[DetectedFault], statuses: list[ModelHealthStatus]
) -> FaultDetectionStatistics:
    health_counts = Counter(status.overall_health for status in statuses)
    status_counts = Counter(fault.status for fault in faults)
    mttr = mean_time_to_repair_hours(faults)

    return FaultDetectionStatistics(
        total_models=len(statuses),
        healthy_models=health_counts[HealthState.HEALTHY],
        models_with_warnings=health_counts[HealthState.WARNING],
        critical_models=health_counts[HealthState.CRITICAL],
        offline_models=health_counts[HealthState.OFFLINE],
        total_faults=len(faults),
        active_faults=status_counts[FaultStatus.ACTIVE],
        acknowledged_faults=status_counts[FaultStatus.ACKNOWLEDGED],
        resolved_faults=status_counts[FaultStatus.RESOLVED],
        faults_by_type=dict(Counter(fault.fault_type.value for fault in faults)),
        faults_by_severity=dict(Counter(fault.severity.value for fault in faults)),
        average_resolution_time_hours=mttr,
        mtbf_hours=mean_time_between_failures_hours(faults),
        mttr_hours=mttr,
    )


class StatisticsReporter:
    """Read-only view over the fault store and the latest health statuses."""

    def __init__(self, faults: FaultStore, health: HealthAggregator) -> None:
        self.faults = faults
        self.health = health

    def report(self) -> FaultDetectionStatistics:
        return compute_statistics(self.faults.all(), self.health.all())
