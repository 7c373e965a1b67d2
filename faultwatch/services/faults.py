"""
Fault storage, deduplication and materialization.

A rule firing for an entity produces at most one ``active`` fault for that
(rule, entity) pair. Repeats while it stays active are suppressed; once the
fault is acknowledged, resolved or dismissed the next trigger opens a new one.
"""

from collections.abc import Callable
from datetime import datetime
from uuid import uuid4

import structlog

from faultwatch.domain.models import (
    Coordinates,
    DetectedFault,
    DiagnosticData,
    FaultRule,
    FaultStatus,
    FaultType,
    RootCauseAnalysis,
    SensorReading,
    Severity,
    utc_now,
)
from faultwatch.services.history import ReadingHistory
from faultwatch.services.notifications import AlertDispatcher, SubscriberList
from faultwatch.services.rules import RuleStore

logger = structlog.get_logger(__name__)

RECOMMENDED_ACTIONS: dict[FaultType, list[str]] = {
    FaultType.ENVIRONMENTAL: [
        "Check environmental controls",
        "Verify sensor calibration",
        "Inspect cooling systems",
    ],
    FaultType.STRUCTURAL: [
        "Perform structural inspection",
        "Check mounting and connections",
        "Review maintenance schedule",
    ],
    FaultType.CONNECTIVITY: [
        "Check network connections",
        "Verify signal strength",
        "Restart communication modules",
    ],
    FaultType.PERFORMANCE: [
        "Monitor system resources",
        "Check for software updates",
        "Review system configuration",
    ],
    FaultType.DATA_QUALITY: [
        "Validate data sources",
        "Check sensor accuracy",
        "Review data processing pipeline",
    ],
}
FALLBACK_ACTIONS = ["Contact technical support"]

MANUAL_FAULT_ACTIONS = [
    "Investigate the reported issue",
    "Check affected components",
    "Contact maintenance team if needed",
]

RULE_ROOT_CAUSE_CONFIDENCE = 0.8


def recommended_actions(fault_type: FaultType | str) -> list[str]:
    """Static lookup by fault category, with a generic fallback."""
    try:
        return list(RECOMMENDED_ACTIONS[FaultType(fault_type)])
    except (KeyError, ValueError):
        return list(FALLBACK_ACTIONS)


def format_value(value: float) -> str:
    """Render a reading value the way operators write it (90, not 90.0)."""
    if value.is_integer():
        return str(int(value))
    return str(value)


class FaultStore:
    """All faults ever created, keyed by id. Faults are replaced, never deleted."""

    def __init__(self) -> None:
        self._faults: dict[str, DetectedFault] = {}
        self._active: dict[tuple[str, str], str] = {}

    def add(self, fault: DetectedFault) -> None:
        self._faults[fault.id] = fault
        self._index(fault)

    def replace(self, fault: DetectedFault) -> None:
        if fault.id not in self._faults:
            raise KeyError(fault.id)
        self._faults[fault.id] = fault
        self._index(fault)

    def _index(self, fault: DetectedFault) -> None:
        key = (fault.rule_id, fault.entity_id)
        if fault.status is FaultStatus.ACTIVE:
            self._active[key] = fault.id
        elif self._active.get(key) == fault.id:
            del self._active[key]

    def get(self, fault_id: str) -> DetectedFault | None:
        return self._faults.get(fault_id)

    def find_active(self, rule_id: str, entity_id: str) -> DetectedFault | None:
        fault_id = self._active.get((rule_id, entity_id))
        return self._faults[fault_id] if fault_id is not None else None

    def active_for(self, entity_id: str) -> list[DetectedFault]:
        return [
            fault
            for fault in self._faults.values()
            if fault.entity_id == entity_id and fault.status is FaultStatus.ACTIVE
        ]

    def all(self) -> list[DetectedFault]:
        return list(self._faults.values())

    def query(
        self,
        limit: int = 50,
        offset: int = 0,
        status: FaultStatus | None = None,
        entity_id: str | None = None,
        device_id: str | None = None,
    ) -> list[DetectedFault]:
        """Filtered page of faults, newest first."""
        faults = [
            fault
            for fault in self._faults.values()
            if (status is None or fault.status is status)
            and (entity_id is None or fault.entity_id == entity_id)
            and (device_id is None or fault.device_id == device_id)
        ]
        faults.sort(key=lambda f: f.detected_at, reverse=True)
        offset = max(0, offset)
        return faults[offset : offset + max(0, limit)]

    def __len__(self) -> int:
        return len(self._faults)


class FaultMaterializer:
    """Turns rule matches into stored faults and fans them out."""

    def __init__(
        self,
        store: FaultStore,
        rules: RuleStore,
        history: ReadingHistory,
        subscribers: SubscriberList[DetectedFault],
        alerts: AlertDispatcher,
        diagnostic_window: int = 50,
        clock: Callable[[], datetime] = utc_now,
        id_factory: Callable[[], str] = lambda: str(uuid4()),
    ) -> None:
        self.store = store
        self.rules = rules
        self.history = history
        self.subscribers = subscribers
        self.alerts = alerts
        self.diagnostic_window = diagnostic_window
        self.clock = clock
        self.id_factory = id_factory
        self.logger = logger.bind(component="fault_materializer")

    def on_rule_triggered(self, rule: FaultRule, reading: SensorReading) -> DetectedFault | None:
        """Create a fault for a satisfied rule, or return None if one is already active."""
        now = self.clock()
        existing = self.store.find_active(rule.id, reading.entity_id)
        self.rules.mark_triggered(rule.id, now)

        if existing is not None:
            self.logger.debug(
                "fault_deduplicated",
                rule_id=rule.id,
                entity_id=reading.entity_id,
                fault_id=existing.id,
            )
            return None

        fault = DetectedFault(
            id=self.id_factory(),
            rule_id=rule.id,
            entity_id=reading.entity_id,
            device_id=reading.device_id,
            fault_type=rule.fault_type,
            severity=rule.severity,
            title=rule.name,
            description=f"{rule.description} - Value: {format_value(reading.value)}{reading.unit}",
            detected_at=now,
            status=FaultStatus.ACTIVE,
            affected_components=[reading.sensor_type.value],
            diagnostic_data=self.diagnostic_snapshot(reading.entity_id, rule),
            coordinates=reading.coordinates,
            recommended_actions=recommended_actions(rule.fault_type),
        )

        self._publish(fault)
        self.logger.info(
            "fault_created",
            fault_id=fault.id,
            rule_id=rule.id,
            entity_id=fault.entity_id,
            severity=fault.severity.value,
            value=reading.value,
        )
        return fault

    def report_fault(
        self,
        entity_id: str,
        title: str,
        description: str,
        severity: Severity,
        fault_type: FaultType,
        device_id: str | None = None,
        affected_components: list[str] | None = None,
        coordinates: Coordinates | None = None,
    ) -> DetectedFault:
        """Record an operator-reported fault that no rule produced."""
        fault = DetectedFault(
            id=self.id_factory(),
            rule_id=f"manual-{uuid4()}",
            entity_id=entity_id,
            device_id=device_id,
            fault_type=fault_type,
            severity=severity,
            title=title,
            description=description,
            detected_at=self.clock(),
            affected_components=affected_components or [],
            diagnostic_data=DiagnosticData(
                root_cause=RootCauseAnalysis(
                    primary_cause="Manual fault creation", confidence=1.0
                ),
            ),
            coordinates=coordinates,
            recommended_actions=list(MANUAL_FAULT_ACTIONS),
        )

        self._publish(fault)
        self.logger.info(
            "manual_fault_reported",
            fault_id=fault.id,
            entity_id=entity_id,
            severity=severity.value,
        )
        return fault

    def diagnostic_snapshot(self, entity_id: str, rule: FaultRule) -> DiagnosticData:
        """Latest value and trailing series per sensor type from recent history."""
        parameters: dict[str, float] = {}
        trends: dict[str, list[float]] = {}

        for reading in self.history.recent(entity_id, self.diagnostic_window):
            key = reading.sensor_type.value
            trends.setdefault(key, []).append(reading.value)
            parameters[key] = reading.value  # chronological, so the last write is the latest

        return DiagnosticData(
            parameters=parameters,
            trends=trends,
            correlations=[],
            root_cause=RootCauseAnalysis(
                primary_cause=rule.description,
                contributing_factors=[],
                confidence=RULE_ROOT_CAUSE_CONFIDENCE,
            ),
        )

    def _publish(self, fault: DetectedFault) -> None:
        # Stored before anyone hears about it
        self.store.add(fault)
        self.subscribers.notify(fault)
        self.alerts.raise_for_fault(fault)
