"""
Fault detection engine: the single entry point collaborators talk to.

Data flows one way:

    readings -> history -> evaluator -> duration gate -> materializer
             -> fault store -> health aggregator -> subscribers

Every store is an explicit object owned by the engine, so tests build a fresh
engine instead of resetting module state.

Ingestion and periodic health analysis share one asyncio.Lock. Batch
processing itself never awaits, so the synchronous query and lifecycle calls
can never observe a half-processed batch either.
"""

import asyncio
from collections.abc import AsyncIterator, Callable, Iterable, Mapping
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any

import structlog
from pydantic import ValidationError

from faultwatch.config import DetectionConfig
from faultwatch.domain.errors import MalformedReadingError
from faultwatch.domain.models import (
    Coordinates,
    DetectedFault,
    Device,
    DeviceStatus,
    FaultDetectionStatistics,
    FaultRule,
    FaultStatus,
    FaultType,
    ModelHealthStatus,
    SensorReading,
    Severity,
    utc_now,
)
from faultwatch.services.devices import DeviceRegistry
from faultwatch.services.evaluator import DurationGate, RuleEvaluator
from faultwatch.services.faults import FaultMaterializer, FaultStore
from faultwatch.services.health import HealthAggregator
from faultwatch.services.history import ReadingHistory
from faultwatch.services.lifecycle import FaultLifecycle, LifecycleResult
from faultwatch.services.notifications import (
    AlertDispatcher,
    AlertSink,
    SubscriberList,
    Unsubscribe,
)
from faultwatch.services.reporting import StatisticsReporter
from faultwatch.services.rules import RuleStore

logger = structlog.get_logger(__name__)

ReadingInput = SensorReading | Mapping[str, Any]


class FaultDetectionEngine:
    """
    In-process streaming rule engine with per-entity health aggregation.

    Typical use:

        engine = FaultDetectionEngine()
        engine.subscribe_faults(on_fault)
        async with engine.monitoring_session():
            await engine.ingest(batch)
    """

    def __init__(
        self,
        config: DetectionConfig | None = None,
        rules: list[FaultRule] | None = None,
        alert_sinks: list[AlertSink] | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.config = config or DetectionConfig()
        self.clock = clock
        self.logger = logger.bind(component="fault_detection_engine")

        self.history = ReadingHistory(self.config.history_capacity)
        self.rules = RuleStore(rules)
        self.evaluator = RuleEvaluator()
        self.duration_gate = DurationGate(self.config.enforce_condition_duration)
        self.devices = DeviceRegistry(self.config.device_offline_after_seconds, clock)

        self.faults = FaultStore()
        self.fault_subscribers: SubscriberList[DetectedFault] = SubscriberList("faults")
        self.health_subscribers: SubscriberList[ModelHealthStatus] = SubscriberList("health")
        self.alerts = AlertDispatcher(alert_sinks, history_size=self.config.alert_history_size)

        self.materializer = FaultMaterializer(
            store=self.faults,
            rules=self.rules,
            history=self.history,
            subscribers=self.fault_subscribers,
            alerts=self.alerts,
            diagnostic_window=self.config.diagnostic_window,
            clock=clock,
        )
        self.health = HealthAggregator(
            faults=self.faults,
            history=self.history,
            devices=self.devices,
            subscribers=self.health_subscribers,
            clock=clock,
        )
        self.lifecycle = FaultLifecycle(self.faults, clock)
        self.reporter = StatisticsReporter(self.faults, self.health)

        self._lock = asyncio.Lock()
        self._analysis_task: asyncio.Task[None] | None = None

        self.logger.info(
            "engine_initialized",
            rules=len(self.rules),
            history_capacity=self.config.history_capacity,
            duration_gating=self.config.enforce_condition_duration,
        )

    # Ingestion

    async def ingest(self, batch: Iterable[ReadingInput]) -> list[DetectedFault]:
        """
        Process one batch of readings to completion.

        Malformed items are skipped. Returns the faults newly created by this
        batch (suppressed repeats are not included).
        """
        async with self._lock:
            return self._process_batch(batch)

    def _process_batch(self, batch: Iterable[ReadingInput]) -> list[DetectedFault]:
        created: list[DetectedFault] = []
        accepted = 0
        rejected = 0

        for item in batch:
            try:
                reading = self._coerce(item)
            except MalformedReadingError as e:
                rejected += 1
                self.logger.warning("reading_rejected", error=str(e))
                continue

            accepted += 1
            try:
                created.extend(self._process_reading(reading))
            except Exception as e:
                self.logger.exception(
                    "reading_processing_failed", entity_id=reading.entity_id, error=str(e)
                )

        if accepted:
            self.health.recompute()

        self.logger.info(
            "reading_batch_processed",
            accepted=accepted,
            rejected=rejected,
            faults_created=len(created),
        )
        return created

    def _coerce(self, item: ReadingInput) -> SensorReading:
        if isinstance(item, SensorReading):
            return item
        try:
            return SensorReading.model_validate(item)
        except ValidationError as e:
            raise MalformedReadingError(str(e)) from e

    def _process_reading(self, reading: SensorReading) -> list[DetectedFault]:
        self.history.record(reading.entity_id, reading)
        self.devices.touch(reading)
        latest = self.history.latest_values(reading.entity_id)

        created: list[DetectedFault] = []
        for rule in self.rules.applicable(reading.entity_id):
            self.duration_gate.observe(rule, reading)
            match = self.evaluator.evaluate(rule, reading, latest)
            if match is None or not self.duration_gate.confirm(match):
                continue

            fault = self.materializer.on_rule_triggered(rule, reading)
            if fault is not None:
                created.append(fault)

        return created

    # Health analysis

    async def run_health_analysis(self) -> list[ModelHealthStatus]:
        async with self._lock:
            return self.health.recompute()

    async def _analysis_loop(self) -> None:
        interval = self.config.health_analysis_interval_seconds
        self.logger.info("health_analysis_started", interval_seconds=interval)

        while True:
            await asyncio.sleep(interval)
            try:
                await self.run_health_analysis()
            except Exception as e:
                self.logger.exception("health_analysis_failed", error=str(e))

    @property
    def is_running(self) -> bool:
        return self._analysis_task is not None and not self._analysis_task.done()

    def start(self) -> None:
        """Start the periodic health analysis. Must be called from a running event loop."""
        if self.is_running:
            return
        self._analysis_task = asyncio.get_running_loop().create_task(
            self._analysis_loop(), name="health-analysis"
        )

    async def stop(self) -> None:
        """Cancel the periodic analysis and wait for in-flight alert sinks."""
        task, self._analysis_task = self._analysis_task, None
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
            self.logger.info("health_analysis_stopped")
        await self.alerts.drain()

    @asynccontextmanager
    async def monitoring_session(self) -> AsyncIterator["FaultDetectionEngine"]:
        self.start()
        try:
            yield self
        finally:
            await self.stop()

    # Queries

    def list_faults(
        self,
        limit: int = 50,
        offset: int = 0,
        status: FaultStatus | str | None = None,
        entity_id: str | None = None,
        device_id: str | None = None,
    ) -> list[DetectedFault]:
        return self.faults.query(
            limit=limit,
            offset=offset,
            status=FaultStatus(status) if status is not None else None,
            entity_id=entity_id,
            device_id=device_id,
        )

    def get_fault(self, fault_id: str) -> DetectedFault | None:
        return self.faults.get(fault_id)

    def list_health_statuses(self, entity_id: str | None = None) -> list[ModelHealthStatus]:
        if entity_id is not None:
            status = self.health.get(entity_id)
            return [status] if status is not None else []
        return self.health.all()

    def get_statistics(self) -> FaultDetectionStatistics:
        return self.reporter.report()

    # Lifecycle

    def acknowledge(self, fault_id: str, acknowledged_by: str | None = None) -> LifecycleResult:
        return self.lifecycle.acknowledge(fault_id, acknowledged_by)

    def resolve(
        self, fault_id: str, resolution: str | None = None, resolved_by: str | None = None
    ) -> LifecycleResult:
        return self.lifecycle.resolve(fault_id, resolution, resolved_by)

    def mark_false_positive(self, fault_id: str) -> LifecycleResult:
        return self.lifecycle.mark_false_positive(fault_id)

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
        return self.materializer.report_fault(
            entity_id=entity_id,
            title=title,
            description=description,
            severity=severity,
            fault_type=fault_type,
            device_id=device_id,
            affected_components=affected_components,
            coordinates=coordinates,
        )

    # Subscriptions and collaborators

    def subscribe_faults(self, callback: Callable[[DetectedFault], None]) -> Unsubscribe:
        return self.fault_subscribers.subscribe(callback)

    def subscribe_health(self, callback: Callable[[ModelHealthStatus], None]) -> Unsubscribe:
        return self.health_subscribers.subscribe(callback)

    def add_alert_sink(self, sink: AlertSink) -> None:
        self.alerts.add_sink(sink)

    def register_device(self, device_id: str, entity_id: str) -> Device:
        return self.devices.register(device_id, entity_id)

    def set_device_status(self, device_id: str, status: DeviceStatus) -> Device | None:
        """Update a device. Sustained-violation windows restart once its entity goes offline."""
        device = self.devices.set_status(device_id, status)
        if device is not None and self.devices.is_offline(device.entity_id):
            self.duration_gate.reset(device.entity_id)
        return device
