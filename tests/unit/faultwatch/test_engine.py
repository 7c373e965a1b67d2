"""
End-to-end engine behavior through its public surface.

Covers the acceptance scenarios:
- a critical temperature reading creates one critical fault and a critical entity
- repeated violations while a fault is active are suppressed
- resolving a fault lets the rule fire again
- statistics across several entities stay consistent
"""

import asyncio

import pytest

from conftest import FakeClock, ReadingFactory
from faultwatch.config import DetectionConfig
from faultwatch.domain.errors import FaultNotFoundError
from faultwatch.domain.models import (
    Condition,
    ConditionMatch,
    DetectedFault,
    DeviceStatus,
    FaultAlert,
    FaultRule,
    FaultStatus,
    FaultType,
    HealthState,
    ModelHealthStatus,
    SensorReading,
    SensorType,
    Severity,
)
from faultwatch.services.engine import FaultDetectionEngine


@pytest.fixture
def alerts() -> list[FaultAlert]:
    return []


@pytest.fixture
def engine(clock: FakeClock, alerts: list[FaultAlert]) -> FaultDetectionEngine:
    return FaultDetectionEngine(alert_sinks=[alerts.append], clock=clock)


class TestAcceptanceScenarios:
    @pytest.mark.asyncio
    async def test_critical_temperature_creates_fault(
        self,
        engine: FaultDetectionEngine,
        make_reading: ReadingFactory,
        alerts: list[FaultAlert],
    ) -> None:
        received: list[DetectedFault] = []
        engine.subscribe_faults(received.append)

        created = await engine.ingest([make_reading("boiler-1", SensorType.TEMPERATURE, 90.0)])

        assert len(created) == 1
        fault = created[0]
        assert fault.severity is Severity.CRITICAL
        assert fault.status is FaultStatus.ACTIVE
        assert "90°C" in fault.description
        assert received == [fault]
        assert len(alerts) == 1 and alerts[0].fault_id == fault.id

        [status] = engine.list_health_statuses("boiler-1")
        assert status.overall_health is HealthState.CRITICAL
        assert status.health_score == 70.0
        assert [f.id for f in status.active_faults] == [fault.id]

    @pytest.mark.asyncio
    async def test_repeated_violations_are_suppressed(
        self,
        engine: FaultDetectionEngine,
        make_reading: ReadingFactory,
        alerts: list[FaultAlert],
    ) -> None:
        received: list[DetectedFault] = []
        engine.subscribe_faults(received.append)

        await engine.ingest([make_reading("boiler-1", SensorType.TEMPERATURE, 90.0)])
        for value in (91.0, 92.0, 93.0):
            repeat = make_reading("boiler-1", SensorType.TEMPERATURE, value)
            assert await engine.ingest([repeat]) == []

        assert len(engine.list_faults()) == 1
        assert len(received) == 1
        assert len(alerts) == 1

    @pytest.mark.asyncio
    async def test_resolved_fault_retriggers(
        self, engine: FaultDetectionEngine, make_reading: ReadingFactory, clock: FakeClock
    ) -> None:
        [first] = await engine.ingest([make_reading("boiler-1", SensorType.TEMPERATURE, 90.0)])
        clock.advance(1800)

        assert engine.resolve(first.id, resolution="Cooling restored").is_ok()
        await engine.run_health_analysis()
        assert engine.list_health_statuses("boiler-1")[0].overall_health is HealthState.HEALTHY

        clock.advance(60)
        [second] = await engine.ingest([make_reading("boiler-1", SensorType.TEMPERATURE, 95.0)])

        assert second.id != first.id
        assert engine.get_fault(first.id).status is FaultStatus.RESOLVED  # type: ignore[union-attr]
        assert len(engine.list_faults(status="active")) == 1
        assert engine.get_statistics().mttr_hours == pytest.approx(0.5)

    @pytest.mark.asyncio
    async def test_statistics_across_entities(
        self, engine: FaultDetectionEngine, make_reading: ReadingFactory
    ) -> None:
        await engine.ingest(
            [
                make_reading("chiller-1", SensorType.TEMPERATURE, 21.0),
                make_reading("gateway-1", SensorType.SIGNAL_STRENGTH, 12.0),
                make_reading("boiler-1", SensorType.TEMPERATURE, 90.0),
            ]
        )

        stats = engine.get_statistics()

        assert stats.total_models == 3
        assert stats.healthy_models == 1
        assert stats.models_with_warnings == 1
        assert stats.critical_models == 1
        assert stats.offline_models == 0
        assert stats.total_faults == 2
        assert stats.active_faults == 2
        assert stats.faults_by_severity == {"medium": 1, "critical": 1}
        assert stats.faults_by_type == {"connectivity": 1, "environmental": 1}


class TestIngestion:
    @pytest.mark.asyncio
    async def test_malformed_items_are_skipped(
        self, engine: FaultDetectionEngine, make_reading: ReadingFactory
    ) -> None:
        created = await engine.ingest(
            [
                {"entity_id": "boiler-1", "sensor_type": "temperature", "value": "hot"},
                {"entity_id": "boiler-1", "sensor_type": "plasma", "value": 1.0},
                {"sensor_type": "temperature", "value": 99.0},
                {"entity_id": "boiler-1", "sensor_type": "temperature", "value": float("nan")},
                42,  # type: ignore[list-item]
                {
                    "entity_id": "boiler-1",
                    "sensor_type": "temperature",
                    "value": 90,
                    "unit": "°C",
                },
            ]
        )

        assert len(created) == 1
        assert created[0].description.endswith("Value: 90°C")
        assert engine.history.size("boiler-1") == 1

    @pytest.mark.asyncio
    async def test_camel_case_payloads_are_ingested(self, engine: FaultDetectionEngine) -> None:
        created = await engine.ingest(
            [
                {
                    "entityId": "gateway-1",
                    "deviceId": "gateway-1-radio",
                    "sensorType": "signal_strength",
                    "value": 12,
                    "unit": "%",
                }
            ]
        )

        assert [f.rule_id for f in created] == ["rule-connectivity-loss"]
        assert created[0].device_id == "gateway-1-radio"
        assert engine.devices.get("gateway-1-radio") is not None

    @pytest.mark.asyncio
    async def test_failing_subscriber_does_not_stop_ingestion(
        self, engine: FaultDetectionEngine, make_reading: ReadingFactory
    ) -> None:
        delivered: list[DetectedFault] = []

        def broken(fault: DetectedFault) -> None:
            raise RuntimeError("consumer bug")

        engine.subscribe_faults(broken)
        engine.subscribe_faults(delivered.append)

        created = await engine.ingest(
            [
                make_reading("boiler-1", SensorType.TEMPERATURE, 90.0),
                make_reading("gateway-1", SensorType.SIGNAL_STRENGTH, 5.0),
            ]
        )

        assert len(created) == 2
        assert delivered == created

    @pytest.mark.asyncio
    async def test_health_subscribers_see_every_entity(
        self, engine: FaultDetectionEngine, make_reading: ReadingFactory
    ) -> None:
        seen: list[ModelHealthStatus] = []
        unsubscribe = engine.subscribe_health(seen.append)

        await engine.ingest([make_reading("a"), make_reading("b")])
        assert sorted(s.entity_id for s in seen) == ["a", "b"]

        unsubscribe()
        await engine.ingest([make_reading("a")])
        assert len(seen) == 2

    @pytest.mark.asyncio
    async def test_entity_scoped_rule_only_applies_to_its_entity(
        self, clock: FakeClock, make_reading: ReadingFactory
    ) -> None:
        rule = FaultRule(
            id="rule-humid-lab",
            name="Lab Humidity",
            entity_id="lab-1",
            fault_type=FaultType.ENVIRONMENTAL,
            severity=Severity.LOW,
            conditions=[Condition(parameter="humidity", operator="outside", value=(30, 60))],
            description="Humidity out of range",
        )
        engine = FaultDetectionEngine(rules=[rule], alert_sinks=[], clock=clock)

        created = await engine.ingest(
            [
                make_reading("lab-1", SensorType.HUMIDITY, 75.0),
                make_reading("office-1", SensorType.HUMIDITY, 75.0),
            ]
        )

        assert [f.entity_id for f in created] == ["lab-1"]
        # A low-severity fault alone keeps the entity healthy
        assert engine.list_health_statuses("lab-1")[0].overall_health is HealthState.HEALTHY
        assert engine.list_health_statuses("lab-1")[0].health_score == 95.0

    @pytest.mark.asyncio
    async def test_all_rule_fires_once_both_parameters_violate(
        self, clock: FakeClock, make_reading: ReadingFactory
    ) -> None:
        rule = FaultRule(
            id="rule-overload",
            name="Resource Overload",
            fault_type=FaultType.PERFORMANCE,
            severity=Severity.HIGH,
            conditions=[
                Condition(parameter="cpu_usage", operator="gt", value=90),
                Condition(parameter="memory_usage", operator="gt", value=85),
            ],
            match=ConditionMatch.ALL,
            description="CPU and memory both saturated",
        )
        engine = FaultDetectionEngine(rules=[rule], alert_sinks=[], clock=clock)

        first = await engine.ingest([make_reading("srv-1", SensorType.CPU_USAGE, 95.0)])
        second = await engine.ingest([make_reading("srv-1", SensorType.MEMORY_USAGE, 90.0)])

        assert first == []
        assert len(second) == 1
        assert second[0].affected_components == ["memory_usage"]


class TestDurationGating:
    @pytest.mark.asyncio
    async def test_vibration_must_be_sustained_when_enforced(
        self, clock: FakeClock, make_reading: ReadingFactory
    ) -> None:
        engine = FaultDetectionEngine(
            DetectionConfig(enforce_condition_duration=True), alert_sinks=[], clock=clock
        )

        assert await engine.ingest([make_reading("fan-1", SensorType.VIBRATION, 12.0)]) == []
        clock.advance(20)
        assert await engine.ingest([make_reading("fan-1", SensorType.VIBRATION, 12.0)]) == []
        clock.advance(10)
        created = await engine.ingest([make_reading("fan-1", SensorType.VIBRATION, 12.0)])

        assert len(created) == 1
        assert created[0].rule_id == "rule-vibration-high"

    @pytest.mark.asyncio
    async def test_offline_entity_restarts_violation_window(
        self, clock: FakeClock, make_reading: ReadingFactory
    ) -> None:
        engine = FaultDetectionEngine(
            DetectionConfig(enforce_condition_duration=True), alert_sinks=[], clock=clock
        )

        def vibration() -> list[SensorReading]:
            return [make_reading("fan-1", SensorType.VIBRATION, 12.0, device_id="fan-1-gw")]

        await engine.ingest(vibration())
        clock.advance(20)
        engine.set_device_status("fan-1-gw", DeviceStatus.OFFLINE)
        clock.advance(15)

        # 35s since the first violation, but only 0s since the device came back
        assert await engine.ingest(vibration()) == []
        clock.advance(30)
        assert len(await engine.ingest(vibration())) == 1

    @pytest.mark.asyncio
    async def test_vibration_fires_immediately_by_default(
        self, engine: FaultDetectionEngine, make_reading: ReadingFactory
    ) -> None:
        created = await engine.ingest([make_reading("fan-1", SensorType.VIBRATION, 12.0)])

        assert [f.rule_id for f in created] == ["rule-vibration-high"]
        status = engine.list_health_statuses("fan-1")[0]
        assert status.overall_health is HealthState.WARNING
        assert status.predictive_insights[0].type == "maintenance"


class TestLifecycleAndQueries:
    @pytest.mark.asyncio
    async def test_acknowledge_keeps_fault_out_of_health(
        self, engine: FaultDetectionEngine, make_reading: ReadingFactory
    ) -> None:
        [fault] = await engine.ingest([make_reading("boiler-1", SensorType.TEMPERATURE, 90.0)])

        result = engine.acknowledge(fault.id, acknowledged_by="operator")
        assert result.is_ok()

        # Health is only refreshed by the next pass
        assert engine.list_health_statuses("boiler-1")[0].overall_health is HealthState.CRITICAL
        await engine.run_health_analysis()
        assert engine.list_health_statuses("boiler-1")[0].overall_health is HealthState.HEALTHY

        stats = engine.get_statistics()
        assert stats.acknowledged_faults == 1
        assert stats.active_faults == 0

    def test_unknown_fault_operations_return_errors(self, engine: FaultDetectionEngine) -> None:
        assert isinstance(engine.acknowledge("nope").unwrap_err(), FaultNotFoundError)
        assert isinstance(engine.resolve("nope").unwrap_err(), FaultNotFoundError)
        assert isinstance(engine.mark_false_positive("nope").unwrap_err(), FaultNotFoundError)
        assert engine.get_fault("nope") is None

    @pytest.mark.asyncio
    async def test_list_faults_filters_and_pages(
        self, engine: FaultDetectionEngine, make_reading: ReadingFactory, clock: FakeClock
    ) -> None:
        for entity_id in ("a", "b", "c"):
            await engine.ingest([make_reading(entity_id, SensorType.TEMPERATURE, 90.0)])
            clock.advance(10)

        assert [f.entity_id for f in engine.list_faults()] == ["c", "b", "a"]
        assert [f.entity_id for f in engine.list_faults(limit=1, offset=1)] == ["b"]
        assert [f.entity_id for f in engine.list_faults(entity_id="a")] == ["a"]
        assert engine.list_faults(status=FaultStatus.RESOLVED) == []
        assert engine.list_health_statuses("unknown") == []

    def test_report_fault_is_listed(self, engine: FaultDetectionEngine) -> None:
        fault = engine.report_fault(
            entity_id="pump-3",
            title="Leak spotted",
            description="Puddle under pump 3",
            severity=Severity.HIGH,
            fault_type=FaultType.STRUCTURAL,
        )

        assert engine.list_faults() == [fault]
        assert engine.get_statistics().total_faults == 1


class TestOfflineDetection:
    @pytest.mark.asyncio
    async def test_entity_goes_offline_when_all_devices_drop(
        self, engine: FaultDetectionEngine, make_reading: ReadingFactory
    ) -> None:
        await engine.ingest([make_reading("pump-1", device_id="pump-1-gw")])

        engine.set_device_status("pump-1-gw", DeviceStatus.OFFLINE)
        await engine.run_health_analysis()

        assert engine.list_health_statuses("pump-1")[0].overall_health is HealthState.OFFLINE
        assert engine.get_statistics().offline_models == 1

        await engine.ingest([make_reading("pump-1", device_id="pump-1-gw")])
        assert engine.list_health_statuses("pump-1")[0].overall_health is HealthState.HEALTHY

    @pytest.mark.asyncio
    async def test_registered_device_without_readings_is_reported(
        self, engine: FaultDetectionEngine
    ) -> None:
        engine.register_device("valve-9-gw", "valve-9")
        engine.set_device_status("valve-9-gw", DeviceStatus.ERROR)

        [status] = await engine.run_health_analysis()

        assert status.entity_id == "valve-9"
        assert status.overall_health is HealthState.OFFLINE


class TestPeriodicAnalysis:
    @pytest.mark.asyncio
    async def test_session_runs_periodic_analysis_and_stops(self, clock: FakeClock) -> None:
        engine = FaultDetectionEngine(
            DetectionConfig(health_analysis_interval_seconds=0.01), alert_sinks=[], clock=clock
        )
        engine.register_device("dev-1", "twin-1")
        passes: list[ModelHealthStatus] = []
        engine.subscribe_health(passes.append)

        async with engine.monitoring_session():
            assert engine.is_running
            await asyncio.sleep(0.1)

        assert not engine.is_running
        assert len(passes) >= 2

    @pytest.mark.asyncio
    async def test_analysis_failure_does_not_kill_the_loop(
        self, clock: FakeClock, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        engine = FaultDetectionEngine(
            DetectionConfig(health_analysis_interval_seconds=0.01), alert_sinks=[], clock=clock
        )
        calls = 0
        recovered = asyncio.Event()

        def flaky(entity_ids: object = None) -> list[ModelHealthStatus]:
            nonlocal calls
            calls += 1
            if calls == 1:
                raise RuntimeError("transient")
            recovered.set()
            return []

        monkeypatch.setattr(engine.health, "recompute", flaky)

        engine.start()
        engine.start()  # already running
        await asyncio.wait_for(recovered.wait(), timeout=2.0)
        await engine.stop()

        assert calls >= 2
        assert not engine.is_running

    @pytest.mark.asyncio
    async def test_stop_waits_for_async_alert_sinks(
        self, clock: FakeClock, make_reading: ReadingFactory
    ) -> None:
        delivered: list[FaultAlert] = []

        async def webhook(alert: FaultAlert) -> None:
            await asyncio.sleep(0.01)
            delivered.append(alert)

        engine = FaultDetectionEngine(alert_sinks=[webhook], clock=clock)
        await engine.ingest([make_reading("boiler-1", SensorType.TEMPERATURE, 90.0)])
        await engine.stop()

        assert len(delivered) == 1
