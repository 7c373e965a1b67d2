"""
End-to-end simulation of the fault detection pipeline.

This script exercises:
1. Configuration loading and validation
2. Reading collection from simulated telemetry
3. Rule evaluation, fault creation and duplicate suppression
4. Fault lifecycle (acknowledge, resolve, re-trigger)
5. The integrated monitoring service

Run with: uv run python run_simulation.py
"""

import asyncio
import random
from datetime import UTC, datetime

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from adapters.telemetry.simulator import SimulatedTelemetrySource
from faultwatch.config import get_config, print_config_summary, validate_config
from faultwatch.domain.models import FaultAlert, SensorReading, SensorType
from faultwatch.log import configure_logging
from faultwatch.services.engine import FaultDetectionEngine
from faultwatch.services.ingress import ReadingCollector
from faultwatch.services.integrated_monitoring import TwinMonitoringService

console = Console()

SEVERITY_STYLES = {"low": "green", "medium": "yellow", "high": "red", "critical": "bold red"}
HEALTH_STYLES = {"healthy": "green", "warning": "yellow", "critical": "red", "offline": "dim"}


def console_alert_sink(alert: FaultAlert) -> None:
    style = SEVERITY_STYLES.get(alert.severity.value, "white")
    console.print(f"ALERT [{alert.severity.value.upper()}] {alert.title}", style=style)
    console.print(f"  {alert.message}")


def reading(entity_id: str, sensor_type: SensorType, value: float, unit: str) -> SensorReading:
    return SensorReading(
        entity_id=entity_id,
        sensor_type=sensor_type,
        value=value,
        unit=unit,
        timestamp=datetime.now(UTC),
    )


async def check_configuration() -> bool:
    console.print(Panel("Checking Configuration", style="blue"))

    try:
        validate_config()
        print_config_summary()
        console.print("Configuration loaded successfully", style="green")
        return True

    except Exception as e:
        console.print(f"Configuration check failed: {e}", style="red")
        return False


async def check_reading_collection() -> bool:
    console.print(Panel("Checking Reading Collection", style="blue"))

    try:
        rng = random.Random(7)
        collector = ReadingCollector(get_config().collection)
        collector.add_source(SimulatedTelemetrySource("pump-1", "normal", failure_rate=0, rng=rng))
        collector.add_source(
            SimulatedTelemetrySource("boiler-1", "overheating", failure_rate=0, rng=rng)
        )

        async with collector.collection_session():
            readings_result = await collector.collect_once()

        if readings_result.is_err():
            raise readings_result.unwrap_err()

        readings = readings_result.unwrap()
        console.print(
            f"Collected {len(readings)} readings from "
            f"{len({r.entity_id for r in readings})} entities",
            style="green",
        )

        table = Table(title="Collected Readings")
        table.add_column("Entity", style="cyan")
        table.add_column("Sensor", style="magenta")
        table.add_column("Value", style="green")
        table.add_column("Status", style="yellow")

        for r in readings[:12]:
            table.add_row(
                r.entity_id, r.sensor_type.value, f"{r.value:.1f}{r.unit}", r.status.value
            )

        console.print(table)
        return True

    except Exception as e:
        console.print(f"Reading collection check failed: {e}", style="red")
        return False


async def check_fault_detection() -> bool:
    console.print(Panel("Checking Fault Detection", style="blue"))

    try:
        engine = FaultDetectionEngine(get_config().detection, alert_sinks=[console_alert_sink])

        created = await engine.ingest([reading("boiler-1", SensorType.TEMPERATURE, 90.0, "°C")])
        repeats = await engine.ingest(
            [reading("boiler-1", SensorType.TEMPERATURE, 91.0, "°C") for _ in range(3)]
        )
        console.print(
            f"First batch created {len(created)} fault(s); repeats created {len(repeats)}",
            style="green" if len(created) == 1 and not repeats else "red",
        )

        fault = created[0]
        engine.acknowledge(fault.id, acknowledged_by="operator")
        engine.resolve(fault.id, resolution="Replaced coolant pump", resolved_by="operator")
        retriggered = await engine.ingest(
            [reading("boiler-1", SensorType.TEMPERATURE, 92.0, "°C")]
        )
        console.print(
            f"After resolution the rule re-triggered {len(retriggered)} new fault(s)",
            style="green" if len(retriggered) == 1 else "red",
        )

        table = Table(title="Health Statuses")
        table.add_column("Entity", style="cyan")
        table.add_column("Health", style="white")
        table.add_column("Score", style="white")
        table.add_column("Active Faults", style="white")

        for status in engine.list_health_statuses():
            table.add_row(
                status.entity_id,
                f"[{HEALTH_STYLES[status.overall_health.value]}]"
                f"{status.overall_health.value.upper()}[/]",
                f"{status.health_score:.0f}",
                str(len(status.active_faults)),
            )

        console.print(table)
        await engine.stop()
        return len(created) == 1 and not repeats and len(retriggered) == 1

    except Exception as e:
        console.print(f"Fault detection check failed: {e}", style="red")
        return False


async def check_integrated_system() -> bool:
    console.print(Panel("Checking Integrated System", style="blue"))

    try:
        service = TwinMonitoringService(alert_sinks=[console_alert_sink])
        rng = random.Random(11)

        scenarios = [
            ("chiller-1", "normal"),
            ("boiler-1", "overheating"),
            ("fan-1", "vibration"),
            ("gateway-1", "degraded_link"),
        ]
        for entity_id, scenario in scenarios:
            service.add_source(
                SimulatedTelemetrySource(entity_id, scenario, failure_rate=0, rng=rng)
            )

        console.print(f"Added {len(scenarios)} entities to monitor", style="green")
        statistics = await service.run_monitoring_cycle()
        await service.stop()

        if statistics is None:
            console.print("Monitoring cycle returned no results", style="red")
            return False

        summary = Table(title="Monitoring Summary")
        summary.add_column("Metric", style="cyan")
        summary.add_column("Value", style="white")

        summary.add_row("Entities Monitored", str(statistics.total_models))
        summary.add_row("Healthy", str(statistics.healthy_models))
        summary.add_row("Warning", str(statistics.models_with_warnings))
        summary.add_row("Critical", str(statistics.critical_models))
        summary.add_row("Active Faults", str(statistics.active_faults))
        summary.add_row(
            "Faults by Severity",
            ", ".join(f"{k}={v}" for k, v in sorted(statistics.faults_by_severity.items())),
        )

        console.print(summary)
        return True

    except Exception as e:
        console.print(f"Integrated system check failed: {e}", style="red")
        return False


async def run_all_checks() -> None:
    configure_logging(get_config().logging)
    console.print(Panel("Fault Detection Engine - Simulation", style="bold blue"))

    checks = [
        ("Configuration", check_configuration),
        ("Reading Collection", check_reading_collection),
        ("Fault Detection", check_fault_detection),
        ("Integrated System", check_integrated_system),
    ]

    results = []
    for name, check in checks:
        console.print(f"\n{'=' * 60}")
        results.append((name, await check()))

    console.print(f"\n{'=' * 60}")
    summary = Table(title="Simulation Results")
    summary.add_column("Check", style="cyan")
    summary.add_column("Result", style="white")

    passed = 0
    for name, ok in results:
        summary.add_row(name, "[green]PASSED[/]" if ok else "[red]FAILED[/]")
        passed += ok

    console.print(summary)
    console.print(f"\nResults: {passed}/{len(results)} checks passed")


if __name__ == "__main__":
    try:
        asyncio.run(run_all_checks())
    except KeyboardInterrupt:
        console.print("\nSimulation stopped by user", style="yellow")
