"""
Integration service that wires reading collection to the fault detection engine.

End-to-end pipeline:
1. Collect reading batches from every registered source
2. Feed each batch to the engine (rules, faults, alerts, health)
3. Report cross-entity statistics after every cycle
"""

import asyncio
from collections.abc import AsyncIterator
from datetime import UTC, datetime

import structlog

from faultwatch.config import AppConfig, get_config
from faultwatch.domain.models import FaultDetectionStatistics, FaultRule
from faultwatch.log import configure_logging
from faultwatch.services.engine import FaultDetectionEngine
from faultwatch.services.ingress import ReadingCollector, ReadingSource
from faultwatch.services.notifications import AlertSink

logger = structlog.get_logger(__name__)


class TwinMonitoringService:
    """
    Orchestrates collection and detection for a fleet of monitored entities.

    Owns one ReadingCollector and one FaultDetectionEngine; everything else
    (queries, lifecycle, subscriptions) goes through ``self.engine``.
    """

    def __init__(
        self,
        config: AppConfig | None = None,
        rules: list[FaultRule] | None = None,
        alert_sinks: list[AlertSink] | None = None,
    ) -> None:
        self.config = config or get_config()
        configure_logging(self.config.logging)
        self.logger = logger.bind(component="twin_monitoring")

        self.collector = ReadingCollector(self.config.collection)
        self.engine = FaultDetectionEngine(
            self.config.detection, rules=rules, alert_sinks=alert_sinks
        )
        self._is_running = False

    def add_source(self, source: ReadingSource) -> None:
        self.collector.add_source(source)

    async def run_monitoring_cycle(self) -> FaultDetectionStatistics | None:
        """
        Execute one collection and detection cycle.

        Returns None when no source produced readings.
        """
        cycle_start = datetime.now(UTC)

        try:
            async with self.collector.collection_session():
                readings_result = await self.collector.collect_once()

            if readings_result.is_err():
                self.logger.warning(
                    "no_readings_collected", error=str(readings_result.unwrap_err())
                )
                return None

            readings = readings_result.unwrap()
            new_faults = await self.engine.ingest(readings)
            statistics = self.engine.get_statistics()

            cycle_duration = (datetime.now(UTC) - cycle_start).total_seconds()
            self.logger.info(
                "monitoring_cycle_completed",
                total_readings=len(readings),
                new_faults=len(new_faults),
                active_faults=statistics.active_faults,
                critical_models=statistics.critical_models,
                duration_seconds=round(cycle_duration, 3),
            )
            return statistics

        except Exception as e:
            self.logger.exception("monitoring_cycle_failed", error=str(e))
            return None

    async def run_continuous_monitoring(self) -> AsyncIterator[FaultDetectionStatistics]:
        """
        Run cycles on the collection interval, yielding statistics after each one.

        Closing the generator also stops the engine's periodic health analysis.
        """
        interval = self.config.collection.collection_interval_seconds
        self.logger.info("continuous_monitoring_starting", interval=interval)
        self._is_running = True
        self.engine.start()

        try:
            while self._is_running:
                cycle_start = datetime.now(UTC)

                statistics = await self.run_monitoring_cycle()
                if statistics is not None:
                    yield statistics

                elapsed = (datetime.now(UTC) - cycle_start).total_seconds()
                sleep_time = max(0.0, interval - elapsed)
                if sleep_time > 0:
                    await asyncio.sleep(sleep_time)

        except asyncio.CancelledError:
            self.logger.info("continuous_monitoring_cancelled")
            raise
        finally:
            self._is_running = False
            await self.engine.stop()

    async def stop(self) -> None:
        """Gracefully stop monitoring and the engine's background analysis."""
        self.logger.info("stopping_monitoring_service")
        self._is_running = False
        await self.engine.stop()
