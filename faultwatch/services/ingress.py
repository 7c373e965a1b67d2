"""
Sensor reading ingress.

Key patterns:
- Protocol-based dependency injection for reading sources
- Result values for expected source failures
- Async context manager for the collection session lifecycle
- Structured concurrency with asyncio.TaskGroup
"""

import asyncio
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Protocol

import structlog

from faultwatch.config import CollectionConfig
from faultwatch.domain.models import SensorReading
from faultwatch.services.result import Result

logger = structlog.get_logger(__name__)


class ReadingSource(Protocol):
    """
    Anything that can deliver a batch of sensor readings.

    Real deployments plug in device telemetry (MQTT, websocket, REST
    polling); the engine only needs the batch.
    """

    source_name: str

    async def collect_readings(self) -> Result[list[SensorReading], Exception]:
        """
        Collect the readings produced since the previous call.

        Returns:
            Result[list[SensorReading], Exception]: the batch, or the failure.
        """
        ...


class ReadingCollector:
    """
    Gathers reading batches from every registered source.

    Design principles:
    - Graceful degradation (a failing or slow source never blocks the others)
    - Observable (structured logging per collection)
    - Bounded (per-source timeout, capped concurrency)
    """

    def __init__(self, config: CollectionConfig | None = None) -> None:
        self.config = config or CollectionConfig()
        self.sources: list[ReadingSource] = []
        self.logger = logger.bind(component="reading_collector")
        self._is_running: bool = False
        self._semaphore = asyncio.Semaphore(self.config.max_concurrent_sources)

    def add_source(self, source: ReadingSource) -> None:
        """Add a reading source. Validates source implements the protocol."""
        if not hasattr(source, "collect_readings"):
            raise TypeError(f"Source {source} must implement ReadingSource protocol")
        self.sources.append(source)
        self.logger.info("source_added", source_name=source.source_name)

    def remove_source(self, source: ReadingSource) -> None:
        self.sources.remove(source)
        self.logger.info("source_removed", source_name=source.source_name)

    @property
    def is_running(self) -> bool:
        return self._is_running

    @asynccontextmanager
    async def collection_session(self) -> AsyncIterator["ReadingCollector"]:
        self.logger.info("collection_session_started")
        self._is_running = True

        try:
            yield self
        finally:
            self._is_running = False
            self.logger.info("collection_session_ended")

    async def _collect_from(self, source: ReadingSource) -> Result[list[SensorReading], Exception]:
        async with self._semaphore:
            try:
                return await asyncio.wait_for(
                    source.collect_readings(), timeout=self.config.timeout_seconds
                )
            except TimeoutError as e:
                self.logger.warning("source_collection_timeout", source=source.source_name)
                return Result.err(e)
            except Exception as e:
                self.logger.exception(
                    "unexpected_source_collection_error", source=source.source_name, error=str(e)
                )
                return Result.err(e)

    async def collect_once(self) -> Result[list[SensorReading], Exception]:
        """
        Collect from all sources concurrently.

        Partial failures are logged and skipped; the result is an error only
        when every source failed.
        """
        if not self._is_running:
            raise RuntimeError("Collector not running - use collection_session()")

        start_time = time.perf_counter()
        readings: list[SensorReading] = []

        async with asyncio.TaskGroup() as task_group:
            tasks = [
                (source, task_group.create_task(self._collect_from(source)))
                for source in self.sources
            ]

        successful = 0
        last_error: Exception | None = None
        for source, task in tasks:
            result = task.result()
            if result.is_ok():
                readings.extend(result.unwrap())
                successful += 1
            else:
                last_error = result.unwrap_err()
                self.logger.warning(
                    "source_collection_failed", source=source.source_name, error=str(last_error)
                )

        duration = time.perf_counter() - start_time
        self.logger.info(
            "reading_collection_completed",
            total_readings=len(readings),
            successful_sources=successful,
            total_sources=len(self.sources),
            duration_seconds=round(duration, 3),
        )

        if self.sources and successful == 0 and last_error is not None:
            return Result.err(last_error)
        return Result.ok(readings)

    async def collect_continuously(self) -> AsyncIterator[list[SensorReading]]:
        """Yield one batch per collection interval until the session ends."""
        self.logger.info(
            "reading_collection_started", interval_seconds=self.config.collection_interval_seconds
        )

        while self._is_running:
            started = time.perf_counter()

            result = await self.collect_once()
            if result.is_ok():
                yield result.unwrap()
            else:
                self.logger.warning("reading_batch_skipped", error=str(result.unwrap_err()))

            elapsed = time.perf_counter() - started
            sleep_time = max(0.0, self.config.collection_interval_seconds - elapsed)
            if sleep_time > 0:
                await asyncio.sleep(sleep_time)
            else:
                self.logger.warning(
                    "reading_collection_slower_than_interval",
                    elapsed_seconds=round(elapsed, 3),
                    interval_seconds=self.config.collection_interval_seconds,
                )
