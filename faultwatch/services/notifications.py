"""
Subscriber fan-out and user-facing alert dispatch.

Subscribers are called synchronously in registration order; a failing
subscriber is logged and skipped. Alert sinks are fire-and-forget: a sink that
returns an awaitable is finished as a background task, so a slow sink never
stalls ingestion.
"""

import asyncio
import inspect
from collections import deque
from collections.abc import Awaitable, Callable
from typing import Generic, TypeVar

import structlog

from faultwatch.domain.models import DetectedFault, FaultAlert, Severity

logger = structlog.get_logger(__name__)

EventT = TypeVar("EventT")

Unsubscribe = Callable[[], None]
AlertSink = Callable[[FaultAlert], None] | Callable[[FaultAlert], Awaitable[None]]


class SubscriberList(Generic[EventT]):
    """Ordered list of callbacks for one event kind."""

    def __init__(self, name: str) -> None:
        self.name = name
        self._entries: list[tuple[object, Callable[[EventT], None]]] = []
        self.logger = logger.bind(component="subscriber_list", channel=name)

    def subscribe(self, callback: Callable[[EventT], None]) -> Unsubscribe:
        """Register a callback; the returned function removes exactly this registration."""
        handle = object()
        self._entries.append((handle, callback))

        def unsubscribe() -> None:
            for index, (entry_handle, _) in enumerate(self._entries):
                if entry_handle is handle:
                    del self._entries[index]
                    return

        return unsubscribe

    def notify(self, event: EventT) -> int:
        """Deliver to every current subscriber. Returns how many succeeded."""
        delivered = 0
        for _, callback in list(self._entries):
            try:
                callback(event)
                delivered += 1
            except Exception as e:
                self.logger.exception(
                    "subscriber_failed",
                    callback=getattr(callback, "__qualname__", repr(callback)),
                    error=str(e),
                )
        return delivered

    def __len__(self) -> int:
        return len(self._entries)


class LoggingAlertSink:
    """Default sink: writes the alert to the structured log."""

    def __init__(self) -> None:
        self.logger = logger.bind(component="alert_sink")

    def __call__(self, alert: FaultAlert) -> None:
        if alert.severity in (Severity.HIGH, Severity.CRITICAL):
            log = self.logger.error
        else:
            log = self.logger.warning

        log(
            "fault_alert",
            title=alert.title,
            message=alert.message,
            severity=alert.severity.value,
            entity_id=alert.entity_id,
            fault_id=alert.fault_id,
            persistent=alert.persistent,
        )


class AlertDispatcher:
    """Raises alerts for new faults through the configured sinks."""

    def __init__(self, sinks: list[AlertSink] | None = None, history_size: int = 1000) -> None:
        self.sinks: list[AlertSink] = list(sinks) if sinks is not None else [LoggingAlertSink()]
        self.alert_history: deque[FaultAlert] = deque(maxlen=history_size)
        self._pending: set[asyncio.Task[None]] = set()
        self.logger = logger.bind(component="alert_dispatcher")

    def add_sink(self, sink: AlertSink) -> None:
        self.sinks.append(sink)
        self.logger.info("alert_sink_added", sink_type=type(sink).__name__)

    def fault_alert(self, fault: DetectedFault) -> FaultAlert:
        """Fault alerts stay on screen until dismissed."""
        return FaultAlert(
            title=f"Fault Detected: {fault.title}",
            message=fault.description,
            severity=fault.severity,
            persistent=True,
            fault_id=fault.id,
            entity_id=fault.entity_id,
        )

    def raise_for_fault(self, fault: DetectedFault) -> FaultAlert:
        alert = self.fault_alert(fault)
        self.dispatch(alert)
        return alert

    def dispatch(self, alert: FaultAlert) -> None:
        self.alert_history.append(alert)

        for sink in self.sinks:
            try:
                outcome = sink(alert)
            except Exception as e:
                self.logger.error("alert_dispatch_failed", error=str(e), alert_title=alert.title)
                continue
            if inspect.isawaitable(outcome):
                self._schedule(outcome, alert)

    def _schedule(self, delivery: Awaitable[None], alert: FaultAlert) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self.logger.warning("alert_sink_skipped_no_loop", alert_title=alert.title)
            if inspect.iscoroutine(delivery):
                delivery.close()
            return

        task = loop.create_task(self._await_delivery(delivery, alert))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _await_delivery(self, delivery: Awaitable[None], alert: FaultAlert) -> None:
        try:
            await delivery
        except Exception as e:
            self.logger.error("alert_dispatch_failed", error=str(e), alert_title=alert.title)

    async def drain(self) -> None:
        """Wait for in-flight asynchronous sinks to finish."""
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)
