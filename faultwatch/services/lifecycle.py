"""
Fault lifecycle transitions.

    active ──> acknowledged ──> resolved
       │                          ^
       ├──────────────────────────┘
       └──> false_positive

Transitions replace the stored record and never touch health: the next
aggregation pass picks them up. Every call returns a Result; nothing here
raises into the caller.
"""

from collections.abc import Callable
from datetime import datetime

import structlog

from faultwatch.domain.errors import FaultNotFoundError, InvalidTransitionError
from faultwatch.domain.models import DetectedFault, FaultStatus, utc_now
from faultwatch.services.faults import FaultStore
from faultwatch.services.result import Result

logger = structlog.get_logger(__name__)

LifecycleResult = Result[DetectedFault, FaultNotFoundError | InvalidTransitionError]


class FaultLifecycle:
    def __init__(self, store: FaultStore, clock: Callable[[], datetime] = utc_now) -> None:
        self.store = store
        self.clock = clock
        self.logger = logger.bind(component="fault_lifecycle")

    def _lookup(self, fault_id: str) -> DetectedFault | None:
        fault = self.store.get(fault_id)
        if fault is None:
            self.logger.warning("fault_not_found", fault_id=fault_id)
        return fault

    def _rejected(self, fault: DetectedFault, target: FaultStatus) -> LifecycleResult:
        self.logger.warning(
            "fault_transition_rejected",
            fault_id=fault.id,
            current=fault.status.value,
            target=target.value,
        )
        return Result.err(InvalidTransitionError(fault.id, fault.status.value, target.value))

    def acknowledge(self, fault_id: str, acknowledged_by: str | None = None) -> LifecycleResult:
        """Move an active fault to acknowledged. Any other status is left untouched."""
        fault = self._lookup(fault_id)
        if fault is None:
            return Result.err(FaultNotFoundError(fault_id))
        if fault.status is not FaultStatus.ACTIVE:
            return self._rejected(fault, FaultStatus.ACKNOWLEDGED)

        updated = fault.model_copy(
            update={
                "status": FaultStatus.ACKNOWLEDGED,
                "acknowledged_at": self.clock(),
                "acknowledged_by": acknowledged_by,
            }
        )
        self.store.replace(updated)
        self.logger.info("fault_acknowledged", fault_id=fault_id, acknowledged_by=acknowledged_by)
        return Result.ok(updated)

    def resolve(
        self,
        fault_id: str,
        resolution: str | None = None,
        resolved_by: str | None = None,
    ) -> LifecycleResult:
        """
        Resolve an active or acknowledged fault and stamp the resolution time.

        Resolving an already resolved fault is a no-op that keeps the original
        timestamp. False positives cannot be resolved.
        """
        fault = self._lookup(fault_id)
        if fault is None:
            return Result.err(FaultNotFoundError(fault_id))
        if fault.status is FaultStatus.RESOLVED:
            return Result.ok(fault)
        if fault.status is FaultStatus.FALSE_POSITIVE:
            return self._rejected(fault, FaultStatus.RESOLVED)

        diagnostic_data = fault.diagnostic_data
        if resolution:
            diagnostic_data = diagnostic_data.model_copy(update={"resolution": resolution})

        updated = fault.model_copy(
            update={
                "status": FaultStatus.RESOLVED,
                "resolved_at": self.clock(),
                "resolved_by": resolved_by,
                "diagnostic_data": diagnostic_data,
            }
        )
        self.store.replace(updated)
        self.logger.info("fault_resolved", fault_id=fault_id, resolved_by=resolved_by)
        return Result.ok(updated)

    def mark_false_positive(self, fault_id: str) -> LifecycleResult:
        """Dismiss an active fault that should never have fired."""
        fault = self._lookup(fault_id)
        if fault is None:
            return Result.err(FaultNotFoundError(fault_id))
        if fault.status is not FaultStatus.ACTIVE:
            return self._rejected(fault, FaultStatus.FALSE_POSITIVE)

        updated = fault.model_copy(update={"status": FaultStatus.FALSE_POSITIVE})
        self.store.replace(updated)
        self.logger.info("fault_marked_false_positive", fault_id=fault_id)
        return Result.ok(updated)
