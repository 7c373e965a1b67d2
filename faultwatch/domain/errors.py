"""
Exception types for the fault detection engine.

Most of these are never raised across the engine boundary: lifecycle calls
return them inside a Result so callers can report the failure without the
processing pipeline ever seeing an exception.
"""


class FaultWatchError(Exception):
    """Base exception for all engine errors."""


class FaultNotFoundError(FaultWatchError):
    """Raised when a fault id does not exist in the store."""

    def __init__(self, fault_id: str) -> None:
        super().__init__(f"Fault not found: {fault_id}")
        self.fault_id = fault_id


class InvalidTransitionError(FaultWatchError):
    """Raised when a lifecycle transition is not allowed from the current status."""

    def __init__(self, fault_id: str, current: str, target: str) -> None:
        super().__init__(f"Fault {fault_id} cannot move from '{current}' to '{target}'")
        self.fault_id = fault_id
        self.current = current
        self.target = target


class MalformedReadingError(FaultWatchError):
    """Raised when an ingested item cannot be turned into a SensorReading."""


class ConfigurationError(FaultWatchError):
    """Raised when configuration is invalid or missing."""
