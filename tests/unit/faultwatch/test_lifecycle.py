"""Fault lifecycle transitions and their error results."""

import pytest

from conftest import FakeClock
from faultwatch.domain.errors import FaultNotFoundError, InvalidTransitionError
from faultwatch.domain.models import DetectedFault, FaultStatus, FaultType, Severity
from faultwatch.services.faults import FaultStore
from faultwatch.services.lifecycle import FaultLifecycle


@pytest.fixture
def store() -> FaultStore:
    store = FaultStore()
    store.add(
        DetectedFault(
            id="fault-1",
            rule_id="rule-vibration-high",
            entity_id="fan-1",
            fault_type=FaultType.STRUCTURAL,
            severity=Severity.HIGH,
            title="High Vibration Detection",
            description="Sustained high vibration levels detected - Value: 12mm/s",
        )
    )
    return store


@pytest.fixture
def lifecycle(store: FaultStore, clock: FakeClock) -> FaultLifecycle:
    return FaultLifecycle(store, clock)


def test_acknowledge_active_fault(
    lifecycle: FaultLifecycle, store: FaultStore, clock: FakeClock
) -> None:
    result = lifecycle.acknowledge("fault-1", acknowledged_by="alice")

    assert result.is_ok()
    fault = result.unwrap()
    assert fault.status is FaultStatus.ACKNOWLEDGED
    assert fault.acknowledged_by == "alice"
    assert fault.acknowledged_at == clock()
    assert store.get("fault-1") == fault
    assert store.find_active("rule-vibration-high", "fan-1") is None


def test_acknowledge_twice_is_rejected_without_change(
    lifecycle: FaultLifecycle, store: FaultStore, clock: FakeClock
) -> None:
    first = lifecycle.acknowledge("fault-1", acknowledged_by="alice").unwrap()
    clock.advance(60)

    result = lifecycle.acknowledge("fault-1", acknowledged_by="bob")

    assert result.is_err()
    error = result.unwrap_err()
    assert isinstance(error, InvalidTransitionError)
    assert error.current == "acknowledged"
    assert error.target == "acknowledged"
    assert store.get("fault-1") == first


def test_resolve_records_resolution(
    lifecycle: FaultLifecycle, store: FaultStore, clock: FakeClock
) -> None:
    lifecycle.acknowledge("fault-1")
    clock.advance(3600)

    result = lifecycle.resolve("fault-1", resolution="Rebalanced fan", resolved_by="alice")

    fault = result.unwrap()
    assert fault.status is FaultStatus.RESOLVED
    assert fault.resolved_at == clock()
    assert fault.resolved_by == "alice"
    assert fault.diagnostic_data.resolution == "Rebalanced fan"


def test_resolve_directly_from_active(lifecycle: FaultLifecycle) -> None:
    assert lifecycle.resolve("fault-1").unwrap().status is FaultStatus.RESOLVED


def test_resolve_twice_keeps_original_timestamp(
    lifecycle: FaultLifecycle, clock: FakeClock
) -> None:
    first = lifecycle.resolve("fault-1").unwrap()
    clock.advance(600)

    second = lifecycle.resolve("fault-1", resolution="late note")

    assert second.is_ok()
    assert second.unwrap().resolved_at == first.resolved_at
    assert second.unwrap().diagnostic_data.resolution is None


def test_false_positive_only_from_active(lifecycle: FaultLifecycle) -> None:
    assert lifecycle.mark_false_positive("fault-1").unwrap().status is FaultStatus.FALSE_POSITIVE

    assert lifecycle.mark_false_positive("fault-1").is_err()
    assert isinstance(lifecycle.resolve("fault-1").unwrap_err(), InvalidTransitionError)
    assert lifecycle.acknowledge("fault-1").is_err()


@pytest.mark.parametrize("operation", ["acknowledge", "resolve", "mark_false_positive"])
def test_unknown_fault_returns_not_found(lifecycle: FaultLifecycle, operation: str) -> None:
    result = getattr(lifecycle, operation)("missing")

    assert result.is_err()
    error = result.unwrap_err()
    assert isinstance(error, FaultNotFoundError)
    assert error.fault_id == "missing"

    with pytest.raises(FaultNotFoundError, match="Fault not found: missing"):
        result.unwrap()
