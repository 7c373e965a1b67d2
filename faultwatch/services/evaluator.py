"""
Rule evaluation against incoming sensor readings.

``RuleEvaluator`` is a pure function of (rule, reading, latest values): no
hidden state, no side effects. Sustained-violation tracking lives separately
in ``DurationGate`` so the evaluation itself stays deterministic.
"""

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime

import structlog

from faultwatch.domain.models import (
    Condition,
    ConditionMatch,
    ConditionOperator,
    FaultRule,
    SensorReading,
)

logger = structlog.get_logger(__name__)


def condition_holds(condition: Condition, value: float) -> bool:
    """Compare a raw value against a condition's threshold (no unit conversion)."""
    operator = condition.operator
    threshold = condition.value

    if operator == ConditionOperator.GT:
        return value > threshold  # type: ignore[operator]
    if operator == ConditionOperator.LT:
        return value < threshold  # type: ignore[operator]
    if operator == ConditionOperator.EQ:
        return value == threshold
    if operator == ConditionOperator.NE:
        return value != threshold
    if operator == ConditionOperator.BETWEEN:
        low, high = threshold  # type: ignore[misc]
        return low <= value <= high
    if operator == ConditionOperator.OUTSIDE:
        low, high = threshold  # type: ignore[misc]
        return value < low or value > high
    return False


@dataclass(frozen=True)
class RuleMatch:
    """A rule satisfied by one reading, with the conditions that held."""

    rule: FaultRule
    reading: SensorReading
    condition_indexes: tuple[int, ...]


class RuleEvaluator:
    """Decides which rules a reading satisfies."""

    def __init__(self) -> None:
        self.logger = logger.bind(component="rule_evaluator")

    def evaluate(
        self,
        rule: FaultRule,
        reading: SensorReading,
        latest: Mapping[str, float] | None = None,
    ) -> RuleMatch | None:
        """
        Return a match if the reading satisfies the rule, else None.

        ANY rules need one condition on the reading's own parameter to hold.
        ALL rules need every condition to hold; conditions on other parameters
        are checked against ``latest`` (the entity's most recent values), and
        at least one condition must target the incoming reading.
        """
        parameter = reading.sensor_type.value

        if rule.match is ConditionMatch.ANY:
            held = tuple(
                index
                for index, condition in enumerate(rule.conditions)
                if condition.parameter == parameter and condition_holds(condition, reading.value)
            )
            if not held:
                return None
            return self._matched(RuleMatch(rule, reading, held))

        if not any(condition.parameter == parameter for condition in rule.conditions):
            return None

        latest = latest or {}
        for condition in rule.conditions:
            value = reading.value if condition.parameter == parameter else latest.get(
                condition.parameter
            )
            if value is None or not condition_holds(condition, value):
                return None

        return self._matched(RuleMatch(rule, reading, tuple(range(len(rule.conditions)))))

    def _matched(self, match: RuleMatch) -> RuleMatch:
        self.logger.debug(
            "rule_matched",
            rule_id=match.rule.id,
            entity_id=match.reading.entity_id,
            sensor_type=match.reading.sensor_type.value,
        )
        return match


class DurationGate:
    """
    Sliding-window confirmation for conditions that declare a duration.

    Tracks when each (rule, entity, condition) pair first started violating.
    A non-violating reading of the same parameter clears the window.
    When disabled, every match is confirmed immediately.
    """

    def __init__(self, enabled: bool = False) -> None:
        self.enabled = enabled
        self._first_violation: dict[tuple[str, str, int], datetime] = {}
        self.logger = logger.bind(component="duration_gate")

    def observe(self, rule: FaultRule, reading: SensorReading) -> None:
        """Update violation windows for the rule's conditions on this reading's parameter."""
        if not self.enabled:
            return
        parameter = reading.sensor_type.value
        for index, condition in enumerate(rule.conditions):
            if condition.parameter != parameter or condition.duration_seconds is None:
                continue
            key = (rule.id, reading.entity_id, index)
            if condition_holds(condition, reading.value):
                self._first_violation.setdefault(key, reading.timestamp)
            else:
                self._first_violation.pop(key, None)

    def _sustained(self, rule: FaultRule, entity_id: str, index: int, now: datetime) -> bool:
        duration = rule.conditions[index].duration_seconds
        if duration is None:
            return True
        first = self._first_violation.get((rule.id, entity_id, index))
        return first is not None and (now - first).total_seconds() >= duration

    def confirm(self, match: RuleMatch) -> bool:
        if not self.enabled:
            return True

        rule, reading = match.rule, match.reading
        indexes = (
            match.condition_indexes
            if rule.match is ConditionMatch.ANY
            else tuple(range(len(rule.conditions)))
        )
        check = any if rule.match is ConditionMatch.ANY else all
        confirmed = check(
            self._sustained(rule, reading.entity_id, index, reading.timestamp) for index in indexes
        )
        if not confirmed:
            self.logger.debug(
                "match_pending_duration", rule_id=rule.id, entity_id=reading.entity_id
            )
        return confirmed

    def reset(self, entity_id: str) -> None:
        """Forget every open violation window for the entity."""
        stale = [key for key in self._first_violation if key[1] == entity_id]
        for key in stale:
            del self._first_violation[key]
        if stale:
            self.logger.debug("violation_windows_reset", entity_id=entity_id, windows=len(stale))
