"""
In-memory rule store seeded with the default fault-detection rules.

Rules are immutable models: stamping ``last_triggered`` swaps in an updated
copy, so a rule object already handed out never changes underneath its holder.
"""

from collections.abc import Iterator
from datetime import datetime

import structlog

from faultwatch.domain.models import (
    Condition,
    ConditionOperator,
    FaultRule,
    FaultType,
    Severity,
    utc_now,
)

logger = structlog.get_logger(__name__)


def default_rules() -> list[FaultRule]:
    """Rules every engine starts with. Thresholds are tunable, not behavior."""
    now = utc_now()
    return [
        FaultRule(
            id="rule-temp-critical",
            name="Critical Temperature Alert",
            fault_type=FaultType.ENVIRONMENTAL,
            severity=Severity.CRITICAL,
            conditions=[
                Condition(parameter="temperature", operator=ConditionOperator.GT, value=85),
            ],
            description="Temperature exceeds critical threshold",
            created_at=now,
        ),
        FaultRule(
            id="rule-vibration-high",
            name="High Vibration Detection",
            fault_type=FaultType.STRUCTURAL,
            severity=Severity.HIGH,
            conditions=[
                Condition(
                    parameter="vibration",
                    operator=ConditionOperator.GT,
                    value=8,
                    duration_seconds=30,
                ),
            ],
            description="Sustained high vibration levels detected",
            created_at=now,
        ),
        FaultRule(
            id="rule-connectivity-loss",
            name="Connectivity Loss",
            fault_type=FaultType.CONNECTIVITY,
            severity=Severity.MEDIUM,
            conditions=[
                Condition(parameter="signal_strength", operator=ConditionOperator.LT, value=20),
            ],
            description="Poor connectivity detected",
            created_at=now,
        ),
        # Either resource crossing its limit is enough (ConditionMatch.ANY)
        FaultRule(
            id="rule-performance-degradation",
            name="Performance Degradation",
            fault_type=FaultType.PERFORMANCE,
            severity=Severity.MEDIUM,
            conditions=[
                Condition(
                    parameter="cpu_usage",
                    operator=ConditionOperator.GT,
                    value=90,
                    duration_seconds=300,
                ),
                Condition(
                    parameter="memory_usage",
                    operator=ConditionOperator.GT,
                    value=85,
                    duration_seconds=300,
                ),
            ],
            description="System performance degradation detected",
            created_at=now,
        ),
    ]


class RuleStore:
    """Holds the active rule set, keyed by rule id."""

    def __init__(self, rules: list[FaultRule] | None = None) -> None:
        self._rules: dict[str, FaultRule] = {}
        self.logger = logger.bind(component="rule_store")
        for rule in default_rules() if rules is None else rules:
            self.add(rule)

    def add(self, rule: FaultRule) -> None:
        """Add or replace a rule."""
        self._rules[rule.id] = rule
        self.logger.debug("rule_registered", rule_id=rule.id, severity=rule.severity.value)

    def get(self, rule_id: str) -> FaultRule | None:
        return self._rules.get(rule_id)

    def all(self) -> list[FaultRule]:
        return list(self._rules.values())

    def applicable(self, entity_id: str) -> Iterator[FaultRule]:
        """Active rules that are global or scoped to ``entity_id``."""
        for rule in list(self._rules.values()):
            if rule.is_active and (rule.entity_id is None or rule.entity_id == entity_id):
                yield rule

    def mark_triggered(self, rule_id: str, at: datetime | None = None) -> FaultRule | None:
        rule = self._rules.get(rule_id)
        if rule is None:
            return None
        updated = rule.model_copy(update={"last_triggered": at or utc_now()})
        self._rules[rule_id] = updated
        return updated

    def __len__(self) -> int:
        return len(self._rules)
