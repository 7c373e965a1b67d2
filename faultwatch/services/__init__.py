"""
Services for the fault detection engine.

This package contains the rule engine and the stores it maintains, plus the
collection pipeline that feeds it.
"""

from .engine import FaultDetectionEngine
from .ingress import ReadingCollector, ReadingSource
from .integrated_monitoring import TwinMonitoringService
from .result import Result
from .rules import RuleStore, default_rules

__all__ = [
    "FaultDetectionEngine",
    "ReadingCollector",
    "ReadingSource",
    "Result",
    "RuleStore",
    "TwinMonitoringService",
    "default_rules",
]
