"""
Domain models for fault detection and entity health.

These models represent the core business concepts and are framework-agnostic.
They use Pydantic for validation; records handed to subscribers are frozen so a
consumer can never mutate what the engine stores.
"""

from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


def utc_now() -> datetime:
    return datetime.now(UTC)


class SensorType(str, Enum):
    """Categories of sensor readings the engine understands."""

    TEMPERATURE = "temperature"
    HUMIDITY = "humidity"
    PRESSURE = "pressure"
    VIBRATION = "vibration"
    FLOW = "flow"
    POWER = "power"
    SIGNAL_STRENGTH = "signal_strength"
    CPU_USAGE = "cpu_usage"
    MEMORY_USAGE = "memory_usage"


class ReadingStatus(str, Enum):
    """Status tag computed by the producing device."""

    NORMAL = "normal"
    WARNING = "warning"
    CRITICAL = "critical"


class FaultType(str, Enum):
    PERFORMANCE = "performance"
    STRUCTURAL = "structural"
    ENVIRONMENTAL = "environmental"
    CONNECTIVITY = "connectivity"
    DATA_QUALITY = "data_quality"


class Severity(str, Enum):
    """Fault severity levels, lowest first."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ConditionOperator(str, Enum):
    GT = "gt"
    LT = "lt"
    EQ = "eq"
    NE = "ne"
    BETWEEN = "between"
    OUTSIDE = "outside"


RANGE_OPERATORS = frozenset({ConditionOperator.BETWEEN, ConditionOperator.OUTSIDE})


class ConditionMatch(str, Enum):
    """How the conditions of one rule combine."""

    ANY = "any"
    ALL = "all"


class FaultStatus(str, Enum):
    ACTIVE = "active"
    ACKNOWLEDGED = "acknowledged"
    RESOLVED = "resolved"
    FALSE_POSITIVE = "false_positive"


class HealthState(str, Enum):
    HEALTHY = "healthy"
    WARNING = "warning"
    CRITICAL = "critical"
    OFFLINE = "offline"


class DeviceStatus(str, Enum):
    ONLINE = "online"
    OFFLINE = "offline"
    ERROR = "error"


class Coordinates(BaseModel):
    model_config = ConfigDict(frozen=True)

    latitude: float = Field(ge=-90.0, le=90.0)
    longitude: float = Field(ge=-180.0, le=180.0)
    elevation: float | None = None


class SensorReading(BaseModel):
    """
    One timestamped observation for a monitored entity.

    Accepts both snake_case and camelCase keys (`entity_id` or `entityId`).
    """

    model_config = ConfigDict(
        frozen=True,  # Immutable once produced
        alias_generator=to_camel,
        populate_by_name=True,
    )

    entity_id: str = Field(min_length=1, description="Monitored entity (digital-twin model) id")
    device_id: str | None = Field(default=None, description="Producing device, if known")
    sensor_type: SensorType
    value: float = Field(allow_inf_nan=False)
    unit: str = ""
    timestamp: datetime = Field(default_factory=utc_now)
    coordinates: Coordinates | None = None
    status: ReadingStatus = ReadingStatus.NORMAL

    @field_validator("timestamp")
    @classmethod
    def assume_utc(cls, v: datetime) -> datetime:
        """Naive timestamps from producers are taken to be UTC."""
        return v.replace(tzinfo=UTC) if v.tzinfo is None else v


class Condition(BaseModel):
    """A single comparison against one sensor parameter."""

    model_config = ConfigDict(frozen=True)

    parameter: str = Field(description="Sensor type the condition applies to")
    operator: ConditionOperator
    value: float | tuple[float, float]
    duration_seconds: float | None = Field(
        default=None, gt=0.0, description="Minimum sustained violation before confirming"
    )

    @model_validator(mode="after")
    def check_threshold_shape(self) -> "Condition":
        is_range = isinstance(self.value, tuple)
        if self.operator in RANGE_OPERATORS:
            if not is_range:
                raise ValueError(f"operator '{self.operator.value}' requires a [min, max] range")
            low, high = self.value  # type: ignore[misc]
            if low > high:
                raise ValueError(f"range minimum {low} is greater than maximum {high}")
        elif is_range:
            raise ValueError(f"operator '{self.operator.value}' requires a scalar threshold")
        return self


class FaultRule(BaseModel):
    """A fault-detection rule. Replaced, never mutated in place."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    entity_id: str | None = Field(default=None, description="Restrict to one entity; None = global")
    fault_type: FaultType
    severity: Severity
    conditions: list[Condition] = Field(min_length=1)
    match: ConditionMatch = ConditionMatch.ANY
    is_active: bool = True
    description: str
    created_at: datetime = Field(default_factory=utc_now)
    last_triggered: datetime | None = None


class RootCauseAnalysis(BaseModel):
    model_config = ConfigDict(frozen=True)

    primary_cause: str
    contributing_factors: list[str] = Field(default_factory=list)
    confidence: float = Field(ge=0.0, le=1.0)


class ParameterCorrelation(BaseModel):
    """Correlation between two parameters. Declared for consumers, not yet computed."""

    model_config = ConfigDict(frozen=True)

    parameter_a: str
    parameter_b: str
    coefficient: float = Field(ge=-1.0, le=1.0)


class DiagnosticData(BaseModel):
    """Snapshot of an entity's recent readings taken when a fault is created."""

    model_config = ConfigDict(frozen=True)

    parameters: dict[str, float] = Field(default_factory=dict)
    trends: dict[str, list[float]] = Field(default_factory=dict)
    correlations: list[ParameterCorrelation] = Field(default_factory=list)
    root_cause: RootCauseAnalysis | None = None
    resolution: str | None = None


class DetectedFault(BaseModel):
    """A materialized fault incident."""

    model_config = ConfigDict(frozen=True)

    id: str
    rule_id: str
    entity_id: str
    device_id: str | None = None
    fault_type: FaultType
    severity: Severity
    title: str
    description: str
    detected_at: datetime = Field(default_factory=utc_now)
    resolved_at: datetime | None = None
    status: FaultStatus = FaultStatus.ACTIVE
    affected_components: list[str] = Field(default_factory=list)
    diagnostic_data: DiagnosticData = Field(default_factory=DiagnosticData)
    coordinates: Coordinates | None = None
    recommended_actions: list[str] = Field(default_factory=list)
    acknowledged_at: datetime | None = None
    acknowledged_by: str | None = None
    resolved_by: str | None = None


class ComponentHealth(BaseModel):
    """Per-component health. Declared so consumers get a stable shape."""

    model_config = ConfigDict(frozen=True)

    name: str
    health: HealthState
    score: float = Field(ge=0.0, le=100.0)


class PerformanceMetrics(BaseModel):
    model_config = ConfigDict(frozen=True)

    cpu_usage: float | None = None
    memory_usage: float | None = None
    readings_per_minute: float = Field(default=0.0, ge=0.0)
    abnormal_reading_ratio: float = Field(default=0.0, ge=0.0, le=1.0)
    readings_retained: int = Field(default=0, ge=0)


class PredictiveInsight(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: str = Field(description="e.g. maintenance, failure, optimization")
    title: str
    description: str
    probability: float = Field(ge=0.0, le=1.0)
    timeframe: str
    impact: Severity
    recommended_actions: list[str] = Field(default_factory=list)


class ModelHealthStatus(BaseModel):
    """Derived health projection for one entity, replaced wholesale on every pass."""

    model_config = ConfigDict(frozen=True)

    entity_id: str
    overall_health: HealthState
    health_score: float = Field(ge=0.0, le=100.0)
    last_updated: datetime = Field(default_factory=utc_now)
    components: list[ComponentHealth] = Field(default_factory=list)
    active_faults: list[DetectedFault] = Field(default_factory=list)
    performance_metrics: PerformanceMetrics = Field(default_factory=PerformanceMetrics)
    predictive_insights: list[PredictiveInsight] = Field(default_factory=list)


class FaultDetectionStatistics(BaseModel):
    """Cross-entity counters computed on demand."""

    model_config = ConfigDict(frozen=True)

    total_models: int = Field(ge=0)
    healthy_models: int = Field(ge=0)
    models_with_warnings: int = Field(ge=0)
    critical_models: int = Field(ge=0)
    offline_models: int = Field(ge=0)
    total_faults: int = Field(ge=0)
    active_faults: int = Field(ge=0)
    acknowledged_faults: int = Field(ge=0)
    resolved_faults: int = Field(ge=0)
    faults_by_type: dict[str, int] = Field(default_factory=dict)
    faults_by_severity: dict[str, int] = Field(default_factory=dict)
    average_resolution_time_hours: float | None = None
    mtbf_hours: float | None = Field(default=None, description="Mean time between failures")
    mttr_hours: float | None = Field(default=None, description="Mean time to repair")
    generated_at: datetime = Field(default_factory=utc_now)


class Device(BaseModel):
    """A telemetry device attached to a monitored entity."""

    model_config = ConfigDict(frozen=True)

    id: str
    entity_id: str
    status: DeviceStatus = DeviceStatus.ONLINE
    last_seen: datetime = Field(default_factory=utc_now)


class FaultAlert(BaseModel):
    """User-facing alert raised for every newly created fault."""

    model_config = ConfigDict(frozen=True)

    title: str
    message: str
    severity: Severity
    persistent: bool = Field(default=True, description="False lets the sink auto-dismiss")
    fault_id: str
    entity_id: str
    raised_at: datetime = Field(default_factory=utc_now)
