"""
Configuration management with environment variable support and validation.

Design principles:
- Environment-specific configs (dev, staging, prod)
- Validation at startup (fail fast)
- Type safety with Pydantic
- Thresholds live in rules, tuning knobs live here
"""

import os
from functools import lru_cache
from typing import Literal, cast

from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError, model_validator

from faultwatch.domain.errors import ConfigurationError

# Load environment variables from .env file
load_dotenv()


class DetectionConfig(BaseModel):
    """Rule engine and health aggregation settings."""

    history_capacity: int = Field(
        default=1000, gt=0, description="Readings retained per entity (oldest evicted first)"
    )
    diagnostic_window: int = Field(
        default=50, gt=0, description="Trailing readings captured in a fault's diagnostic snapshot"
    )
    health_analysis_interval_seconds: float = Field(
        default=30.0, gt=0.0, description="Interval between periodic health recomputations"
    )
    enforce_condition_duration: bool = Field(
        default=False, description="Require conditions with a duration to hold that long"
    )
    device_offline_after_seconds: float | None = Field(
        default=None, gt=0.0, description="Treat devices silent for this long as offline"
    )
    alert_history_size: int = Field(default=1000, gt=0, description="Alerts kept for inspection")


class CollectionConfig(BaseModel):
    """Reading ingress settings."""

    collection_interval_seconds: float = Field(
        default=5.0, gt=0.0, description="Interval between reading collections"
    )
    timeout_seconds: float = Field(
        default=10.0, gt=0.0, description="Timeout for a single source collection"
    )
    max_concurrent_sources: int = Field(
        default=10, gt=0, description="Maximum number of concurrent reading sources"
    )


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Logging level"
    )
    format: Literal["json", "console"] = Field(default="json", description="Logging format")


class AppConfig(BaseModel):
    """Main application configuration combining all subsystems."""

    environment: Literal["development", "staging", "production"] = Field(
        default="development", description="Environment"
    )
    debug: bool = Field(default=False, description="Enable debug mode")

    detection: DetectionConfig = Field(default_factory=DetectionConfig)
    collection: CollectionConfig = Field(default_factory=CollectionConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @model_validator(mode="after")
    def debug_only_in_dev(self) -> "AppConfig":
        """Ensure debug mode is only allowed in development environment."""
        if self.debug and self.environment != "development":
            raise ValueError("debug mode is only allowed in development environment")
        return self


def load_config_from_env() -> AppConfig:
    """Load configuration from environment variables with validation."""

    def _env_to_literal(val: str) -> Literal["development", "staging", "production"]:
        v = val.strip().lower()
        if v in {"dev", "development"}:
            return "development"
        if v in {"stage", "staging"}:
            return "staging"
        return "production"

    def _level_to_literal(val: str) -> Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]:
        v = val.strip().upper()
        return cast(
            Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
            v if v in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"} else "INFO",
        )

    def _parse_bool(val: str | None, default: bool) -> bool:
        if val is None:
            return default
        return val.strip().lower() in {"1", "true", "yes", "on"}

    def _parse_optional_float(val: str | None) -> float | None:
        if val is None or not val.strip():
            return None
        return float(val)

    environment = _env_to_literal(os.getenv("ENVIRONMENT", "development"))
    debug = environment == "development"

    try:
        detection_config = DetectionConfig(
            history_capacity=int(os.getenv("HISTORY_CAPACITY", "1000")),
            diagnostic_window=int(os.getenv("DIAGNOSTIC_WINDOW", "50")),
            health_analysis_interval_seconds=float(
                os.getenv("HEALTH_ANALYSIS_INTERVAL_SECONDS", "30.0")
            ),
            enforce_condition_duration=_parse_bool(
                os.getenv("ENFORCE_CONDITION_DURATION"), False
            ),
            device_offline_after_seconds=_parse_optional_float(
                os.getenv("DEVICE_OFFLINE_AFTER_SECONDS")
            ),
        )

        collection_config = CollectionConfig(
            collection_interval_seconds=float(os.getenv("COLLECTION_INTERVAL_SECONDS", "5.0")),
            timeout_seconds=float(os.getenv("COLLECTION_TIMEOUT_SECONDS", "10.0")),
        )
    except (ValueError, ValidationError) as e:
        raise ConfigurationError(f"Invalid engine configuration: {e}") from e

    logging_config = LoggingConfig(
        level=_level_to_literal(os.getenv("LOG_LEVEL", "INFO")),
        format="console" if debug else "json",
    )

    return AppConfig(
        environment=environment,
        debug=debug,
        detection=detection_config,
        collection=collection_config,
        logging=logging_config,
    )


@lru_cache
def get_config() -> AppConfig:
    """Get cached application configuration."""
    return load_config_from_env()


def validate_config() -> None:
    """Validate configuration at startup."""
    try:
        config = get_config()
        print(f"Configuration loaded for {config.environment} environment")

        if config.detection.enforce_condition_duration:
            print("Condition duration gating enabled")

    except Exception as e:
        print(f"Configuration validation failed: {e}")
        raise


def print_config_summary() -> None:
    """Print configuration summary for debugging."""
    config = get_config()

    print("\nCONFIGURATION SUMMARY")
    print(f"Environment: {config.environment}")
    print(f"Debug Mode: {config.debug}")
    print(f"Log Level: {config.logging.level}")

    print("\nDETECTION")
    print(f"History Capacity: {config.detection.history_capacity} readings/entity")
    print(f"Diagnostic Window: {config.detection.diagnostic_window} readings")
    print(f"Health Analysis Interval: {config.detection.health_analysis_interval_seconds}s")
    print(f"Duration Gating: {config.detection.enforce_condition_duration}")
    print(f"Device Offline After: {config.detection.device_offline_after_seconds or 'disabled'}")

    print("\nCOLLECTION")
    print(f"Collection Interval: {config.collection.collection_interval_seconds}s")
    print(f"Source Timeout: {config.collection.timeout_seconds}s")


if __name__ == "__main__":
    validate_config()
    print_config_summary()
