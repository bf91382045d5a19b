"""
Configuration management for the amenity heatmap service.

This module handles loading configuration from environment variables and
.env files: provider credentials, DynamoDB settings, grid cache parameters
and scoring constants. Services receive these values through their
constructors; nothing here is a process-wide mutable instance.
"""

import os
from dataclasses import dataclass, field
from enum import Enum

from dotenv import load_dotenv
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, field_validator

# Load environment variables from .env file
load_dotenv()

SECONDS_PER_DAY = 24 * 60 * 60
MAX_GEOHASH_PRECISION = 12


class LogLevel(str, Enum):
    """Log levels supported by the system."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class GridConfig(BaseModel):
    """Geohash grid and cache lifetime settings."""

    model_config = ConfigDict(frozen=True)

    precision: int = Field(
        default=7, description="Geohash precision (7 is roughly a 150 m cell)"
    )
    cache_ttl_seconds: int = Field(
        default=7 * SECONDS_PER_DAY, description="Cell cache time to live"
    )
    broad_radius_threshold: float = Field(
        default=10000,
        description="Radius in meters above which a second neighbor ring is used",
    )

    @field_validator("precision")
    @classmethod
    def validate_precision(cls, value: int) -> int:
        if not (1 <= value <= MAX_GEOHASH_PRECISION):
            raise ValueError(
                f"Precision must be between 1 and {MAX_GEOHASH_PRECISION}, got {value}"
            )
        return value

    @field_validator("cache_ttl_seconds")
    @classmethod
    def validate_ttl(cls, value: int) -> int:
        if value <= 0:
            raise ValueError(f"Cache TTL must be positive, got {value}")
        return value

    @classmethod
    def from_env(cls) -> "GridConfig":
        """Create a GridConfig from environment variables."""
        return cls(
            precision=int(os.getenv("GRID_PRECISION", "7")),
            cache_ttl_seconds=int(
                os.getenv("CACHE_TTL_SECONDS", str(7 * SECONDS_PER_DAY))
            ),
            broad_radius_threshold=float(
                os.getenv("BROAD_RADIUS_THRESHOLD", "10000")
            ),
        )


class ScoringConfig(BaseModel):
    """Constants for variance amplification and distance decay."""

    model_config = ConfigDict(frozen=True)

    max_distance: float = Field(
        default=5000, description="Maximum distance (m) for neighbor influence"
    )
    decay_factor: float = Field(
        default=2.0, description="Steepness of the exponential distance decay"
    )
    variance_amplification: float = Field(
        default=2.0, description="How strongly outlier weights are amplified"
    )

    @field_validator("max_distance")
    @classmethod
    def validate_max_distance(cls, value: float) -> float:
        if value <= 0:
            raise ValueError(f"Max distance must be positive, got {value}")
        return value

    @field_validator("decay_factor", "variance_amplification")
    @classmethod
    def validate_non_negative(cls, value: float) -> float:
        if value < 0:
            raise ValueError(f"Scoring constants must not be negative, got {value}")
        return value

    @classmethod
    def from_env(cls) -> "ScoringConfig":
        """Create a ScoringConfig from environment variables."""
        return cls(
            max_distance=float(os.getenv("SCORING_MAX_DISTANCE", "5000")),
            decay_factor=float(os.getenv("SCORING_DECAY_FACTOR", "2.0")),
            variance_amplification=float(
                os.getenv("SCORING_VARIANCE_AMPLIFICATION", "2.0")
            ),
        )


class APIConfig(BaseModel):
    """Configuration for the places provider and DynamoDB."""

    places_api_key: str = Field(default="", description="Google Places API key")
    places_base_url: str = Field(
        default="https://places.googleapis.com/v1",
        description="Base URL of the Places API",
    )
    max_result_count: int = Field(
        default=20, description="Maximum places returned per provider call"
    )
    language_code: str = Field(default="en", description="Result language")
    aws_region: str = Field(default="ap-northeast-1", description="AWS region")
    dynamodb_table_name: str = Field(
        default="amenity-heatmap", description="DynamoDB table name"
    )
    dynamodb_endpoint: str | None = Field(
        default=None, description="DynamoDB endpoint URL (for local dev)"
    )

    class ValidationError(Exception):
        """Exception raised for API configuration validation errors."""

        def __init__(self, missing_keys: list[str]):
            self.missing_keys = missing_keys
            super().__init__(
                f"Missing required configuration: {', '.join(missing_keys)}"
            )

    @classmethod
    def from_env(cls) -> "APIConfig":
        """Create an APIConfig from environment variables."""
        return cls(
            places_api_key=os.getenv("PLACES_API_KEY", ""),
            places_base_url=os.getenv(
                "PLACES_BASE_URL", "https://places.googleapis.com/v1"
            ),
            max_result_count=int(os.getenv("PLACES_MAX_RESULTS", "20")),
            language_code=os.getenv("PLACES_LANGUAGE", "en"),
            aws_region=os.getenv("AWS_REGION", "ap-northeast-1"),
            dynamodb_table_name=os.getenv("DYNAMODB_TABLE_NAME", "amenity-heatmap"),
            dynamodb_endpoint=os.getenv("DYNAMODB_ENDPOINT"),
        )

    def validate(self, raise_error: bool = False) -> bool:
        """
        Validate that required settings are present.

        Args:
            raise_error: If True, raise ValidationError instead of returning False

        Returns:
            True if all required settings are present, False otherwise
        """
        missing_keys = []
        if not self.places_api_key:
            missing_keys.append("PLACES_API_KEY")
        if not self.dynamodb_table_name:
            missing_keys.append("DYNAMODB_TABLE_NAME")

        if missing_keys:
            logger.error(f"Missing required configuration: {', '.join(missing_keys)}")
            if raise_error:
                raise self.ValidationError(missing_keys)
            return False

        return True


class SystemConfig(BaseModel):
    """System-wide configuration."""

    log_level: LogLevel = Field(default=LogLevel.INFO, description="Logging level")
    environment: str = Field(
        default="development",
        description="Environment (development, staging, production)",
    )

    @classmethod
    def from_env(cls) -> "SystemConfig":
        """Create a SystemConfig from environment variables."""
        return cls(
            log_level=LogLevel(os.getenv("LOG_LEVEL", "INFO").upper()),
            environment=os.getenv("ENVIRONMENT", "development"),
        )


@dataclass
class HeatmapConfig:
    """Main configuration class for the amenity heatmap service."""

    api: APIConfig = field(default_factory=APIConfig.from_env)
    system: SystemConfig = field(default_factory=SystemConfig.from_env)
    grid: GridConfig = field(default_factory=GridConfig.from_env)
    scoring: ScoringConfig = field(default_factory=ScoringConfig.from_env)

    class ConfigurationError(Exception):
        """Exception raised for configuration validation errors."""

        pass

    def validate(self, raise_error: bool = False) -> bool:
        """
        Validate the entire configuration.

        Args:
            raise_error: If True, raise ConfigurationError instead of returning False

        Returns:
            True if configuration is valid, False otherwise
        """
        try:
            self.api.validate(raise_error=True)
            if self.grid.broad_radius_threshold <= 0:
                raise ValueError("Broad radius threshold must be positive")
            return True

        except (APIConfig.ValidationError, ValueError) as e:
            if not isinstance(e, APIConfig.ValidationError):
                logger.error(f"Configuration validation failed: {e!s}")

            if raise_error:
                raise self.ConfigurationError(
                    f"Configuration validation failed: {e!s}"
                ) from e

            return False


def initialize_config(
    custom_config_path: str | None = None,
    validate: bool = True,
    raise_on_error: bool = False,
) -> HeatmapConfig:
    """
    Build and optionally validate a configuration object.

    Args:
        custom_config_path: Path to a custom .env file to load
        validate: Whether to validate the configuration
        raise_on_error: Whether to raise an exception on validation failure

    Returns:
        A freshly built configuration object

    Raises:
        HeatmapConfig.ConfigurationError: If validation fails and
            raise_on_error is True
        FileNotFoundError: If custom_config_path is provided but does not exist
    """
    if custom_config_path:
        if not os.path.exists(custom_config_path):
            error_msg = f"Custom configuration file not found: {custom_config_path}"
            logger.error(error_msg)
            raise FileNotFoundError(error_msg)

        logger.info(f"Loading custom configuration from {custom_config_path}")
        load_dotenv(custom_config_path, override=True)

    config = HeatmapConfig()

    if validate and not config.validate(raise_error=raise_on_error):
        logger.warning(
            "Configuration validation failed. Provider lookups will fail until "
            "PLACES_API_KEY is set; cached data and scoring still work."
        )

    return config
