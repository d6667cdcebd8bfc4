import os
from pathlib import Path

from loguru import logger
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from staffing.allocation.config import SubtractionPolicy


def get_database_url() -> str:
    """Get database URL, using absolute path for SQLite to avoid path resolution issues.

    SQLite is only meant for local use. Set DATABASE_URL to point the
    capacity source at the shared allocations database.
    """
    db_url = os.getenv("DATABASE_URL", "")
    if db_url:
        logger.info(f"Using DATABASE_URL from environment: {db_url}")
        return db_url

    db_path = Path(__file__).parent.parent.parent / "staffing.db"
    abs_path = db_path.resolve()
    db_url = f"sqlite:///{abs_path}"
    logger.warning(f"Using SQLite database (LOCAL DEV ONLY): {db_url}")
    return db_url


class Settings(BaseSettings):
    database_url: str = Field(
        default_factory=get_database_url,
        validation_alias="DATABASE_URL",
    )
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")
    near_limit_threshold: float = Field(
        default=0.8,
        validation_alias="NEAR_LIMIT_THRESHOLD",
        description="Approved occupancy at which a slot is reported as near its limit",
    )
    over_allocation_threshold: float = Field(
        default=1.0,
        validation_alias="OVER_ALLOCATION_THRESHOLD",
        description="Approved occupancy at which a slot blocks the commit",
    )
    occupancy_decimal_separator: str = Field(
        default=",",
        validation_alias="OCCUPANCY_DECIMAL_SEPARATOR",
        description="Decimal separator used when formatting occupancy values for display",
    )
    baseline_fetch_timeout_seconds: float = Field(
        default=10.0,
        validation_alias="BASELINE_FETCH_TIMEOUT_SECONDS",
        description="Upper bound for a single capacity baseline fetch",
    )
    subtraction_policy: SubtractionPolicy = Field(
        default=SubtractionPolicy.CURRENT_STATE,
        validation_alias="SUBTRACTION_POLICY",
        description="Bucket an edited allocation's original values are removed from",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        """Validate that log level is one of the standard logging levels."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper_value = value.upper()
        if upper_value not in valid_levels:
            logger.warning(f"Invalid LOG_LEVEL '{value}'. Valid levels are: {', '.join(valid_levels)}. Defaulting to INFO.")
            return "INFO"
        return upper_value

    @field_validator("near_limit_threshold", "over_allocation_threshold")
    @classmethod
    def validate_threshold(cls, value: float) -> float:
        if value <= 0:
            raise ValueError(f"Occupancy thresholds must be positive, got {value}")
        return value

    @field_validator("occupancy_decimal_separator")
    @classmethod
    def validate_separator(cls, value: str) -> str:
        if value not in {",", "."}:
            logger.warning(f"Unsupported OCCUPANCY_DECIMAL_SEPARATOR '{value}'. Defaulting to ','.")
            return ","
        return value


settings = Settings()
