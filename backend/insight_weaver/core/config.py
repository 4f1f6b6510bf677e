"""
Centralized configuration management.

All service and pipeline configuration is loaded and validated here.
"""
import os
import logging
from typing import List, Optional
from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)


class Settings(BaseModel):
    """Application settings with validation."""

    # Rate limiting
    rate_limit_per_minute: int = Field(default=10, ge=1, le=1000, description="Rate limit per minute per IP")

    # Request timeout
    request_timeout_seconds: int = Field(default=300, ge=1, le=3600, description="Request timeout in seconds")

    # CORS
    allowed_origins: str = Field(
        default="http://localhost:3000,http://localhost:3001",
        description="Comma-separated list of allowed CORS origins"
    )

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: str = Field(default="text", description="'text' or 'json'")

    # Input limits
    max_dataset_rows: int = Field(default=50000, ge=10, le=1000000, description="Maximum data rows per analysis")
    max_dataset_columns: int = Field(default=200, ge=2, le=5000, description="Maximum columns per analysis")

    # Column profiling
    type_sample_size: int = Field(default=1000, ge=10, le=100000, description="Non-empty values sampled for type voting")
    ordinal_max_unique: int = Field(default=10, ge=2, le=100, description="Distinct integers allowed in an ordinal column")
    categorical_max_unique: int = Field(default=20, ge=1, le=1000, description="Distinct values always treated as categorical")
    categorical_max_unique_ratio: float = Field(default=0.5, gt=0.0, le=1.0, description="Distinct/non-empty ratio for categorical text")

    # Aggregation
    grouped_sample_cap: int = Field(default=500, ge=10, le=100000, description="Row cap for grouped charts")
    relationship_sample_cap: int = Field(default=1000, ge=10, le=100000, description="Raw point budget for relationship charts")
    max_groups: int = Field(default=10, ge=2, le=100, description="Top-N groups kept for bar and pie charts")
    label_max_length: int = Field(default=18, ge=4, le=200, description="Display label length before truncation")

    # Statistics annotations
    skewness_threshold: float = Field(default=1.0, gt=0.0, le=10.0, description="Absolute skewness that triggers a warning")
    outlier_warning_percent: float = Field(default=10.0, ge=0.0, le=100.0, description="IQR outlier share that triggers a warning")
    min_annotation_values: int = Field(default=3, ge=2, le=1000, description="Minimum group size for annotations")

    # Dashboard assembly
    min_dashboard_views: int = Field(default=4, ge=0, le=20, description="Fallback views are added below this count")

    # Cache
    cache_ttl_seconds: int = Field(default=3600, ge=1, le=604800, description="Analysis cache entry lifetime")

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"LOG_LEVEL must be one of {valid_levels}, got '{v}'")
        return v.upper()

    @field_validator('log_format')
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        if v.lower() not in ("text", "json"):
            raise ValueError(f"LOG_FORMAT must be 'text' or 'json', got '{v}'")
        return v.lower()

    @property
    def allowed_origins_list(self) -> List[str]:
        """Get allowed origins as a list."""
        return [origin.strip() for origin in self.allowed_origins.split(",") if origin.strip()]

    @classmethod
    def from_env(cls) -> "Settings":
        """Load settings from environment variables."""
        return cls(
            rate_limit_per_minute=int(os.getenv("RATE_LIMIT_PER_MINUTE", "10")),
            request_timeout_seconds=int(os.getenv("REQUEST_TIMEOUT_SECONDS", "300")),
            allowed_origins=os.getenv("ALLOWED_ORIGINS", "http://localhost:3000,http://localhost:3001"),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", "text"),
            max_dataset_rows=int(os.getenv("MAX_DATASET_ROWS", "50000")),
            max_dataset_columns=int(os.getenv("MAX_DATASET_COLUMNS", "200")),
            type_sample_size=int(os.getenv("TYPE_SAMPLE_SIZE", "1000")),
            ordinal_max_unique=int(os.getenv("ORDINAL_MAX_UNIQUE", "10")),
            categorical_max_unique=int(os.getenv("CATEGORICAL_MAX_UNIQUE", "20")),
            categorical_max_unique_ratio=float(os.getenv("CATEGORICAL_MAX_UNIQUE_RATIO", "0.5")),
            grouped_sample_cap=int(os.getenv("GROUPED_SAMPLE_CAP", "500")),
            relationship_sample_cap=int(os.getenv("RELATIONSHIP_SAMPLE_CAP", "1000")),
            max_groups=int(os.getenv("MAX_GROUPS", "10")),
            label_max_length=int(os.getenv("LABEL_MAX_LENGTH", "18")),
            skewness_threshold=float(os.getenv("SKEWNESS_THRESHOLD", "1.0")),
            outlier_warning_percent=float(os.getenv("OUTLIER_WARNING_PERCENT", "10.0")),
            min_annotation_values=int(os.getenv("MIN_ANNOTATION_VALUES", "3")),
            min_dashboard_views=int(os.getenv("MIN_DASHBOARD_VIEWS", "4")),
            cache_ttl_seconds=int(os.getenv("CACHE_TTL_SECONDS", "3600")),
        )


# Global settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get application settings (singleton pattern)."""
    global _settings
    if _settings is None:
        _settings = Settings.from_env()
        logger.info("Configuration loaded and validated successfully")
    return _settings


def reload_settings() -> Settings:
    """Reload settings (useful for testing)."""
    global _settings
    _settings = None
    return get_settings()
